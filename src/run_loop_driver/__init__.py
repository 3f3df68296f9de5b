"""Driver for a long-running UIAutomation run-loop over a pipe and log file."""

__version__ = "0.1.0"
