"""Exceptions raised by the run-loop driver."""


class RunLoopError(Exception):
    """Base class for all run-loop driver errors."""

    pass


class LaunchRefusedError(RunLoopError):
    """Raised when another automation engine already controls a device."""

    pass


class RunLoopTimeoutError(RunLoopError):
    """Raised when no matching response arrives before the deadline."""

    pass


class WriteFailedError(RunLoopError):
    """Raised when a command write was never acknowledged by the engine.

    The engine may or may not have seen the command, so callers must treat
    the write as ambiguous.
    """

    pass


class FatalEngineError(RunLoopError):
    """Raised when the log shows the engine can no longer respond. Never retried."""

    pass


class RunLoopArgumentError(RunLoopError, ValueError):
    """Raised for malformed commands or launch options."""

    pass


class RetriesExhaustedError(RunLoopError):
    """Raised when the retry bound is hit and no concrete error was captured."""

    pass
