"""Runtime configuration for the run-loop driver.

The original run-loop read ``DEBUG``/``DEBUG_READ`` and friends from the process
environment wherever it needed them. Here the environment is read once, by
``RunLoopConfig.from_env()``, and the resulting value is passed explicitly to
every service call.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from run_loop_driver.constants import SCRIPTS_DIR


def _get_float_env(name: str, default: float) -> float:
    """Parse float env var with safe fallback."""
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _is_truthy_env(name: str) -> bool:
    """Parse boolean env var using common truthy values."""
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


class RunLoopConfig(BaseModel):
    """Tunable timeouts, poll intervals and debug toggles."""

    debug: bool = False
    # Log every raw scan of the response log
    debug_read: bool = False

    # Trace template file; falls back to the built-in Automation template
    trace_template: Optional[str] = None
    scripts_dir: Path = SCRIPTS_DIR

    poll_interval: float = 0.1
    empty_log_poll_interval: float = 0.2

    write_attempts: int = 2
    write_ack_timeout: float = 10.0

    command_timeout: float = 60.0
    interrupt_retry_timeout: float = 25.0
    max_retries: int = 3

    mkfifo_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "RunLoopConfig":
        """Build a config from the process environment."""
        config = cls(
            debug=_is_truthy_env("DEBUG"),
            debug_read=_is_truthy_env("DEBUG_READ"),
            trace_template=os.getenv("TRACE_TEMPLATE") or None,
            write_ack_timeout=_get_float_env("RUN_LOOP_WRITE_ACK_TIMEOUT", 10.0),
            poll_interval=_get_float_env("RUN_LOOP_POLL_INTERVAL", 0.1),
        )
        scripts_dir = os.getenv("RUN_LOOP_SCRIPTS_DIR")
        if scripts_dir:
            config.scripts_dir = Path(scripts_dir)
        return config


DEFAULT_CONFIG = RunLoopConfig()
