"""Session and command request models."""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from run_loop_driver.constants import FIRST_COMMAND_INDEX


class UIAStrategy(str, Enum):
    """How the run-loop script receives commands from the driver."""

    PREFERENCES = "preferences"
    HOST = "host"
    SHARED_ELEMENT = "shared_element"


class CommandRequest(BaseModel):
    """A command paired with the sequence index it was sent under."""

    sequence_index: int
    raw_text: str

    @property
    def line(self) -> str:
        """Encoded pipe line for this request."""
        # utils.frame imports this module
        from run_loop_driver.utils.frame import encode_command

        return encode_command(self.sequence_index, self.raw_text)


class Session(BaseModel):
    """One live automation run.

    ``command_sequence`` and ``consumed_offset`` are mutated in place by the
    command writer and the response reader; a session must not be shared by
    concurrent callers.
    """

    pid: int
    log_path: Path
    pipe_path: Optional[Path] = None
    results_dir: Optional[Path] = None
    command_sequence: int = FIRST_COMMAND_INDEX
    consumed_offset: int = Field(default=0, ge=0)
    udid: Optional[str] = None
    app: Optional[str] = None
    uia_strategy: Optional[UIAStrategy] = None

    def save(self, path: Path) -> Path:
        """Write the session as JSON so another process can resume it."""
        path = Path(path)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "Session":
        """Read a session previously written by ``save``."""
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))
