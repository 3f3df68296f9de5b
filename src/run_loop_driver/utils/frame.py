"""Encoding of command lines and decoding of response frames.

Commands travel to the engine as a single line ``<index>:<text>``. The text is
re-interpreted twice on the engine side (shell read, then JavaScript eval), so
every backslash is quadrupled on the way in.

Responses come back inside the engine log as::

    OUTPUT_JSON:
    {"index": 3, ...}
    END_OUTPUT
"""

from dataclasses import dataclass
from typing import Optional

from run_loop_driver.constants import FRAME_CLOSE, START_DELIMITER
from run_loop_driver.exceptions import RunLoopArgumentError
from run_loop_driver.models.session import CommandRequest

BACKSLASH = "\\"
ESCAPED_BACKSLASH = BACKSLASH * 4


def escape_command(text: str) -> str:
    """Quadruple every backslash in a command."""
    return text.replace(BACKSLASH, ESCAPED_BACKSLASH)


def unescape_command(text: str) -> str:
    """Collapse each run of four backslashes back into one."""
    return text.replace(ESCAPED_BACKSLASH, BACKSLASH)


def encode_command(sequence_index: int, text: str) -> str:
    """Build the pipe line for a command (without trailing newline)."""
    return f"{sequence_index}:{escape_command(text)}"


def decode_command(line: str) -> CommandRequest:
    """Parse a pipe line the way the engine does."""
    line = line.rstrip("\n")
    index, sep, escaped = line.partition(":")
    if not sep or not index.isdigit():
        raise RunLoopArgumentError(f"Malformed command line: {line!r}")
    return CommandRequest(sequence_index=int(index), raw_text=unescape_command(escaped))


@dataclass(frozen=True)
class Frame:
    """A complete response frame located inside a buffer."""

    json_text: bytes
    start_offset: int
    end_offset: int


@dataclass(frozen=True)
class FrameScan:
    """Result of scanning a buffer for a frame.

    ``start`` is the offset of the start marker, or None if there is none.
    ``frame`` is set only when the end marker has arrived as well.
    """

    start: Optional[int] = None
    frame: Optional[Frame] = None

    @property
    def complete(self) -> bool:
        return self.frame is not None


def decode_frame(buffer: bytes) -> FrameScan:
    """Find the first frame in ``buffer``.

    Offsets are relative to the start of ``buffer``; ``end_offset`` points one
    past the ``END_OUTPUT`` marker.
    """
    start = buffer.find(START_DELIMITER)
    if start == -1:
        return FrameScan()

    body_start = start + len(START_DELIMITER)
    close = buffer.find(FRAME_CLOSE, body_start)
    if close == -1:
        return FrameScan(start=start)

    # Keep the closing brace, drop the end delimiter
    json_end = close + 1
    frame = Frame(
        json_text=buffer[body_start:json_end],
        start_offset=start,
        end_offset=close + len(FRAME_CLOSE),
    )
    return FrameScan(start=start, frame=frame)
