"""Response reader: tails the engine log and correlates frames to commands."""

import json
import logging
import time
from typing import Any, Dict, Optional

from run_loop_driver.config import DEFAULT_CONFIG, RunLoopConfig
from run_loop_driver.constants import (
    AX_REGISTRATION_FAILED_MARKER,
    AX_SERVER_NOT_FOUND_MARKER,
    ENGINE_EXCEPTION_MARKER,
    RESULT_INDEX_FIELD,
)
from run_loop_driver.exceptions import FatalEngineError, RunLoopTimeoutError
from run_loop_driver.models.session import Session
from run_loop_driver.utils.frame import decode_frame

logger = logging.getLogger(__name__)

ACCESSIBILITY_WARNING = (
    "****** Accessibility is not enabled on device/simulator, please enable it ******"
)


def _read_new_bytes(session: Session) -> bytes:
    """Read the log from the session's consumed offset to end of file."""
    with open(session.log_path, "rb") as log_file:
        log_file.seek(session.consumed_offset)
        return log_file.read()


def _log_size(session: Session) -> int:
    try:
        return session.log_path.stat().st_size
    except FileNotFoundError:
        return 0


def check_fatal_markers(output: bytes) -> None:
    """Raise FatalEngineError if the engine reported an unrecoverable failure."""
    if AX_REGISTRATION_FAILED_MARKER in output:
        if AX_SERVER_NOT_FOUND_MARKER in output:
            logger.warning(ACCESSIBILITY_WARNING)
        raise FatalEngineError(AX_REGISTRATION_FAILED_MARKER.decode())
    if ENGINE_EXCEPTION_MARKER in output:
        raise FatalEngineError("Exception while running script")


def _parse_frame(json_text: bytes) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(json_text)
    except ValueError as e:
        logger.warning(f"Skipping malformed response frame: {e}")
        return None
    if not isinstance(parsed, dict):
        logger.warning(f"Skipping response frame that is not a JSON object: {parsed!r}")
        return None
    return parsed


def read_response(
    session: Session,
    expected_index: int,
    timeout: float,
    match_field: str = RESULT_INDEX_FIELD,
    config: Optional[RunLoopConfig] = None,
) -> Dict[str, Any]:
    """Block until the log holds a frame whose ``match_field`` equals ``expected_index``.

    Bytes before ``session.consumed_offset`` are never scanned again. Frames
    that do not match are consumed and discarded. A partially written frame
    anchors the offset at its start marker until the end marker arrives.

    Args:
        session: The live session; its ``consumed_offset`` is advanced in place.
        expected_index: Sequence index to wait for.
        timeout: Wall-clock seconds before giving up.
        match_field: ``"index"`` for results, ``"last_index"`` for write acks.
        config: Poll intervals and debug toggles.

    Returns:
        The parsed JSON object of the matching frame.

    Raises:
        RunLoopTimeoutError: If no matching frame arrives in time.
        FatalEngineError: If the log reports an accessibility or engine failure.
    """
    config = config or DEFAULT_CONFIG
    deadline = time.monotonic() + timeout

    def _sleep(interval: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining > 0:
            time.sleep(min(interval, remaining))

    while True:
        if time.monotonic() >= deadline:
            raise RunLoopTimeoutError(
                f"Timed out after {timeout}s waiting for response with "
                f"{match_field}={expected_index} in {session.log_path}"
            )

        if _log_size(session) == 0:
            _sleep(config.empty_log_poll_interval)
            continue

        output = _read_new_bytes(session)

        check_fatal_markers(output)

        scan = decode_frame(output)

        if config.debug_read:
            logger.debug(
                f"Read {len(output)} bytes at offset {session.consumed_offset}; "
                f"start marker at {scan.start}"
            )

        if scan.start is None:
            _sleep(config.poll_interval)
            continue

        if not scan.complete:
            # Wait for the rest of the frame without moving past its start
            session.consumed_offset += scan.start
            _sleep(config.poll_interval)
            continue

        frame = scan.frame
        session.consumed_offset += frame.end_offset

        parsed = _parse_frame(frame.json_text)
        if parsed is None:
            continue

        if config.debug_read:
            logger.debug(f"Parsed frame: {parsed}")

        if parsed.get(match_field) == expected_index:
            return parsed

        logger.debug(
            f"Discarding frame with {match_field}={parsed.get(match_field)!r}, "
            f"expected {expected_index}"
        )
