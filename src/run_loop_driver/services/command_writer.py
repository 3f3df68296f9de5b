"""Command writer: sends a command over the pipe and waits for the engine's ack."""

import errno
import logging
import os
import time
from pathlib import Path
from typing import Optional

from run_loop_driver.config import DEFAULT_CONFIG, RunLoopConfig
from run_loop_driver.constants import ACK_INDEX_FIELD
from run_loop_driver.exceptions import (
    RunLoopArgumentError,
    RunLoopTimeoutError,
    WriteFailedError,
)
from run_loop_driver.models.session import CommandRequest, Session
from run_loop_driver.services.response_reader import read_response

logger = logging.getLogger(__name__)


def write_pipe_line(pipe_path: Path, line: str, timeout: float, poll_interval: float) -> None:
    """Write one command line to the pipe, replacing what a plain file held.

    A FIFO without a reader refuses non-blocking writers with ENXIO. That is
    retried until ``timeout``, after which WriteFailedError is raised.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            fd = os.open(pipe_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_NONBLOCK, 0o644)
            break
        except OSError as e:
            if e.errno != errno.ENXIO:
                raise
            if time.monotonic() >= deadline:
                raise WriteFailedError(
                    f"No reader opened command pipe {pipe_path} within {timeout}s"
                ) from e
            time.sleep(poll_interval)

    os.set_blocking(fd, True)
    with os.fdopen(fd, "wb") as pipe:
        pipe.write(f"{line}\n".encode("utf-8"))


def _write_line(session: Session, line: str, config: RunLoopConfig) -> None:
    write_pipe_line(session.pipe_path, line, config.write_ack_timeout, config.poll_interval)


def validate_index_written(
    session: Session, index: int, config: Optional[RunLoopConfig] = None
) -> bool:
    """Return True if the engine acknowledged the command at ``index``."""
    config = config or DEFAULT_CONFIG
    try:
        read_response(
            session,
            index,
            timeout=config.write_ack_timeout,
            match_field=ACK_INDEX_FIELD,
            config=config,
        )
    except RunLoopTimeoutError:
        logger.info(f"Validate index written for index {index} failed. Retrying.")
        return False
    logger.info(f"Validate index written for index {index} ok")
    return True


def write_request(session: Session, text: str, config: Optional[RunLoopConfig] = None) -> int:
    """Write ``text`` to the session's pipe under the next sequence index.

    The sequence index is committed only once the engine acknowledges the
    write with a ``last_index`` frame.

    Returns:
        The sequence index the command was accepted under.

    Raises:
        WriteFailedError: If no acknowledgement arrived after all attempts.
        FatalEngineError: If the log reports an unrecoverable engine failure.
    """
    config = config or DEFAULT_CONFIG
    if session.pipe_path is None:
        raise RunLoopArgumentError("Session has no command pipe")

    request = CommandRequest(sequence_index=session.command_sequence, raw_text=text)
    line = request.line

    for attempt in range(config.write_attempts):
        logger.debug(
            f"Trying write of command {line} at index {request.sequence_index} "
            f"(attempt {attempt + 1}/{config.write_attempts})"
        )
        _write_line(session, line, config)
        if validate_index_written(session, request.sequence_index, config):
            session.command_sequence = request.sequence_index + 1
            return request.sequence_index

    logger.info("Failing... raising WriteFailedError")
    raise WriteFailedError(
        f"Trying write of command {line} at index {request.sequence_index}"
    )
