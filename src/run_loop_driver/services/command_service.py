"""Command service: send a command and wait for its result, with recovery."""

import logging
from typing import Any, Dict, Optional

from run_loop_driver.config import DEFAULT_CONFIG, RunLoopConfig
from run_loop_driver.exceptions import (
    RetriesExhaustedError,
    RunLoopArgumentError,
    RunLoopTimeoutError,
    WriteFailedError,
)
from run_loop_driver.models.session import Session
from run_loop_driver.services.command_writer import write_request
from run_loop_driver.services.response_reader import read_response

logger = logging.getLogger(__name__)

# Writes that may or may not have reached the engine
AMBIGUOUS_WRITE_ERRORS = (WriteFailedError, InterruptedError, BrokenPipeError)


def send_command(
    session: Session,
    command: str,
    timeout: Optional[float] = None,
    interrupt_retry_timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    config: Optional[RunLoopConfig] = None,
) -> Dict[str, Any]:
    """Send ``command`` to the run-loop and return its parsed result.

    An ambiguous write is followed by a recovery read for the would-be index;
    if the result shows up the command counts as delivered, otherwise the
    whole send is retried. After ``max_retries`` retries the last write error
    is raised.

    A clean write followed by a missing result is not retried: the engine may
    be wedged and the session should be relaunched.

    Raises:
        RunLoopArgumentError: If ``command`` is not a string.
        RunLoopTimeoutError: If the result never arrives after a clean write.
        FatalEngineError: If the log reports an unrecoverable engine failure.
    """
    config = config or DEFAULT_CONFIG
    timeout = config.command_timeout if timeout is None else timeout
    if interrupt_retry_timeout is None:
        interrupt_retry_timeout = config.interrupt_retry_timeout
    max_retries = config.max_retries if max_retries is None else max_retries

    if not isinstance(command, str):
        raise RunLoopArgumentError(f"Illegal command {command!r} (must be a string)")

    last_error: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        expected_index = session.command_sequence
        try:
            expected_index = write_request(session, command, config)
        except AMBIGUOUS_WRITE_ERRORS as write_error:
            session.command_sequence = expected_index
            logger.info(f"Write request failed: {write_error}. Attempting recovery...")
            logger.info(
                f"Attempting read in case the request was received... "
                f"Please wait ({interrupt_retry_timeout})..."
            )
            try:
                result = read_response(
                    session, expected_index, timeout=interrupt_retry_timeout, config=config
                )
            except RunLoopTimeoutError:
                logger.info(
                    f"Read did not result in a response for index {expected_index}... "
                    f"Retrying send_command (attempt {attempt + 1}/{max_retries + 1})"
                )
                last_error = write_error
                continue

            session.command_sequence = expected_index + 1
            logger.info(
                f"Did read response for interrupted request of index {expected_index}... "
                "Proceeding."
            )
            return result

        try:
            return read_response(session, expected_index, timeout=timeout, config=config)
        except RunLoopTimeoutError:
            raise RunLoopTimeoutError(
                f"Time out waiting for UIAutomation run-loop for command {command}. "
                f"Waiting for index:{expected_index}"
            )

    if last_error is not None:
        raise last_error
    raise RetriesExhaustedError(f"Max retries exceeded {max_retries}. No error recorded.")
