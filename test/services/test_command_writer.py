"""Unit tests for the command writer."""

import os
import threading
import time
from unittest.mock import patch

import pytest

from run_loop_driver.config import RunLoopConfig
from run_loop_driver.exceptions import (
    FatalEngineError,
    RunLoopArgumentError,
    RunLoopTimeoutError,
    WriteFailedError,
)
from run_loop_driver.models.session import Session
from run_loop_driver.services import command_writer
from run_loop_driver.services.command_writer import write_request

FAST_CONFIG = RunLoopConfig(poll_interval=0.01, empty_log_poll_interval=0.01, write_ack_timeout=0.2)


@pytest.fixture
def session(tmp_path):
    # A regular file stands in for the FIFO
    return Session(
        pid=1234,
        log_path=tmp_path / "run_loop.out",
        pipe_path=tmp_path / "repl-cmd.pipe",
        command_sequence=5,
    )


def pipe_lines(session):
    return session.pipe_path.read_text().splitlines()


def written_lines(mock_write):
    return [c.args[1] for c in mock_write.call_args_list]


class TestWriteRequest:
    def test_ack_in_log_accepts_write(self, session):
        session.log_path.write_bytes(b'OUTPUT_JSON:\n{"last_index": 5}\nEND_OUTPUT\n')

        index = write_request(session, "target.tap()", FAST_CONFIG)

        assert index == 5
        assert session.command_sequence == 6
        assert pipe_lines(session) == ["5:target.tap()"]

    @patch("run_loop_driver.services.command_writer.read_response")
    def test_ack_read_uses_last_index_field(self, mock_read, session):
        mock_read.return_value = {"last_index": 5}

        write_request(session, "cmd", FAST_CONFIG)

        mock_read.assert_called_once_with(
            session, 5, timeout=0.2, match_field="last_index", config=FAST_CONFIG
        )

    @patch("run_loop_driver.services.command_writer.read_response")
    def test_backslashes_are_escaped_on_the_pipe(self, mock_read, session):
        mock_read.return_value = {"last_index": 5}

        write_request(session, "a\\b", FAST_CONFIG)

        assert pipe_lines(session) == ["5:a\\\\\\\\b"]

    @patch.object(command_writer, "_write_line", wraps=command_writer._write_line)
    @patch("run_loop_driver.services.command_writer.read_response")
    def test_second_attempt_succeeds(self, mock_read, mock_write, session):
        mock_read.side_effect = [RunLoopTimeoutError("no ack"), {"last_index": 5}]

        index = write_request(session, "cmd", FAST_CONFIG)

        assert index == 5
        assert session.command_sequence == 6
        assert written_lines(mock_write) == ["5:cmd", "5:cmd"]

    @patch.object(command_writer, "_write_line", wraps=command_writer._write_line)
    @patch("run_loop_driver.services.command_writer.read_response")
    def test_two_missing_acks_raise_write_failed(self, mock_read, mock_write, session):
        mock_read.side_effect = RunLoopTimeoutError("no ack")

        with pytest.raises(WriteFailedError, match="at index 5"):
            write_request(session, "cmd", FAST_CONFIG)

        assert mock_read.call_count == 2
        assert written_lines(mock_write) == ["5:cmd", "5:cmd"]
        assert pipe_lines(session) == ["5:cmd"]
        assert session.command_sequence == 5

    def test_write_failed_with_real_reader(self, session):
        session.log_path.write_bytes(b'OUTPUT_JSON:\n{"last_index": 4}\nEND_OUTPUT\n')

        with pytest.raises(WriteFailedError):
            write_request(session, "cmd", FAST_CONFIG)

        assert session.command_sequence == 5

    @patch("run_loop_driver.services.command_writer.read_response")
    def test_fatal_engine_error_is_not_retried(self, mock_read, session):
        mock_read.side_effect = FatalEngineError("AXError")

        with pytest.raises(FatalEngineError):
            write_request(session, "cmd", FAST_CONFIG)

        assert pipe_lines(session) == ["5:cmd"]
        assert session.command_sequence == 5

    @patch.object(command_writer, "_write_line", wraps=command_writer._write_line)
    @patch("run_loop_driver.services.command_writer.read_response")
    def test_sequence_advances_by_one_per_accepted_write(self, mock_read, mock_write, session):
        mock_read.side_effect = lambda s, index, **kwargs: {"last_index": index}

        assert [write_request(session, f"cmd{i}", FAST_CONFIG) for i in range(3)] == [5, 6, 7]
        assert session.command_sequence == 8
        assert written_lines(mock_write) == ["5:cmd0", "6:cmd1", "7:cmd2"]

    def test_missing_pipe_path_is_an_argument_error(self, session):
        session.pipe_path = None

        with pytest.raises(RunLoopArgumentError):
            write_request(session, "cmd", FAST_CONFIG)


class TestWriteRequestOnFifo:
    @pytest.fixture
    def fifo_session(self, session):
        os.mkfifo(session.pipe_path)
        return session

    def test_fifo_without_reader_fails_within_ack_timeout(self, fifo_session):
        started = time.monotonic()

        with pytest.raises(WriteFailedError, match="No reader"):
            write_request(fifo_session, "cmd", FAST_CONFIG)

        assert time.monotonic() - started < 2
        assert fifo_session.command_sequence == 5

    def test_write_waits_for_reader_to_open_fifo(self, fifo_session):
        fifo_session.log_path.write_bytes(b'OUTPUT_JSON:\n{"last_index": 5}\nEND_OUTPUT\n')
        received = []

        def read_pipe():
            with open(fifo_session.pipe_path) as pipe:
                received.append(pipe.read())

        reader = threading.Timer(0.05, read_pipe)
        reader.start()
        config = FAST_CONFIG.model_copy(update={"write_ack_timeout": 2.0})

        index = write_request(fifo_session, "target.tap()", config)
        reader.join(timeout=2)

        assert index == 5
        assert received == ["5:target.tap()\n"]
