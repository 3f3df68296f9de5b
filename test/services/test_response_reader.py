"""Unit tests for the response reader, using real log files."""

import json
import logging
import threading
import time

import pytest

from run_loop_driver.config import RunLoopConfig
from run_loop_driver.exceptions import FatalEngineError, RunLoopTimeoutError
from run_loop_driver.models.session import Session
from run_loop_driver.services.response_reader import read_response

FAST_CONFIG = RunLoopConfig(poll_interval=0.01, empty_log_poll_interval=0.01)


def frame_bytes(payload: dict) -> bytes:
    return b"OUTPUT_JSON:\n" + json.dumps(payload).encode() + b"\nEND_OUTPUT\n"


def append(path, data: bytes) -> None:
    with open(path, "ab") as f:
        f.write(data)


@pytest.fixture
def session(tmp_path):
    return Session(pid=1234, log_path=tmp_path / "run_loop.out", pipe_path=tmp_path / "repl-cmd.pipe")


class TestReadResponseMatching:
    def test_returns_matching_frame(self, session):
        content = b"Instruments Trace Complete\n" + frame_bytes({"index": 1, "value": "ok"})
        append(session.log_path, content)

        result = read_response(session, 1, timeout=1.0, config=FAST_CONFIG)

        assert result == {"index": 1, "value": "ok"}
        assert session.consumed_offset == len(content) - 1  # trailing newline not consumed

    def test_sequential_frames_are_returned_in_order(self, session):
        for index in (1, 2, 3):
            append(session.log_path, b"Default: tick\n" + frame_bytes({"index": index}))

        offsets = []
        for index in (1, 2, 3):
            result = read_response(session, index, timeout=1.0, config=FAST_CONFIG)
            assert result["index"] == index
            offsets.append(session.consumed_offset)

        assert offsets == sorted(set(offsets))

    def test_earlier_frame_is_never_returned_again(self, session):
        append(session.log_path, frame_bytes({"index": 1}))
        read_response(session, 1, timeout=1.0, config=FAST_CONFIG)
        offset = session.consumed_offset

        with pytest.raises(RunLoopTimeoutError):
            read_response(session, 1, timeout=0.1, config=FAST_CONFIG)

        assert session.consumed_offset == offset

    def test_stale_frame_is_skipped(self, session):
        content = frame_bytes({"index": 3, "value": "stale"}) + frame_bytes({"index": 5, "value": "fresh"})
        append(session.log_path, content)

        result = read_response(session, 5, timeout=1.0, config=FAST_CONFIG)

        assert result == {"index": 5, "value": "fresh"}
        assert session.consumed_offset == len(content) - 1

    def test_matches_on_requested_field(self, session):
        append(session.log_path, frame_bytes({"index": 5}) + frame_bytes({"last_index": 5}))

        result = read_response(session, 5, timeout=1.0, match_field="last_index", config=FAST_CONFIG)

        assert result == {"last_index": 5}

    def test_malformed_frame_is_skipped(self, session, caplog):
        append(session.log_path, b"OUTPUT_JSON:\n{not json}\nEND_OUTPUT\n" + frame_bytes({"index": 2}))

        with caplog.at_level(logging.WARNING):
            result = read_response(session, 2, timeout=1.0, config=FAST_CONFIG)

        assert result == {"index": 2}
        assert "malformed response frame" in caplog.text

    def test_waits_for_frame_written_later(self, session):
        append(session.log_path, b"starting\n")
        timer = threading.Timer(0.2, append, args=(session.log_path, frame_bytes({"index": 1})))
        timer.start()
        try:
            result = read_response(session, 1, timeout=5.0, config=FAST_CONFIG)
        finally:
            timer.cancel()

        assert result == {"index": 1}

    def test_waits_for_log_file_to_appear(self, session):
        timer = threading.Timer(0.2, append, args=(session.log_path, frame_bytes({"index": 0})))
        timer.start()
        try:
            result = read_response(session, 0, timeout=5.0, config=FAST_CONFIG)
        finally:
            timer.cancel()

        assert result == {"index": 0}


class TestReadResponsePartialFrames:
    def test_partial_frame_anchors_offset_at_start_marker(self, session):
        prefix = b"noise before the frame\n"
        append(session.log_path, prefix + b'OUTPUT_JSON:\n{"index": 1, "val')

        with pytest.raises(RunLoopTimeoutError):
            read_response(session, 1, timeout=0.2, config=FAST_CONFIG)

        assert session.consumed_offset == len(prefix)

    def test_repeated_reads_do_not_move_past_partial_frame(self, session):
        prefix = b"noise\n"
        append(session.log_path, prefix + b'OUTPUT_JSON:\n{"index": 1')

        for _ in range(2):
            with pytest.raises(RunLoopTimeoutError):
                read_response(session, 1, timeout=0.1, config=FAST_CONFIG)
            assert session.consumed_offset == len(prefix)

    def test_end_marker_unblocks_partial_frame(self, session):
        head = b'noise\nOUTPUT_JSON:\n{"index": 1, '
        tail = b'"value": "done"}\nEND_OUTPUT'
        append(session.log_path, head)
        with pytest.raises(RunLoopTimeoutError):
            read_response(session, 1, timeout=0.1, config=FAST_CONFIG)

        append(session.log_path, tail)
        result = read_response(session, 1, timeout=1.0, config=FAST_CONFIG)

        assert result == {"index": 1, "value": "done"}
        assert session.consumed_offset == len(head) + len(tail)


class TestReadResponseFailures:
    def test_accessibility_failure_is_fatal_immediately(self, session, caplog):
        append(
            session.log_path,
            b"AXError: Could not auto-register for pid status change\n"
            b"kAXErrorServerNotFound\n" + frame_bytes({"index": 1}),
        )

        started = time.monotonic()
        with caplog.at_level(logging.WARNING):
            with pytest.raises(FatalEngineError, match="AXError"):
                read_response(session, 1, timeout=60.0, config=FAST_CONFIG)

        assert time.monotonic() - started < 5.0
        assert "Accessibility is not enabled" in caplog.text

    def test_accessibility_failure_without_server_marker_does_not_warn(self, session, caplog):
        append(session.log_path, b"AXError: Could not auto-register for pid status change\n")

        with caplog.at_level(logging.WARNING):
            with pytest.raises(FatalEngineError):
                read_response(session, 1, timeout=60.0, config=FAST_CONFIG)

        assert "Accessibility is not enabled" not in caplog.text

    def test_engine_exception_is_fatal(self, session):
        append(session.log_path, b"Automation Instrument ran into an exception while running\n")

        with pytest.raises(FatalEngineError, match="Exception while running script"):
            read_response(session, 1, timeout=60.0, config=FAST_CONFIG)

    def test_markers_before_consumed_offset_are_ignored(self, session):
        old = b"Automation Instrument ran into an exception\n"
        append(session.log_path, old + frame_bytes({"index": 4}))
        session.consumed_offset = len(old)

        assert read_response(session, 4, timeout=1.0, config=FAST_CONFIG) == {"index": 4}

    def test_timeout_names_expected_index(self, session):
        append(session.log_path, b"nothing useful\n")

        with pytest.raises(RunLoopTimeoutError, match="index=7"):
            read_response(session, 7, timeout=0.1, config=FAST_CONFIG)

        assert session.consumed_offset == 0

    def test_timeout_when_log_never_appears(self, session):
        with pytest.raises(RunLoopTimeoutError):
            read_response(session, 1, timeout=0.1, config=FAST_CONFIG)
