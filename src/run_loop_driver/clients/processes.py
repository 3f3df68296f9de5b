"""Process client for finding, spawning and signalling engine processes."""

import logging
import os
import re
import signal
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from run_loop_driver.exceptions import RunLoopTimeoutError

logger = logging.getLogger(__name__)


class ProcessClient:
    """Thin wrapper over ps/kill/mkfifo used by the launcher.

    Processes started by ``spawn`` are kept so that ``kill`` can reap them.
    """

    def __init__(self, reap_timeout: float = 2.0):
        self.reap_timeout = reap_timeout
        self._children: Dict[int, subprocess.Popen] = {}

    def list_processes(self) -> List[Tuple[int, str]]:
        """Return (pid, command) for every process of the current user."""
        result = subprocess.run(
            ["ps", "x", "-o", "pid=,command="],
            capture_output=True,
            text=True,
            check=False,
        )
        processes = []
        for line in result.stdout.splitlines():
            pid, _, command = line.strip().partition(" ")
            if pid.isdigit():
                processes.append((int(pid), command.strip()))
        return processes

    def find_pids(self, pattern: str) -> List[int]:
        """Return pids whose command line matches ``pattern``."""
        regex = re.compile(pattern)
        own_pid = os.getpid()
        return [
            pid
            for pid, command in self.list_processes()
            if pid != own_pid and regex.search(command)
        ]

    def is_running(self, pattern: str) -> bool:
        return bool(self.find_pids(pattern))

    def kill(self, pid: int, sig: int = signal.SIGTERM) -> bool:
        """Send ``sig`` to ``pid``. Returns False if the process is already gone."""
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            logger.debug(f"Process {pid} already gone")
            return False
        self._reap(pid)
        return True

    def _reap(self, pid: int) -> None:
        process = self._children.get(pid)
        if process is None:
            return
        try:
            process.wait(timeout=self.reap_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {pid} still running {self.reap_timeout}s after signal")
            return
        del self._children[pid]

    def kill_matching(self, pattern: str, sig: int = signal.SIGTERM) -> List[int]:
        """Signal every process matching ``pattern``; return the pids signalled."""
        killed = []
        for pid in self.find_pids(pattern):
            try:
                if self.kill(pid, sig):
                    killed.append(pid)
            except PermissionError as e:
                logger.warning(f"Failed to signal process {pid}: {e}")
        return killed

    def spawn(self, command: Sequence[str], log_path: Path) -> int:
        """Start ``command`` detached, with stdout and stderr sent to ``log_path``."""
        with open(log_path, "ab") as log_handle:
            process = subprocess.Popen(
                list(command),
                stdin=subprocess.DEVNULL,
                stdout=log_handle,
                stderr=log_handle,
                close_fds=True,
                start_new_session=True,
            )
        self._children[process.pid] = process
        logger.info(f"Spawned process {process.pid}: {' '.join(command)}")
        return process.pid

    def create_fifo(self, path: Path, timeout: float = 5.0) -> Path:
        """Create a named pipe at ``path``, replacing whatever is there."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                path.unlink(missing_ok=True)
                os.mkfifo(path)
                return path
            except InterruptedError:
                time.sleep(0.1)
        raise RunLoopTimeoutError("Unable to create pipe (mkfifo failed)")


process_client = ProcessClient()
