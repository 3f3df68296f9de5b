"""Launch service: starts, supervises and stops the automation engine."""

import logging
import shutil
import signal
import tempfile
from pathlib import Path
from typing import List, Optional

from run_loop_driver.clients.processes import process_client
from run_loop_driver.config import DEFAULT_CONFIG, RunLoopConfig
from run_loop_driver.constants import (
    DEBUGGER_PATTERN,
    DEFAULT_TRACE_TEMPLATE,
    ENGINE_APP_PATTERN,
    ENGINE_CLI_PATTERN,
    ENGINE_COMMAND,
    HANDSHAKE_COMMAND,
    HANDSHAKE_INDEX,
    LOG_FILE_NAME,
    PID_FILE_NAME,
    PIPE_FILE_NAME,
    RESULTS_DIR_PREFIX,
    SCREENSHOTS_DIR_NAME,
    TRACE_DIR_NAME,
)
from run_loop_driver.exceptions import LaunchRefusedError, RunLoopTimeoutError, WriteFailedError
from run_loop_driver.models.launch import LaunchOptions
from run_loop_driver.models.session import Session, UIAStrategy
from run_loop_driver.services.command_writer import write_pipe_line
from run_loop_driver.services.response_reader import read_response
from run_loop_driver.utils.device import (
    ArchitectureChecker,
    DeviceResolver,
    default_device_resolver,
    is_simulator_target,
)
from run_loop_driver.utils.frame import encode_command
from run_loop_driver.utils.script import ScriptAssembler, assemble_script, select_script

logger = logging.getLogger(__name__)

LAUNCH_REFUSED_MESSAGE = "\n".join(
    [
        "Please quit the Instruments.app.",
        "If Instruments.app is open, the instruments command line",
        "tool cannot take control of your application.",
    ]
)


def automation_template(config: RunLoopConfig) -> str:
    """Trace template for the engine: the configured file if it exists."""
    candidate = config.trace_template
    if candidate and Path(candidate).exists():
        return candidate
    return DEFAULT_TRACE_TEMPLATE


def build_engine_command(
    udid: Optional[str],
    app: str,
    results_dir: Path,
    script: Path,
    args: List[str],
    config: RunLoopConfig,
) -> List[str]:
    """Build the instruments command line for a run."""
    command = list(ENGINE_COMMAND)
    if udid:
        command.extend(["-w", udid])
    command.extend(["-D", str(results_dir / TRACE_DIR_NAME)])
    command.extend(["-t", automation_template(config)])
    command.append(app)
    command.extend(["-e", "UIARESULTSPATH", str(results_dir)])
    command.extend(["-e", "UIASCRIPT", str(script)])
    command.extend(args)
    return command


def _prepare_results_dir(results_dir: Optional[Path]) -> Path:
    if results_dir is None:
        results_dir = Path(tempfile.mkdtemp(prefix=RESULTS_DIR_PREFIX))
    results_dir = Path(results_dir)
    (results_dir / TRACE_DIR_NAME).mkdir(parents=True, exist_ok=True)
    return results_dir


def _validate_channel(session: Session, timeout: float, config: RunLoopConfig) -> None:
    """Send the handshake command and wait for the engine to answer it."""
    line = encode_command(HANDSHAKE_INDEX, HANDSHAKE_COMMAND)
    try:
        write_pipe_line(session.pipe_path, line, timeout, config.poll_interval)
        read_response(session, HANDSHAKE_INDEX, timeout=timeout, config=config)
    except (RunLoopTimeoutError, WriteFailedError):
        try:
            log_contents = session.log_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            log_contents = ""
        raise RunLoopTimeoutError(
            f"Time out waiting for UIAutomation run-loop to Start. \n"
            f"Logfile {session.log_path} \n\n {log_contents}\n"
        )


def _kill_spawned(pid: int) -> None:
    try:
        process_client.kill(pid, signal.SIGTERM)
    except OSError as e:
        logger.warning(f"Failed to terminate run-loop pid {pid} after failed launch: {e}")


def launch(
    options: LaunchOptions,
    config: Optional[RunLoopConfig] = None,
    resolve_device: DeviceResolver = default_device_resolver,
    assemble: ScriptAssembler = assemble_script,
    check_architecture: Optional[ArchitectureChecker] = None,
) -> Session:
    """Launch the automation engine and return a session bound to it.

    Raises:
        LaunchRefusedError: If Instruments.app is already running.
        RunLoopArgumentError: If the script or strategy cannot be resolved.
        RunLoopTimeoutError: If the launch handshake is not answered in time.
    """
    config = config or DEFAULT_CONFIG

    if process_client.is_running(ENGINE_APP_PATTERN):
        raise LaunchRefusedError(LAUNCH_REFUSED_MESSAGE)

    script, strategy = select_script(options, config)

    stale = process_client.kill_matching(ENGINE_CLI_PATTERN)
    if stale:
        logger.info(f"Terminated stale instruments processes: {stale}")

    target = resolve_device(options)
    results_dir = _prepare_results_dir(options.results_dir)
    assembled_script = assemble(script, results_dir, options, config)

    pipe_path = results_dir / PIPE_FILE_NAME
    pipe_path.unlink(missing_ok=True)
    if strategy == UIAStrategy.HOST:
        process_client.create_fifo(pipe_path, timeout=config.mkfifo_timeout)

    log_path = Path(options.log_path) if options.log_path else results_dir / LOG_FILE_NAME

    app = options.app
    if not is_simulator_target(target) and options.bundle_id:
        app = options.bundle_id

    if is_simulator_target(target) and check_architecture is not None:
        check_architecture(app, target)

    command = build_engine_command(target, app, results_dir, assembled_script, options.args, config)
    logger.info(f"Starting on {target} App: {app}")
    logger.debug(" ".join(command))

    pid = None
    try:
        pid = process_client.spawn(command, log_path)
        (results_dir / PID_FILE_NAME).write_text(str(pid), encoding="utf-8")

        session = Session(
            pid=pid,
            log_path=log_path,
            pipe_path=pipe_path,
            results_dir=results_dir,
            udid=target,
            app=app,
            uia_strategy=strategy,
        )

        if options.validate_channel:
            _validate_channel(session, options.timeout, config)

        logger.info(f"Launched run-loop pid={pid} results_dir={results_dir}")
        return session

    except Exception as e:
        logger.error(f"Failed to launch run-loop: {e}")
        if pid is not None:
            _kill_spawned(pid)
        raise


def terminate(session: Session) -> None:
    """Signal the engine and any helper debugger processes. Never raises."""
    try:
        process_client.kill(session.pid, signal.SIGTERM)
    except OSError as e:
        logger.warning(f"Failed to terminate run-loop pid {session.pid}: {e}")

    try:
        killed = process_client.kill_matching(DEBUGGER_PATTERN)
        if killed:
            logger.info(f"Terminated debugger processes: {killed}")
    except OSError as e:
        logger.warning(f"Failed to terminate debugger processes: {e}")


def stop(session: Optional[Session], out_dir: Optional[Path] = None) -> List[Path]:
    """Terminate the run and copy its screenshots into ``out_dir``.

    Returns the paths of the copied screenshots.
    """
    if session is None:
        return []

    terminate(session)
    try:
        process_client.kill_matching(ENGINE_CLI_PATTERN)
    except OSError as e:
        logger.warning(f"Failed to terminate instruments processes: {e}")

    dest = Path(out_dir) if out_dir else Path.cwd()
    dest.mkdir(parents=True, exist_ok=True)

    copied = []
    if session.results_dir:
        for png in sorted((session.results_dir / SCREENSHOTS_DIR_NAME).glob("*.png")):
            copied.append(Path(shutil.copy(png, dest)))
    logger.info(f"Stopped run-loop pid={session.pid}, copied {len(copied)} screenshots")
    return copied
