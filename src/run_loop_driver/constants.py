"""Constants for the run-loop driver.

This module defines the fixed protocol values shared by the launcher, the
command writer and the response reader: frame delimiters, fatal log markers,
artifact file names and the process patterns used to find engine processes.

Tunable values (timeouts, poll intervals, debug toggles) live in
``run_loop_driver.config.RunLoopConfig`` instead.
"""

from pathlib import Path

# =============================================================================
# Response Frame Format
# =============================================================================
# The engine appends each result as: OUTPUT_JSON:\n{...}\nEND_OUTPUT
START_DELIMITER = b"OUTPUT_JSON:\n"
END_DELIMITER = b"\nEND_OUTPUT"
# The JSON object always closes immediately before the end delimiter
FRAME_CLOSE = b"}" + END_DELIMITER

# Field carrying the sequence index of a command result
RESULT_INDEX_FIELD = "index"
# Field carrying the sequence index of a write acknowledgement
ACK_INDEX_FIELD = "last_index"

# =============================================================================
# Fatal Log Markers
# =============================================================================
# Accessibility could not be registered; the run-loop will never respond
AX_REGISTRATION_FAILED_MARKER = b"AXError: Could not auto-register for pid status change"
# Sub-marker meaning accessibility is disabled on the device/simulator
AX_SERVER_NOT_FOUND_MARKER = b"kAXErrorServerNotFound"
# The automation instrument itself crashed while running the script
ENGINE_EXCEPTION_MARKER = b"Automation Instrument ran into an exception"

# =============================================================================
# Command Channel
# =============================================================================
# Handshake sent with index 0 right after launch to prove the channel works
HANDSHAKE_INDEX = 0
HANDSHAKE_COMMAND = "UIALogger.logMessage('Listening for run loop commands')"

# Index assigned to the first real command of a session
FIRST_COMMAND_INDEX = 1

# =============================================================================
# Results Directory Layout
# =============================================================================
RESULTS_DIR_PREFIX = "run_loop"
TRACE_DIR_NAME = "trace"
PIPE_FILE_NAME = "repl-cmd.pipe"
LOG_FILE_NAME = "run_loop.out"
PID_FILE_NAME = "run_loop.pid"
SESSION_FILE_NAME = "run_loop.session.json"
ASSEMBLED_SCRIPT_NAME = "_run_loop.js"
# Instruments stores screenshots of the first run here
SCREENSHOTS_DIR_NAME = "Run 1"

# =============================================================================
# Automation Scripts
# =============================================================================
# Default location of the bundled run-loop scripts (overridable via config)
SCRIPTS_DIR = Path(__file__).parent / "scripts"

SCRIPTS = {
    "dismiss": "run_dismiss_location.js",
    "run_loop_fast_uia": "run_loop_fast_uia.js",
    "run_loop_shared_element": "run_loop_shared_element.js",
    "run_loop_host": "run_loop_host.js",
    "run_loop_basic": "run_loop_basic.js",
}

# Helper scripts whose paths are substituted into the assembled script
READ_SCRIPT_NAME = "read-cmd.sh"
TIMEOUT_SCRIPT_NAME = "timeout3"

# =============================================================================
# Engine Invocation
# =============================================================================
ENGINE_COMMAND = ["xcrun", "instruments"]
DEFAULT_TRACE_TEMPLATE = "Automation"
DEFAULT_SIMULATOR = "iPhone 5 (8.2 Simulator)"
# CoreSimulator device UDIDs are UUIDs; physical device UDIDs are not
SIMULATOR_UDID_PATTERN = r"^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$"

# Process patterns matched against `ps x -o pid,command` output
ENGINE_APP_PATTERN = r"Instruments\.app/Contents/MacOS/Instruments"
ENGINE_CLI_PATTERN = r"(?:^|/|\s)instruments(?:\s|$)"
DEBUGGER_PATTERN = r"(?:^|/|\s)lldb(?:\s|$)"
