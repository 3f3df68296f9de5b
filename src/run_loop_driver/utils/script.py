"""Run-loop script selection and assembly."""

import shutil
from pathlib import Path
from typing import Optional, Protocol, Tuple

from run_loop_driver.config import RunLoopConfig
from run_loop_driver.constants import (
    ASSEMBLED_SCRIPT_NAME,
    READ_SCRIPT_NAME,
    SCRIPTS,
    TIMEOUT_SCRIPT_NAME,
)
from run_loop_driver.exceptions import RunLoopArgumentError
from run_loop_driver.models.launch import LaunchOptions
from run_loop_driver.models.session import UIAStrategy

DEFAULT_SCRIPT_FOR_STRATEGY = {
    UIAStrategy.PREFERENCES: "run_loop_fast_uia",
    UIAStrategy.HOST: "run_loop_host",
    UIAStrategy.SHARED_ELEMENT: "run_loop_shared_element",
}

# Strategy implied when a script is requested by key without a strategy
STRATEGY_FOR_SCRIPT_KEY = {key: strategy for strategy, key in DEFAULT_SCRIPT_FOR_STRATEGY.items()}


class ScriptAssembler(Protocol):
    def __call__(
        self, script: Path, results_dir: Path, options: LaunchOptions, config: RunLoopConfig
    ) -> Path: ...


def script_for_key(key: str, config: RunLoopConfig) -> Optional[Path]:
    if key not in SCRIPTS:
        return None
    return Path(config.scripts_dir) / SCRIPTS[key]


def _require_file(script: Path) -> Path:
    if not script.exists():
        raise RunLoopArgumentError(f"Unable to find file: {script}")
    return script


def select_script(options: LaunchOptions, config: RunLoopConfig) -> Tuple[Path, UIAStrategy]:
    """Pick the run-loop script and the UIA strategy that goes with it.

    A script path implies the host strategy unless one is given; a bare
    strategy selects its default script; nothing at all means preferences.

    Raises:
        RunLoopArgumentError: If the script file is missing or a script key
            has no strategy.
    """
    strategy = options.uia_strategy
    requested = options.script

    if requested is None:
        strategy = strategy or UIAStrategy.PREFERENCES
        script = script_for_key(DEFAULT_SCRIPT_FOR_STRATEGY[strategy], config)
        return _require_file(script), strategy

    if requested in SCRIPTS:
        script = script_for_key(requested, config)
        if strategy is None:
            strategy = STRATEGY_FOR_SCRIPT_KEY.get(requested)
        if strategy is None:
            raise RunLoopArgumentError(
                f"Inconsistent state: script {requested} has no uia_strategy"
            )
        return _require_file(script), strategy

    script = Path(requested).expanduser()
    return _require_file(script), strategy or UIAStrategy.HOST


def assemble_script(
    script: Path, results_dir: Path, options: LaunchOptions, config: RunLoopConfig
) -> Path:
    """Copy dependencies next to the script and expand its placeholders.

    Writes ``_run_loop.js`` into ``results_dir`` and returns its path.
    """
    for dependency in options.dependencies:
        shutil.copy(dependency, results_dir)

    scripts_dir = Path(config.scripts_dir)
    code = Path(script).read_text(encoding="utf-8")
    code = code.replace("$PATH", str(results_dir))
    code = code.replace("$READ_SCRIPT_PATH", str(scripts_dir / READ_SCRIPT_NAME))
    code = code.replace("$TIMEOUT_SCRIPT_PATH", str(scripts_dir / TIMEOUT_SCRIPT_NAME))
    if not options.no_flush:
        code = code.replace("$MODE", "FLUSH")

    assembled = results_dir / ASSEMBLED_SCRIPT_NAME
    assembled.write_text(code + "\n", encoding="utf-8")
    return assembled
