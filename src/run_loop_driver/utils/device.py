"""Device target resolution.

Discovery of connected devices and simulators is outside this package; the
launcher only needs an opaque identifier for the ``-w`` flag of the engine.
"""

import re
from typing import Protocol

from run_loop_driver.constants import DEFAULT_SIMULATOR, SIMULATOR_UDID_PATTERN
from run_loop_driver.models.launch import LaunchOptions


class DeviceResolver(Protocol):
    def __call__(self, options: LaunchOptions) -> str: ...


class ArchitectureChecker(Protocol):
    """Raises if ``app`` cannot run on the simulator ``target``."""

    def __call__(self, app: str, target: str) -> None: ...


def default_device_resolver(options: LaunchOptions) -> str:
    """Use the explicit udid or device target, else the default simulator."""
    target = options.udid or options.device_target
    if not target or target.lower() == "simulator":
        return DEFAULT_SIMULATOR
    return target


def is_simulator_target(target: str) -> bool:
    """True for simulator names such as ``iPhone 6 (8.1 Simulator)`` and simulator UDIDs."""
    if not target:
        return True
    if re.match(SIMULATOR_UDID_PATTERN, target):
        return True
    return "simulator" in target.lower()
