"""Launch options model."""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from run_loop_driver.models.session import UIAStrategy


class LaunchOptions(BaseModel):
    """Everything the launcher needs to start the automation engine.

    ``script`` is either a path to a run-loop script or one of the keys in
    ``run_loop_driver.constants.SCRIPTS``.
    """

    app: str
    device_target: Optional[str] = None
    udid: Optional[str] = None
    bundle_id: Optional[str] = None
    script: Optional[str] = None
    uia_strategy: Optional[UIAStrategy] = None
    results_dir: Optional[Path] = None
    log_path: Optional[Path] = None
    args: List[str] = Field(default_factory=list)
    dependencies: List[Path] = Field(default_factory=list)
    # Seconds to wait for the launch handshake
    timeout: float = 30.0
    no_flush: bool = False
    validate_channel: bool = True
