"""Launch command for the run-loop CLI."""

from pathlib import Path

import click

from run_loop_driver.constants import SESSION_FILE_NAME
from run_loop_driver.exceptions import RunLoopError
from run_loop_driver.models.launch import LaunchOptions
from run_loop_driver.models.session import UIAStrategy
from run_loop_driver.services import launch_service


@click.command(context_settings={"ignore_unknown_options": True})
@click.option("--app", required=True, help="App bundle path (simulator) or bundle id (device)")
@click.option("--device-target", help="Device udid or simulator name (default: simulator)")
@click.option("--bundle-id", help="Bundle id to use when targeting a physical device")
@click.option("--script", help="Run-loop script path or script key")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in UIAStrategy]),
    help="UIA strategy (default: derived from the script)",
)
@click.option(
    "--results-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for results and traces (default: a new temp dir)",
)
@click.option("--timeout", default=30.0, show_default=True, help="Launch handshake timeout")
@click.option("--no-validate", is_flag=True, help="Skip the launch handshake")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def launch(config, app, device_target, bundle_id, script, strategy, results_dir, timeout, no_validate, args):
    """Launch the automation engine and save the session file."""
    options = LaunchOptions(
        app=app,
        device_target=device_target,
        bundle_id=bundle_id,
        script=script,
        uia_strategy=UIAStrategy(strategy) if strategy else None,
        results_dir=results_dir,
        args=list(args),
        timeout=timeout,
        validate_channel=not no_validate,
    )
    try:
        session = launch_service.launch(options, config)
    except RunLoopError as e:
        raise click.ClickException(str(e))

    session_file = session.save(session.results_dir / SESSION_FILE_NAME)
    click.echo(f"Run-loop started: pid {session.pid}")
    click.echo(f"Session file: {session_file}")
