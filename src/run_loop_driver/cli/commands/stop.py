"""Stop command for the run-loop CLI."""

from pathlib import Path

import click

from run_loop_driver.models.session import Session
from run_loop_driver.services import launch_service


@click.command()
@click.option(
    "--session",
    "session_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Session file written by `run-loop launch`",
)
@click.option(
    "--out",
    type=click.Path(file_okay=False, path_type=Path),
    help="Where to copy screenshots (default: current directory)",
)
def stop(session_file, out):
    """Stop the run-loop and collect its screenshots."""
    session = Session.load(session_file)
    copied = launch_service.stop(session, out)
    click.echo(f"Stopped run-loop pid {session.pid}")
    for path in copied:
        click.echo(f"Copied {path}")
