"""Send command for the run-loop CLI."""

import json
from pathlib import Path

import click

from run_loop_driver.exceptions import RunLoopError
from run_loop_driver.models.session import Session
from run_loop_driver.services.command_service import send_command


@click.command()
@click.option(
    "--session",
    "session_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Session file written by `run-loop launch`",
)
@click.option("--timeout", type=float, help="Seconds to wait for the result")
@click.argument("command")
@click.pass_obj
def send(config, session_file, timeout, command):
    """Send COMMAND to the run-loop and print its result."""
    session = Session.load(session_file)
    try:
        result = send_command(session, command, timeout=timeout, config=config)
    except RunLoopError as e:
        raise click.ClickException(str(e))
    finally:
        # Sequence and offset may have moved even when the command failed
        session.save(session_file)

    click.echo(json.dumps(result))
