"""Entry point for the run-loop CLI."""

import logging

import click

from run_loop_driver.cli.commands.launch import launch
from run_loop_driver.cli.commands.send import send
from run_loop_driver.cli.commands.stop import stop
from run_loop_driver.config import RunLoopConfig


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging (same as DEBUG=1)")
@click.pass_context
def cli(ctx, debug):
    """Drive a UIAutomation run-loop through its command pipe and log file."""
    config = RunLoopConfig.from_env()
    if debug:
        config.debug = True
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


cli.add_command(launch)
cli.add_command(send)
cli.add_command(stop)


if __name__ == "__main__":
    cli()
