# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import sys

import click
from click_help_colors import HelpColorsGroup

from rlnq_lib.cancel.cli import cancel
from rlnq_lib.info.cli import info, jobs, types
from rlnq_lib.run.cli import run
from rlnq_lib.submit.cli import submit

__version__ = "0.1.0"

# support both --help and -h
_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(
    cls=HelpColorsGroup,
    help_options_color="bright_blue",
    invoke_without_command=True,
    context_settings=_CONTEXT_SETTINGS,
)
@click.option(
    "--version",
    is_flag=True,
    help="Print the current version of rlnq and exit.",
)
@click.pass_context
def cli(ctx: click.Context, version: bool):
    """
    Run any rlnq command.

    rlnq validates, builds and submits RELION processing jobs,
    either to a Slurm queue or as local processes, and keeps a record of each job.
    """
    if version:
        print(__version__)
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        sys.exit(0)


cli.add_command(submit)
cli.add_command(cancel)
cli.add_command(info)
cli.add_command(jobs)
cli.add_command(types)
cli.add_command(run)
