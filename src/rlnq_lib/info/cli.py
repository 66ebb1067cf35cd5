# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console

from rlnq_lib.core.click_format import GNUHelpColorsCommand
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.registry import get_registry
from rlnq_lib.store.file_store import FileJobStore

from .presenter import JobsPresenter, RecordPresenter, TypesPresenter

logger = get_logger(__name__)

_project_option = click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Path to the project directory. Defaults to the current directory.",
)


@click.command(
    short_help="Display information about a job.",
    help=f"""Display information about the status and properties of the specified rlnq job,
or of all rlnq jobs of the project.

{click.style("JOB_ID", fg="green")}   The name of the job to display information for, e.g. Job012. Optional.

If JOB_ID is not specified, `{CFG.binary_name} info` shows all jobs recorded in the project.""",
    cls=GNUHelpColorsCommand,
    help_options_color="bright_blue",
)
@click.argument(
    "job",
    type=str,
    metavar=click.style("JOB_ID", fg="green"),
    required=False,
    default=None,
)
@_project_option
@click.option(
    "-s", "--short", is_flag=True, help="Display only the job name and current status."
)
def info(job: str | None, project: Path | None, short: bool) -> NoReturn:
    """
    Get information about the specified job or all jobs of the project.
    """
    try:
        store = FileJobStore(project or Path.cwd())
        if job:
            records = [store.get(job)]
        elif not (records := store.list()):
            raise RlnqError(f"No rlnq job found in '{store.directory}'.")

        console = Console()
        for record in records:
            _info_for_job(console, record, short)
        sys.exit(0)
    except RlnqError as e:
        logger.error(e)
        sys.exit(CFG.exit_codes.default)
    except Exception as e:
        logger.critical(e, exc_info=True, stack_info=True)
        sys.exit(CFG.exit_codes.unexpected_error)


def _info_for_job(console: Console, record: JobRecord, short: bool) -> None:
    presenter = RecordPresenter(record)
    if short:
        console.print(presenter.getShortInfo())
    else:
        console.print(presenter.createFullInfoPanel(console))


@click.command(
    short_help="Display a summary of the project's jobs.",
    help="Display a summary of the jobs of a project. By default, only pending and running jobs are shown.",
    cls=GNUHelpColorsCommand,
    help_options_color="bright_blue",
)
@_project_option
@click.option(
    "-a",
    "--all",
    is_flag=True,
    help="Include both unfinished and finished jobs in the summary.",
)
@click.option("--yaml", is_flag=True, help="Output the job records in YAML format.")
def jobs(project: Path | None, all: bool, yaml: bool) -> NoReturn:
    try:
        records = FileJobStore(project or Path.cwd()).list()
        if not all:
            records = [r for r in records if not r.status.isTerminal()]

        if not records:
            logger.info("No jobs found.")
            sys.exit(0)

        if yaml:
            for record in records:
                print(record.toYaml())
        else:
            console = Console(record=False, markup=False)
            console.print(JobsPresenter(records).createJobsInfoPanel(console))

        sys.exit(0)
    except RlnqError as e:
        logger.error(e)
        sys.exit(CFG.exit_codes.default)
    except Exception as e:
        logger.critical(e, exc_info=True, stack_info=True)
        sys.exit(CFG.exit_codes.unexpected_error)


@click.command(
    short_help="List the supported job types.",
    help="List the supported job types together with their output directories, compute tiers and aliases.",
    cls=GNUHelpColorsCommand,
    help_options_color="bright_blue",
)
def types() -> NoReturn:
    try:
        console = Console(record=False, markup=False)
        console.print(TypesPresenter(get_registry()).createTypesPanel(console))
        sys.exit(0)
    except RlnqError as e:
        logger.error(e)
        sys.exit(CFG.exit_codes.default)
    except Exception as e:
        logger.critical(e, exc_info=True, stack_info=True)
        sys.exit(CFG.exit_codes.unexpected_error)
