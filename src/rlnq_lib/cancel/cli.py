# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console

from rlnq_lib.core.click_format import GNUHelpColorsCommand
from rlnq_lib.core.common import yes_or_no_prompt
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.info.presenter import RecordPresenter
from rlnq_lib.store.file_store import FileJobStore

from .canceller import Canceller

logger = get_logger(__name__)
console = Console()


@click.command(
    short_help="Cancel a job.",
    help=f"""Cancel the specified rlnq job.

{click.style("JOB_ID", fg="green")}   The name of the job to cancel, e.g. Job012.

By default, `{CFG.binary_name} cancel` prompts for confirmation before cancelling a job.

Without the `--force` flag, `{CFG.binary_name} cancel` only cancels jobs that are pending or running.
When the `--force` flag is used, `{CFG.binary_name} cancel` attempts to terminate the job regardless of its status.
The status of a job that has already finished is never changed.""",
    cls=GNUHelpColorsCommand,
    help_options_color="bright_blue",
)
@click.argument("job", type=str, metavar=click.style("JOB_ID", fg="green"))
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Path to the project directory. Defaults to the current directory.",
)
@click.option("-y", "--yes", is_flag=True, help="Cancel the job without confirmation.")
@click.option(
    "--force",
    is_flag=True,
    help="Cancel the job forcibly, ignoring its current status and without confirmation.",
)
def cancel(job: str, project: Path | None, yes: bool = False, force: bool = False) -> NoReturn:
    """
    Cancel the specified job of a project.
    """
    try:
        store = FileJobStore(project or Path.cwd())
        cancel_job(Canceller(store), job, force, yes)
        sys.exit(0)
    except RlnqError as e:
        logger.error(e)
        sys.exit(CFG.exit_codes.default)
    except Exception as e:
        logger.critical(e, exc_info=True, stack_info=True)
        sys.exit(CFG.exit_codes.unexpected_error)


def cancel_job(canceller: Canceller, job_id: str, force: bool, yes: bool) -> None:
    """
    Attempt to cancel the job.

    Args:
        canceller (Canceller): Canceller bound to the project's job store.
        job_id (str): Name of the job.
        force (bool): Whether to cancel the job regardless of its status.
        yes (bool): Whether to skip confirmation before cancellation.

    Raises:
        NotSuitableError: If the job is not suitable for cancellation.
        RlnqError: If the job cannot be cancelled.
    """
    record = canceller.store.get(job_id)
    console.print(RecordPresenter(record).getShortInfo())

    # make sure that the job can actually be cancelled
    if not force:
        canceller.ensureSuitable(record)

    if force or yes or yes_or_no_prompt("Do you want to cancel the job?"):
        record = canceller.cancel(job_id, force)
        logger.info(f"Job '{record.id}' is {record.status}.")
    else:
        logger.info("Operation aborted.")
