# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import sys
from pathlib import Path
from typing import NoReturn

import click

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.project import ProjectContext
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.registry.registry import JobTypeRegistry, get_registry
from rlnq_lib.store.file_store import FileJobStore
from rlnq_lib.store.interface import JobStore
from rlnq_lib.submit.engine import SubmissionEngine

logger = get_logger(__name__)


@click.command(
    hidden=True,
    help=f"Run a submitted local job and record its completion. {click.style('Do not run directly!', fg='red')}",
)
@click.argument("job", type=str, metavar=click.style("JOB_ID", fg="green"))
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Path to the project directory. Defaults to the current directory.",
)
def run(job: str, project: Path | None) -> NoReturn:
    """
    Entrypoint of the process supervising a locally started job.

    Started by `rlnq submit` in a separate session, so the job is followed
    to its end even when the submitting process exits.

    Exits:
        0 if the job succeeded,
        91 if the job failed or could not be started,
        99 on an unexpected error.
    """
    try:
        status = run_job(FileJobStore(project or Path.cwd()), job)
        if status != JobStatus.SUCCESS:
            raise RlnqError(f"Job '{job}' finished with status '{status}'.")
        sys.exit(0)
    except RlnqError as e:
        logger.error(e)
        sys.exit(CFG.exit_codes.default)
    except Exception as e:
        logger.critical(e, exc_info=True, stack_info=True)
        sys.exit(CFG.exit_codes.unexpected_error)


def run_job(store: JobStore, job_id: str, registry: JobTypeRegistry | None = None) -> JobStatus:
    """
    Start the stored command of a job, wait for it and its post-command.

    Returns:
        JobStatus: Status of the job afterwards.

    Raises:
        StoreError: If the record cannot be loaded.
        UnknownJobTypeError: If the job kind is not registered.
    """
    record = store.get(job_id)
    definition = (registry or get_registry()).getDefinition(record.job_type)
    builder = definition.builder(dict(record.params), ProjectContext(record.project), record.to_queue)

    engine = SubmissionEngine(store)
    engine.runLocally(record, builder)
    engine.wait()

    return store.get(job_id).status
