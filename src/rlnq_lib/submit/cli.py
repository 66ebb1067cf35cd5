# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml
from click_option_group import MutuallyExclusiveOptionGroup, optgroup

from rlnq_lib.core.click_format import GNUHelpColorsCommand
from rlnq_lib.core.common import load_yaml_loader
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.project import ProjectContext
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.store.file_store import FileJobStore

from .engine import SubmissionEngine
from .orchestrator import submit_job

logger = get_logger(__name__)

SafeLoader: type[yaml.SafeLoader] = load_yaml_loader()


@click.command(
    short_help="Submit a processing job.",
    help=f"""
Validate, build and submit a processing job.

{click.style("JOB_TYPE", fg="green")}   Kind of the job or any of its aliases (see `{CFG.binary_name} types`).

Job parameters are read from a YAML (or JSON) file and/or provided as KEY=VALUE pairs.
Pairs provided on the command line override the values from the file.

Jobs run locally are waited for unless `--no-wait` is used.
A job started with `--no-wait` is still followed to its end and its record updated.
""",
    cls=GNUHelpColorsCommand,
    help_options_color="bright_blue",
)
@click.argument("job_type", type=str, metavar=click.style("JOB_TYPE", fg="green"))
@optgroup.group(f"{click.style('Project', fg='yellow')}", cls=MutuallyExclusiveOptionGroup)
@optgroup.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Path to the project directory. Defaults to the current directory.",
)
@optgroup.option(
    "--project-name",
    type=str,
    default=None,
    help=f"Name of a project stored in '{CFG.paths.root}'.",
)
@optgroup.group(f"{click.style('Parameters', fg='yellow')}")
@optgroup.option(
    "--params",
    "-p",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML or JSON file with the job parameters.",
)
@optgroup.option(
    "--set",
    "-s",
    "assignments",
    type=str,
    multiple=True,
    help="Set a parameter as KEY=VALUE. Can be used multiple times.",
)
@optgroup.group(f"{click.style('Execution', fg='yellow')}")
@optgroup.option(
    "--queue/--local",
    "to_queue",
    default=None,
    help="Submit the job to the queue or run it locally. Defaults to the 'submitToQueue' parameter.",
)
@optgroup.option(
    "--archived",
    is_flag=True,
    help="Look the project up in the archive storage. Only used with `--project-name`.",
)
@optgroup.option(
    "--no-wait",
    is_flag=True,
    help="Do not wait for a locally started job to finish.",
)
def submit(
    job_type: str,
    project: Path | None,
    project_name: str | None,
    params: Path | None,
    assignments: tuple[str, ...],
    to_queue: bool | None,
    archived: bool,
    no_wait: bool,
) -> NoReturn:
    """
    Submit a processing job from the command line.
    """
    try:
        if project_name:
            context = ProjectContext.fromName(project_name, archived)
        else:
            context = ProjectContext(project or Path.cwd())

        if not context.root.is_dir():
            raise RlnqError(f"Project directory '{context.root}' does not exist.")

        bag = load_params(params, assignments)

        store = FileJobStore(context.root)
        engine = SubmissionEngine(store, detach=True)
        result = submit_job(job_type, bag, context, store=store, engine=engine, to_queue=to_queue)

        if not result.accepted:
            raise RlnqError(f"{result.message}: {result.error}")

        logger.info(f"Job '{result.job_id}': {result.message}.")

        # queued jobs are followed with `rlnq info`
        if result.queue_id is None and not no_wait:
            engine.wait()
            if result.job_id is not None:
                record = store.get(result.job_id)
                if record.status == JobStatus.FAILED:
                    raise RlnqError(f"Job '{record.id}' failed: {record.error_message}")
                logger.info(f"Job '{record.id}' finished with status '{record.status}'.")
        sys.exit(0)
    except RlnqError as e:
        logger.error(e)
        sys.exit(CFG.exit_codes.default)
    except Exception as e:
        logger.critical(e, exc_info=True, stack_info=True)
        sys.exit(CFG.exit_codes.unexpected_error)


def load_params(file: Path | None, assignments: tuple[str, ...] | list[str]) -> dict[str, Any]:
    """
    Build the parameter bag from a file and KEY=VALUE assignments.

    Values of the assignments are parsed as YAML scalars, so that
    numbers and booleans keep their types.

    Raises:
        RlnqError: If the file cannot be read or parsed, does not contain
            a mapping, or an assignment is malformed.
    """
    bag: dict[str, Any] = {}

    if file is not None:
        try:
            with file.open() as input:
                data = yaml.load(input, Loader=SafeLoader)
        except (OSError, yaml.YAMLError) as e:
            raise RlnqError(f"Could not read parameters from '{file}': {e}.") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise RlnqError(f"Parameters in '{file}' must be a mapping.")
        bag.update({str(k): v for k, v in data.items()})

    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            raise RlnqError(f"Invalid parameter assignment '{assignment}'. Expected KEY=VALUE.")
        bag[key.strip()] = _parse_value(value)

    return bag


def _parse_value(value: str) -> Any:
    try:
        parsed = yaml.load(value, Loader=SafeLoader)
    except yaml.YAMLError:
        return value
    # keep the raw text for anything that is not a scalar
    return parsed if isinstance(parsed, str | int | float | bool) else value
