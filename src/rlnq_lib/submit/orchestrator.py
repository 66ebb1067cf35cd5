# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from datetime import datetime
from typing import Any

from rlnq_lib.core.error import StoreError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.parents import infer_parent_jobs
from rlnq_lib.properties.project import ProjectContext
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.resources import ResourceSpec
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.registry.registry import JobTypeRegistry, get_registry
from rlnq_lib.store.file_store import FileJobStore
from rlnq_lib.store.interface import JobStore

from .engine import SubmissionEngine, SubmitResult

logger = get_logger(__name__)


def submit_job(
    job_type: str,
    params: dict[str, Any],
    project: ProjectContext,
    *,
    registry: JobTypeRegistry | None = None,
    store: JobStore | None = None,
    engine: SubmissionEngine | None = None,
    to_queue: bool | None = None,
) -> SubmitResult:
    """
    Validate, build, record, and submit a job.

    Steps:
        1. Look up the job kind and run its parameter validator.
        2. Construct the builder and validate the parameters against the project.
        3. Reserve the job name by storing a pending record with the inferred parent jobs.
        4. Create the output directory, build the command and add it to the record.
        5. Run in-process builders directly, submit everything else.

    Args:
        job_type (str): Canonical identifier or alias of the job kind.
        params (dict[str, Any]): The parameter bag. Validation may complete it.
        project (ProjectContext): The project the job belongs to.
        registry (JobTypeRegistry | None): Defaults to the process-wide registry.
        store (JobStore | None): Defaults to the file store of the project.
        engine (SubmissionEngine | None): Defaults to an engine over `store`.
        to_queue (bool | None): Destination overriding the parameters.

    Returns:
        SubmitResult: The outcome. Invalid parameters are reported without creating a record.

    Raises:
        UnknownJobTypeError: If the job kind is not registered.
        StoreError: If the record cannot be created.
    """
    registry = registry or get_registry()
    store = store or FileJobStore(project.root)
    engine = engine or SubmissionEngine(store)

    definition = registry.getDefinition(job_type)
    logger.debug(f"Submitting job of type '{definition.canonical_id}' in '{project.root}'.")

    if not (result := definition.validator(params)):
        logger.error(f"Invalid parameters: {result.message}")
        return SubmitResult(False, None, "Validation failed", result.message)

    builder = definition.builder(params, project, to_queue)
    if not (result := builder.validate()):
        logger.error(f"Invalid parameters: {result.message}")
        return SubmitResult(False, None, "Validation failed", result.message)

    record = store.createNext(
        lambda job_id: JobRecord(
            id=job_id,
            job_type=definition.canonical_id,
            project=project.root,
            params=dict(params),
            output_dir=project.root / builder.stage_name / job_id,
            parent_ids=infer_parent_jobs(params),
            to_queue=builder.to_queue,
        )
    )
    job_id = record.id
    logger.info(f"Created job '{job_id}' ({definition.canonical_id}).")

    try:
        output_dir = builder.getOutputDir(job_id)
        command = builder.buildCommand(output_dir, job_id)
    except Exception as e:
        store.transition(job_id, JobStatus.FAILED, end_time=datetime.now(), error_message=str(e))
        raise

    # building may complete the parameters
    record.params = dict(params)
    if command is not None:
        record.assignCommand(command)
    try:
        store.update(record)
    except StoreError as e:
        logger.error(f"Job '{job_id}' was not submitted: {e}")
        return SubmitResult(False, None, "Job was not submitted", str(e), job_id)

    if builder.runs_in_process or command is None:
        return engine.runInProcess(record, builder, output_dir)

    return engine.submit(record, command, ResourceSpec.fromParams(params, builder), builder)
