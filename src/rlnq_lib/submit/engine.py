# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Submission engine.

The engine marks a job as running, sends it to the queue or starts it
locally, and records every status change in the job store. A job is never
left running when its submission fails: the failure is recorded with
the error message. Completion of local jobs is recorded from the watcher
callbacks; a job cancelled in the meantime keeps its cancelled status.
A detaching engine hands local jobs to a separate `rlnq run` process which
records their completion, so the submitting process may exit right away.
"""

import os
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path

from rlnq_lib.builders.interface import CommandBuilder
from rlnq_lib.core.error import RlnqError, StoreError, SubmissionError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.resources import ResourceSpec
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.store.interface import JobStore

from .local import DetachedRunner, LocalLauncher
from .queue import QueueSubmitter

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubmitResult:
    """
    Outcome of a submission.
    """

    # whether the job was accepted by the scheduler or started locally
    accepted: bool

    # identifier assigned by the scheduler
    queue_id: str | None = None

    # human-readable summary
    message: str = ""

    # error description of a rejected job
    error: str | None = None

    # name of the job, if a record was created
    job_id: str | None = None


class SubmissionEngine:
    """
    Runs jobs on the queue or locally and keeps their records up to date.
    """

    def __init__(self, store: JobStore, detach: bool = False):
        """
        Initialize the engine.

        Args:
            store (JobStore): Store keeping the job records.
            detach (bool): Start local jobs through a separate runner process
                which outlives this one.
        """
        self._store = store
        self._detach = detach
        self._launchers: dict[str, LocalLauncher | DetachedRunner] = {}
        self._launchers_lock = threading.Lock()

    def submit(
        self,
        record: JobRecord,
        command: list[str],
        resources: ResourceSpec,
        builder: CommandBuilder | None = None,
    ) -> SubmitResult:
        """
        Submit a job.

        Args:
            record (JobRecord): Stored record of the job in the pending state.
            command (list[str]): The command to run.
            resources (ResourceSpec): Requested resources and the destination.
            builder (CommandBuilder | None): Builder of the job providing the post-command.

        Returns:
            SubmitResult: The outcome. Failures are reported, not raised.
        """
        try:
            self._store.transition(
                record.id, JobStatus.RUNNING, start_time=datetime.now(), to_queue=resources.to_queue
            )

            if resources.to_queue:
                return self._submitToQueue(record, command, resources)
            return self._launchLocally(record, command, resources, builder)

        except SubmissionError as e:
            logger.error(f"Submission of job '{record.id}' failed: {e}")
            self._fail(record.id, str(e))
            return SubmitResult(False, None, "Submission failed", str(e), record.id)
        except Exception as e:
            logger.error(f"Unexpected error when submitting job '{record.id}': {e}")
            self._fail(record.id, str(e))
            return SubmitResult(False, None, "Job submission failed", str(e), record.id)

    def runInProcess(self, record: JobRecord, builder: CommandBuilder, output_dir: Path) -> SubmitResult:
        """
        Run a job whose builder performs the work itself.

        Returns:
            SubmitResult: The outcome. Failures are reported, not raised.
        """
        try:
            self._store.transition(record.id, JobStatus.RUNNING, start_time=datetime.now(), to_queue=False)
            builder.execute(output_dir)
        except RlnqError as e:
            logger.error(f"Job '{record.id}' failed: {e}")
            self._fail(record.id, str(e))
            return SubmitResult(False, None, "Job failed", str(e), record.id)
        except Exception as e:
            logger.error(f"Unexpected error in job '{record.id}': {e}")
            self._fail(record.id, str(e))
            return SubmitResult(False, None, "Job failed", str(e), record.id)

        self._finish(record.id, JobStatus.SUCCESS)
        return SubmitResult(True, None, "Job completed", None, record.id)

    def runLocally(self, record: JobRecord, builder: CommandBuilder | None = None) -> SubmitResult:
        """
        Start the stored command of a job on this machine and track it.

        Used by the detached runner. A job that already finished is not started.

        Returns:
            SubmitResult: The outcome. Failures are reported, not raised.
        """
        if record.status.isTerminal():
            logger.info(f"Job '{record.id}' is {record.status}, not starting it.")
            return SubmitResult(False, None, f"Job is {record.status}", None, record.id)

        try:
            if record.command is None:
                raise SubmissionError(f"Job '{record.id}' has no command to run.")
            resources = ResourceSpec.fromParams(record.params, builder) if builder is not None else None
            launcher = LocalLauncher(
                record.output_dir,
                record.project,
                record.command,
                post_command=builder.postCommand() if builder is not None else None,
                use_gpu=(resources is not None and resources.gpus > 0) or "--gpu" in record.command,
                on_start=partial(self._onStart, record.id),
                on_exit=partial(self._onExit, record.id),
                on_post_failure=partial(self._onPostFailure, record.id),
                on_done=partial(self._forget, record.id),
            )
            return self._start(record.id, launcher)
        except Exception as e:
            logger.error(f"Job '{record.id}' could not be started: {e}")
            self._fail(record.id, str(e))
            return SubmitResult(False, None, "Job could not be started", str(e), record.id)

    def wait(self, timeout: float | None = None) -> None:
        """Wait until all locally started jobs (and their post-commands) finish."""
        while True:
            with self._launchers_lock:
                if not self._launchers:
                    return
                job_id, launcher = next(iter(self._launchers.items()))

            launcher.wait(timeout)
            with self._launchers_lock:
                if self._launchers.get(job_id) is launcher:
                    del self._launchers[job_id]

    def activeJobs(self) -> list[str]:
        """Return names of the local jobs started by this engine that are still being tracked."""
        with self._launchers_lock:
            finished = [job_id for job_id, launcher in self._launchers.items() if not launcher.isActive()]
            for job_id in finished:
                del self._launchers[job_id]
            return list(self._launchers)

    def _submitToQueue(self, record: JobRecord, command: list[str], resources: ResourceSpec) -> SubmitResult:
        submitter = QueueSubmitter(record.id, record.output_dir, record.project, command, resources)
        queue_id = submitter.submit()

        self._store.transition(record.id, JobStatus.RUNNING, queue_id=queue_id)
        logger.info(f"Job '{record.id}' submitted to the queue with id '{queue_id}'.")
        return SubmitResult(True, queue_id, f"Job submitted to the queue (id {queue_id})", None, record.id)

    def _launchLocally(
        self,
        record: JobRecord,
        command: list[str],
        resources: ResourceSpec,
        builder: CommandBuilder | None,
    ) -> SubmitResult:
        if self._detach:
            return self._start(record.id, DetachedRunner(record.id, record.output_dir, record.project))

        launcher = LocalLauncher(
            record.output_dir,
            record.project,
            command,
            post_command=builder.postCommand() if builder is not None else None,
            use_gpu=resources.gpus > 0 or "--gpu" in command,
            on_start=partial(self._onStart, record.id),
            on_exit=partial(self._onExit, record.id),
            on_post_failure=partial(self._onPostFailure, record.id),
            on_done=partial(self._forget, record.id),
        )
        return self._start(record.id, launcher)

    def _start(self, job_id: str, launcher: LocalLauncher | DetachedRunner) -> SubmitResult:
        # registered before launching, the watcher may finish before launch() returns
        with self._launchers_lock:
            self._launchers[job_id] = launcher
        try:
            pid = launcher.launch()
        except BaseException:
            self._forget(job_id)
            raise

        logger.info(f"Job '{job_id}' started locally (pid {pid}).")
        return SubmitResult(True, None, "Job started locally", None, job_id)

    def _forget(self, job_id: str) -> None:
        with self._launchers_lock:
            self._launchers.pop(job_id, None)

    def _onStart(self, job_id: str, pid: int) -> None:
        try:
            self._store.transition(job_id, JobStatus.RUNNING, pid=pid)
        except StoreError as e:
            # cancelled before the process started
            logger.warning(f"Job '{job_id}' is no longer running, terminating process {pid}: {e}")
            try:
                os.killpg(pid, signal.SIGTERM)
            except ProcessLookupError:
                pass

    def _onExit(self, job_id: str, exit_code: int) -> None:
        if exit_code == 0:
            self._finish(job_id, JobStatus.SUCCESS)
        else:
            self._finish(job_id, JobStatus.FAILED, f"Process exited with code {exit_code}")

    def _onPostFailure(self, job_id: str, message: str) -> None:
        logger.warning(f"Post-command of job '{job_id}' failed: {message}.")
        try:
            record = self._store.get(job_id)
            record.error_message = f"Job succeeded but post-command failed: {message}"
            self._store.update(record)
        except StoreError as e:
            logger.error(f"Could not record the post-command failure of job '{job_id}': {e}")

    def _fail(self, job_id: str, message: str) -> None:
        self._finish(job_id, JobStatus.FAILED, message)

    def _finish(self, job_id: str, status: JobStatus, message: str | None = None) -> None:
        """Move the job to a terminal state unless it already is in one."""
        try:
            self._store.transition(job_id, status, end_time=datetime.now(), pid=None, error_message=message)
        except StoreError as e:
            try:
                current = self._store.get(job_id).status
            except StoreError:
                current = None
            if current is not None and current.isTerminal():
                logger.info(f"Status of job '{job_id}' not changed to '{status}': {e}")
            else:
                logger.error(f"Could not record status '{status}' of job '{job_id}': {e}")
        else:
            logger.debug(f"Job '{job_id}' finished with status '{status}'.")
