# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import os
import signal
import subprocess
from datetime import datetime

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import NotSuitableError, RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import sanitize_queue_job_id
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.store.interface import JobStore

logger = get_logger(__name__)


class Canceller:
    """
    Class to manage the cancellation of a job.
    """

    def __init__(self, store: JobStore):
        self._store = store

    @property
    def store(self) -> JobStore:
        return self._store

    def ensureSuitable(self, record: JobRecord) -> None:
        """
        Verify that the job is in a state where it can be cancelled.

        Raises:
            NotSuitableError: If the job has already finished or has been cancelled.
        """
        if record.status == JobStatus.CANCELLED:
            raise NotSuitableError(
                f"Job '{record.id}' cannot be cancelled. Job has already been cancelled."
            )

        if record.status.isTerminal():
            raise NotSuitableError(
                f"Job '{record.id}' cannot be cancelled. Job is already {record.status}."
            )

    def cancel(self, job_id: str, force: bool = False) -> JobRecord:
        """
        Terminate the job and mark it as cancelled.

        Queue jobs are removed using the scheduler's cancel command and then
        marked as cancelled. Local jobs are marked as cancelled and then
        terminated by signalling their process group.

        Args:
            job_id (str): Name of the job.
            force (bool): Attempt the termination regardless of the job's status.

        Returns:
            JobRecord: The record of the job after the cancellation.

        Raises:
            NotSuitableError: If the job is not pending or running and `force` is not used.
            RlnqError: If the job cannot be terminated.
            StoreError: If the record cannot be read or updated.
        """
        record = self._store.get(job_id)
        if not force:
            self.ensureSuitable(record)

        # terminal states are final even for forced cancellations
        if record.status.isTerminal():
            logger.warning(
                f"Job '{job_id}' is already {record.status}. Its status is kept."
            )
            self._terminate(record)
            return record

        # the job is marked as cancelled only after scancel succeeds
        if record.queue_id:
            self._cancelQueueJob(record.queue_id)
            return self._store.transition(
                job_id, JobStatus.CANCELLED, end_time=datetime.now(), pid=None
            )

        # the record is cancelled before the process is signalled
        cancelled = self._store.transition(
            job_id, JobStatus.CANCELLED, end_time=datetime.now(), pid=None
        )
        self._terminate(record)
        return cancelled

    def _terminate(self, record: JobRecord) -> None:
        if record.queue_id:
            self._cancelQueueJob(record.queue_id)
        elif record.pid:
            self._terminateProcess(record.pid)
        else:
            logger.debug(f"Job '{record.id}' has neither a queue id nor a process id.")

    def _cancelQueueJob(self, queue_id: str) -> None:
        """
        Run the scheduler's cancel command for the job.

        Raises:
            RlnqError: If the id is invalid or the command fails.
        """
        if not (job := sanitize_queue_job_id(queue_id)):
            raise RlnqError(f"Invalid scheduler job id '{queue_id}'.")

        command = [CFG.slurm.cancel_command, job]
        logger.debug(f"Running '{' '.join(command)}'.")
        try:
            result = subprocess.run(
                command,
                text=True,
                check=False,
                capture_output=True,
                errors="replace",
            )
        except OSError as e:
            raise RlnqError(f"Could not run '{CFG.slurm.cancel_command}': {e}.") from e

        if result.returncode != 0:
            raise RlnqError(
                f"Could not cancel the scheduler job '{job}': {result.stderr.strip()}."
            )

    def _terminateProcess(self, pid: int) -> None:
        """
        Send SIGTERM to the process group of a local job.

        Raises:
            RlnqError: If the process group cannot be signalled.
        """
        logger.debug(f"Sending SIGTERM to the process group '{pid}'.")
        try:
            os.killpg(pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.warning(f"Process '{pid}' is no longer running.")
        except OSError as e:
            raise RlnqError(f"Could not terminate the process '{pid}': {e}.") from e
