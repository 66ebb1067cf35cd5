# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from abc import ABC, abstractmethod
from collections.abc import Callable

from rlnq_lib.core.error import StoreError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.states import JobStatus

logger = get_logger(__name__)


class JobStore(ABC):
    """
    Abstract persistent store of job records.

    Implementations must make `transition` atomic with respect to every other
    writer of the same records, including other processes.
    """

    @abstractmethod
    def create(self, record: JobRecord) -> JobRecord:
        """
        Persist a new job record.

        Raises:
            StoreError: If a record with the same id already exists.
        """
        raise NotImplementedError("create method is not implemented for this store")

    @abstractmethod
    def get(self, job_id: str) -> JobRecord:
        """
        Load a job record.

        Raises:
            StoreError: If no such record exists or it cannot be read.
        """
        raise NotImplementedError("get method is not implemented for this store")

    @abstractmethod
    def update(self, record: JobRecord) -> None:
        """
        Overwrite a stored job record.

        Raises:
            StoreError: If the record does not exist, cannot be written,
                or its stored status differs from the status of `record`.
        """
        raise NotImplementedError("update method is not implemented for this store")

    @abstractmethod
    def listIds(self) -> list[str]:
        """Return the ids of all stored records in ascending order."""
        raise NotImplementedError("listIds method is not implemented for this store")

    @abstractmethod
    def nextId(self) -> str:
        """Return the job name following the highest stored one."""
        raise NotImplementedError("nextId method is not implemented for this store")

    @abstractmethod
    def createNext(self, factory: Callable[[str], JobRecord]) -> JobRecord:
        """
        Persist a new job record under a freshly reserved job name.

        Two callers never receive the same name, even when they use
        different store instances.

        Args:
            factory (Callable[[str], JobRecord]): Builds the record for the reserved name.

        Returns:
            JobRecord: The stored record.

        Raises:
            StoreError: If the record cannot be written.
        """
        raise NotImplementedError("createNext method is not implemented for this store")

    @abstractmethod
    def transition(self, job_id: str, status: JobStatus, /, **changes: object) -> JobRecord:
        """
        Move a job to a new status and update the given fields.

        Args:
            job_id (str): Id of the job.
            status (JobStatus): The new status.
            **changes: Other fields of the record to set.

        Returns:
            JobRecord: The updated record.

        Raises:
            StoreError: If the transition is not allowed, in particular
                when the job is already in a terminal state.
        """
        raise NotImplementedError("transition method is not implemented for this store")

    def list(self) -> list[JobRecord]:
        """Load all stored records in ascending order of their ids."""
        return [self.get(job_id) for job_id in self.listIds()]

    @staticmethod
    def _applyTransition(record: JobRecord, status: JobStatus, changes: dict[str, object]) -> JobRecord:
        if not record.status.canTransitionTo(status):
            raise StoreError(
                f"Job '{record.id}' cannot transition from '{record.status}' to '{status}'."
            )

        for name, value in changes.items():
            if name in ("id", "command", "status"):
                raise StoreError(f"Field '{name}' of job '{record.id}' cannot be changed.")
            if not hasattr(record, name):
                raise StoreError(f"Job record has no field '{name}'.")
            setattr(record, name, value)

        logger.debug(f"Job '{record.id}': {record.status} -> {status}.")
        record.status = status
        return record
