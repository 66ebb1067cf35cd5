# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import fcntl
import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from rlnq_lib.core.common import JOB_NAME_PREFIX, format_job_name
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import StoreError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.states import JobStatus

from .interface import JobStore

logger = get_logger(__name__)

# name of the lock file inside the store directory
LOCK_FILE = ".lock"


class FileJobStore(JobStore):
    """
    Job store keeping one YAML file per job in a hidden directory of the project.

    Records are stored as `<project>/<store directory>/<job id><suffix>`.
    Writers hold an exclusive `flock` on the lock file of the directory, so
    threads and processes working on the same project exclude each other.
    Records are replaced atomically and can be read without the lock.
    """

    def __init__(self, project_root: Path):
        self._directory = Path(project_root) / CFG.store.directory
        self._lock = threading.RLock()
        self._held = False
        self._id_pattern = re.compile(
            rf"^{JOB_NAME_PREFIX}(\d+){re.escape(CFG.store.suffix)}$"
        )

    @property
    def directory(self) -> Path:
        return self._directory

    def create(self, record: JobRecord) -> JobRecord:
        with self._exclusive():
            file = self._file(record.id)
            if file.exists():
                raise StoreError(f"Job record '{record.id}' already exists.")

            try:
                record.toFile(file, exclusive=True)
            except FileExistsError as e:
                raise StoreError(f"Job record '{record.id}' already exists.") from e

            logger.debug(f"Created job record '{record.id}'.")
            return record

    def createNext(self, factory: Callable[[str], JobRecord]) -> JobRecord:
        with self._exclusive():
            number = max(self._numbers(), default=0) + 1
            while True:
                record = factory(format_job_name(number))
                try:
                    record.toFile(self._file(record.id), exclusive=True)
                except FileExistsError:
                    # written by someone not holding the lock
                    logger.debug(f"Job name '{record.id}' is taken, trying the next one.")
                    number += 1
                    continue

                logger.debug(f"Created job record '{record.id}'.")
                return record

    def get(self, job_id: str) -> JobRecord:
        return JobRecord.fromFile(self._file(job_id))

    def update(self, record: JobRecord) -> None:
        with self._exclusive():
            stored = self.get(record.id)
            if stored.status != record.status:
                raise StoreError(
                    f"Job '{record.id}' is {stored.status}, not {record.status}. Record not updated."
                )
            record.toFile(self._file(record.id))

    def listIds(self) -> list[str]:
        return [format_job_name(n) for n in self._numbers()]

    def nextId(self) -> str:
        return format_job_name(max(self._numbers(), default=0) + 1)

    def transition(self, job_id: str, status: JobStatus, /, **changes: object) -> JobRecord:
        with self._exclusive():
            record = self._applyTransition(self.get(job_id), status, changes)
            record.toFile(self._file(job_id))
            return record

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """
        Hold the thread lock and the file lock of the store.

        Re-entering from the thread already holding the locks is allowed.
        """
        with self._lock:
            if self._held:
                yield
                return

            try:
                self._directory.mkdir(parents=True, exist_ok=True)
                handle = (self._directory / LOCK_FILE).open("a")
            except OSError as e:
                raise StoreError(f"Could not open the job store '{self._directory}': {e}.") from e

            with handle:
                fcntl.flock(handle, fcntl.LOCK_EX)
                self._held = True
                try:
                    yield
                finally:
                    self._held = False
                    fcntl.flock(handle, fcntl.LOCK_UN)

    def _file(self, job_id: str) -> Path:
        return self._directory / f"{job_id}{CFG.store.suffix}"

    def _numbers(self) -> list[int]:
        if not self._directory.is_dir():
            return []

        numbers = []
        for file in self._directory.iterdir():
            if match := self._id_pattern.match(file.name):
                numbers.append(int(match.group(1)))
        return sorted(numbers)
