# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Persistent representation of a submitted job.

`JobRecord` stores the job kind, its parameters, the built command, the queue
identifier or the local process id, the lifecycle status with timestamps, and
the inferred parent jobs. Records are serialized as YAML files by the job store.
The built command is assigned once and never changes afterwards; a changed
parameter requires a new record.
"""

import os
import tempfile
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Self

import yaml

from rlnq_lib.core.common import load_yaml_dumper, load_yaml_loader
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError, StoreError
from rlnq_lib.core.logger import get_logger

from .states import JobStatus

logger = get_logger(__name__)

SafeLoader: type[yaml.SafeLoader] = load_yaml_loader()
Dumper: type[yaml.Dumper] = load_yaml_dumper()


@dataclass
class JobRecord:
    """
    Dataclass storing information about a submitted job.
    """

    # Name of the job, e.g. Job012
    id: str

    # Canonical job kind
    job_type: str

    # Root directory of the project
    project: Path

    # Current lifecycle status
    status: JobStatus = JobStatus.PENDING

    # Parameters of the job as submitted
    params: dict[str, Any] = field(default_factory=dict)

    # Built command; assigned once
    command: list[str] = field(default_factory=list)

    # Output directory of the job
    output_dir: Path | None = None

    # Identifier assigned by the scheduler
    queue_id: str | None = None

    # Process id of a locally running job
    pid: int | None = None

    # Whether the job was sent to the queue
    to_queue: bool | None = None

    # Job start time
    start_time: datetime | None = None

    # Job end time
    end_time: datetime | None = None

    # Error message of a failed job
    error_message: str | None = None

    # Names of the jobs this job reads from (derived)
    parent_ids: list[str] = field(default_factory=list)

    # Job submission time
    submission_time: datetime = field(default_factory=datetime.now)

    def assignCommand(self, command: list[str]) -> None:
        """
        Set the built command of the job.

        Raises:
            StoreError: If a command has already been assigned.
        """
        if self.command:
            raise StoreError(f"Command of job '{self.id}' has already been built.")
        self.command = list(command)

    @classmethod
    def fromFile(cls, file: Path) -> Self:
        """
        Load a JobRecord from a YAML file.

        Raises:
            StoreError: If the file does not exist, cannot be parsed,
                or does not contain all mandatory information.
        """
        logger.debug(f"Loading job record from '{file}'.")
        if not file.exists():
            raise StoreError(f"Job record '{file}' does not exist.")

        try:
            with file.open("r") as input:
                data: dict[str, object] = yaml.load(input, Loader=SafeLoader)
            return cls._fromDict(data)
        except yaml.YAMLError as e:
            raise StoreError(f"Could not parse the job record '{file}': {e}.") from e
        except (TypeError, ValueError, AttributeError, RlnqError) as e:
            raise StoreError(f"Invalid job record '{file}': {e}.") from e

    def toFile(self, file: Path, exclusive: bool = False) -> None:
        """
        Export the JobRecord to a YAML file.

        The record is written to a temporary file in the same directory
        which then takes the place of `file`, so a reader never sees
        a partially written record.

        Args:
            file (Path): The target file.
            exclusive (bool): Never replace an existing file.

        Raises:
            FileExistsError: If `exclusive` is set and `file` already exists.
            StoreError: If the file cannot be written.
        """
        content = "# rlnq job record\n" + self.toYaml() + "\n"
        logger.debug(f"Exporting job record into '{file}'.")

        tmp: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=file.parent, prefix=f".{file.name}.", suffix=".tmp", delete=False
            ) as output:
                tmp = Path(output.name)
                output.write(content)
            os.chmod(tmp, 0o644)

            if exclusive:
                os.link(tmp, file)
            else:
                os.replace(tmp, file)
        except FileExistsError:
            raise
        except OSError as e:
            raise StoreError(f"Cannot create or write to file '{file}': {e}") from e
        finally:
            if tmp is not None:
                tmp.unlink(missing_ok=True)

    def toYaml(self) -> str:
        return yaml.dump(
            self._toDict(), default_flow_style=False, sort_keys=False, Dumper=Dumper
        )

    def _toDict(self) -> dict[str, object]:
        """
        Convert the JobRecord into a dictionary of string-object pairs.
        Fields that are None are ignored.
        """
        result: dict[str, object] = {}

        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue

            if isinstance(value, JobStatus | Path):
                result[f.name] = str(value)
            elif isinstance(value, datetime):
                result[f.name] = value.strftime(CFG.date_formats.standard)
            elif isinstance(value, list | dict):
                result[f.name] = type(value)(value)
            else:
                result[f.name] = value

        return result

    @classmethod
    def _fromDict(cls, data: dict[str, object]) -> Self:
        """
        Construct a JobRecord from a dictionary.

        Raises:
            TypeError: If required fields are missing.
        """
        init_kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue

            value = data[f.name]
            if f.type == JobStatus and isinstance(value, str):
                init_kwargs[f.name] = JobStatus.fromStr(value)
            elif f.type == Path or f.type == Path | None:
                init_kwargs[f.name] = Path(value)  # ty: ignore[invalid-argument-type]
            elif (f.type == datetime or f.type == datetime | None) and isinstance(value, str):
                init_kwargs[f.name] = datetime.strptime(value, CFG.date_formats.standard)
            else:
                init_kwargs[f.name] = value

        return cls(**init_kwargs)  # ty: ignore[missing-argument]
