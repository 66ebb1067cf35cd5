# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Common interface of the command builders.

A command builder validates the parameters of one job kind and converts them
into the argument vector of the external program. Builders do not raise for
invalid user input: `validate` returns a `ValidationResult` that distinguishes
a missing value from a file that does not exist or has the wrong type.
`buildCommand` assumes that validation succeeded.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Self

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import sanitize_gpu_ids
from rlnq_lib.params.resolver import (
    get_gpu_ids,
    get_mpi_procs,
    get_param,
    get_submit_to_queue,
    get_threads,
    is_gpu_enabled,
    is_missing,
)
from rlnq_lib.properties.project import ProjectContext

from .arguments import get_additional_arguments, sanitize_arguments

logger = get_logger(__name__)


class ValidationKind(Enum):
    """
    Reason of a failed validation.
    """

    MISSING = 1
    NOT_FOUND = 2
    WRONG_TYPE = 3
    INVALID = 4

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a builder validation.
    """

    # True if the parameters are valid
    ok: bool

    # Message describing the problem
    message: str | None = None

    # Category of the problem
    kind: ValidationKind | None = None

    # Parameter the problem relates to
    field: str | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> Self:
        return cls(True)

    @classmethod
    def missing(cls, label: str, field: str | None = None) -> Self:
        return cls(False, f"{label} is required", ValidationKind.MISSING, field)

    @classmethod
    def notFound(cls, label: str, path: object, field: str | None = None) -> Self:
        return cls(False, f"{label} not found: {path}", ValidationKind.NOT_FOUND, field)

    @classmethod
    def wrongType(
        cls, label: str, path: object, expected: str, field: str | None = None
    ) -> Self:
        return cls(
            False,
            f"{label} is not a {expected}: {path}",
            ValidationKind.WRONG_TYPE,
            field,
        )

    @classmethod
    def invalid(cls, message: str, field: str | None = None) -> Self:
        return cls(False, message, ValidationKind.INVALID, field)


def format_number(value: float | int) -> str:
    """Format a number without a trailing '.0' for integral values."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CommandBuilder(ABC):
    """
    Abstract base class of the per-kind command builders.

    Concrete builders set `stage_name` (name of the directory holding
    the job outputs) and `program` (the primary executable), and implement
    `validate` and `buildCommand`. Builders that perform their work in-process
    return None from `buildCommand` and implement `execute`.
    """

    # name of the pipeline stage, used as the output directory name
    stage_name: str = ""

    # primary executable of the job kind
    program: str = ""

    def __init__(
        self,
        params: dict[str, Any],
        project: ProjectContext,
        to_queue: bool | None = None,
    ):
        """
        Initialize the builder.

        Args:
            params (dict[str, Any]): The parameter bag. Validation may complete
                derived values in place.
            project (ProjectContext): The project the job belongs to.
            to_queue (bool | None): Destination of the job. Read from the parameters if not provided.
        """
        self.params = params
        self.project = project
        self.to_queue = get_submit_to_queue(params) if to_queue is None else to_queue

    @property
    def supports_gpu(self) -> bool:
        """Whether the job may use GPUs. May depend on the parameters."""
        return True

    @property
    def supports_mpi(self) -> bool:
        """Whether the job may run as multiple MPI processes."""
        return True

    @property
    def uses_gpu(self) -> bool:
        """True if GPUs are both supported and requested."""
        return self.supports_gpu and is_gpu_enabled(self.params)

    @property
    def mpi_procs(self) -> int:
        """Number of MPI processes the job runs with."""
        return get_mpi_procs(self.params) if self.supports_mpi else 1

    @property
    def threads(self) -> int:
        return get_threads(self.params)

    @property
    def runs_in_process(self) -> bool:
        """True for builders that do their work without spawning a command."""
        return False

    @abstractmethod
    def validate(self) -> ValidationResult:
        """
        Validate the job parameters.

        Returns:
            ValidationResult: The outcome of the validation.
        """

    @abstractmethod
    def buildCommand(self, output_dir: Path, job_name: str) -> list[str] | None:
        """
        Build the argument vector of the job.

        Args:
            output_dir (Path): Absolute path to the output directory of the job.
            job_name (str): Name of the job, e.g. Job012.

        Returns:
            list[str] | None: The command or None if the job runs in-process.
        """

    def execute(self, output_dir: Path) -> None:
        """
        Perform the work of an in-process job.

        Raises:
            RlnqError: If the builder produces a command instead.
        """
        raise RlnqError(f"Jobs of stage '{self.stage_name}' are not executed in-process.")

    def postCommand(self) -> list[str] | None:
        """
        Command to run after the main command succeeded.

        Returns:
            list[str] | None: The sanitized follow-up command or None.
        """
        text = get_param(self.params, ["postCommand", "post_command"])
        if text is None:
            return None
        return sanitize_arguments(str(text)) or None

    def getOutputDir(self, job_name: str) -> Path:
        """
        Return the output directory of the job, creating it if needed.

        Args:
            job_name (str): Name of the job, e.g. Job012.

        Returns:
            Path: `<project>/<stage>/<job_name>`.
        """
        output_dir = self.project.root / self.stage_name / job_name
        output_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        return output_dir

    def resolveInputPath(self, path: str | Path) -> Path:
        """Resolve a path against the project root unless it is absolute."""
        return self.project.resolve(path)

    def makeRelative(self, path: str | Path) -> str:
        """Express a path relative to the project root when it lies under it."""
        return self.project.relative(path)

    def relInput(self, path: str | Path) -> str:
        """Resolve an input path and express it relative to the project root."""
        return self.makeRelative(self.resolveInputPath(path))

    def relOutputDir(self, output_dir: Path) -> str:
        """Project-relative output directory with a trailing separator."""
        relative = self.makeRelative(output_dir)
        return relative if relative.endswith(os.sep) else relative + os.sep

    def validateFileExists(
        self,
        value: object,
        label: str,
        expect: str = "file",
        field: str | None = None,
    ) -> ValidationResult:
        """
        Check that a referenced path is provided and exists.

        Args:
            value (object): The path as provided in the parameters.
            label (str): Human-readable name used in messages.
            expect (str): "file", "dir", or "any".
            field (str | None): Name of the parameter.

        Returns:
            ValidationResult: Success or the reason of the failure.
        """
        if is_missing(value):
            return ValidationResult.missing(label, field)

        resolved = self.resolveInputPath(str(value))
        if not resolved.exists():
            logger.warning(f"[{self.stage_name}] File not found: {resolved}.")
            return ValidationResult.notFound(label, value, field)

        if expect == "file" and not resolved.is_file():
            return ValidationResult.wrongType(label, value, "file", field)
        if expect == "dir" and not resolved.is_dir():
            return ValidationResult.wrongType(label, value, "directory", field)

        return ValidationResult.success()

    def buildMpiCommand(self, program: str | None = None) -> list[str]:
        """
        Build the executable part of the command.

        A single process runs the plain program. Multiple processes run the
        `_mpi` variant: on the queue the scheduler spawns the ranks, locally
        the configured MPI launcher is prepended.

        Args:
            program (str | None): The program. Defaults to `self.program`.

        Returns:
            list[str]: The command prefix.
        """
        program = program or self.program
        procs = self.mpi_procs

        if procs <= 1:
            return [program]

        mpi_program = f"{program}_mpi"
        if self.to_queue:
            logger.debug(f"[{self.stage_name}] MPI command (queue): {mpi_program} ({procs} processes).")
            return [mpi_program]

        command = [
            CFG.executables.mpi_launcher,
            CFG.executables.mpi_launcher_np_flag,
            str(procs),
            mpi_program,
        ]
        logger.debug(f"[{self.stage_name}] MPI command (local): {' '.join(command)}.")
        return command

    def addThreadFlags(self, command: list[str], always: bool = False) -> None:
        """Append `--j` with the number of threads (only when > 1 unless `always`)."""
        if always or self.threads > 1:
            command.extend(["--j", str(self.threads)])

    def addGpuFlags(self, command: list[str], flag: str = "--gpu") -> None:
        """Append the GPU flag with the selected device ids when GPUs are used."""
        if not self.uses_gpu:
            return

        ids = sanitize_gpu_ids(get_gpu_ids(self.params))
        if ids is None:
            logger.warning(f"[{self.stage_name}] Invalid GPU ids, letting the program select GPUs.")
            command.append(flag)
        else:
            command.extend([flag, ids])

    def addPipelineControl(self, command: list[str], output_dir: Path) -> None:
        command.extend(["--pipeline_control", self.relOutputDir(output_dir)])

    def addAdditionalArguments(self, command: list[str]) -> None:
        """Append the sanitized user-provided arguments."""
        command.extend(get_additional_arguments(self.params, command, self.program))
