# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Resource requirements of a submitted job.

`ResourceSpec` captures the number of MPI processes, threads and GPUs together
with the scheduler settings (partition, extra directives, submission command)
and the destination of the job (queue or local execution).
"""

import re
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Self

from rlnq_lib.core.config import CFG
from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    ParamBag,
    get_gpu_ids,
    get_int_param,
    get_mpi_procs,
    get_param,
    get_submit_to_queue,
    get_threads,
    is_gpu_enabled,
)

if TYPE_CHECKING:
    from rlnq_lib.builders.interface import CommandBuilder

logger = get_logger(__name__)

_WALLTIME = re.compile(r"^(\d+-)?\d{1,3}(:\d{2}){0,2}$")


@dataclass
class ResourceSpec:
    """
    Dataclass representing resources requested for a job.
    """

    # number of MPI processes
    mpi_procs: int = 1

    # number of threads per process
    threads: int = 1

    # number of GPUs
    gpus: int = 0

    # scheduler partition (sanitized when rendered)
    partition: str | None = None

    # additional scheduler directives (sanitized when rendered)
    queue_args: str | None = None

    # maximal runtime of the job
    walltime: str | None = None

    # command used to submit the batch script
    submit_command: str | None = None

    # submit to the queue (True) or run locally (False)
    to_queue: bool = True

    def __post_init__(self):
        self.mpi_procs = _clamp(self.mpi_procs, 1, CFG.limits.max_mpi_procs)
        self.threads = _clamp(self.threads, 1, CFG.limits.max_threads)
        self.gpus = _clamp(self.gpus, 0, CFG.limits.max_gpus)

        if self.walltime is not None and not _WALLTIME.match(str(self.walltime)):
            logger.warning(f"Ignoring invalid walltime '{self.walltime}'.")
            self.walltime = None

    def toDict(self) -> dict[str, object]:
        """Return the resources as a dictionary without unset fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def fromDict(cls, data: dict[str, object]) -> Self:
        return cls(**data)  # ty: ignore[invalid-argument-type]

    @classmethod
    def fromParams(cls, params: ParamBag, builder: "CommandBuilder | None" = None) -> Self:
        """
        Derive the resource requirements from a parameter bag.

        GPUs are requested only when the builder supports them and the GPU toggle
        is on; their number is taken from an explicit count or from the number of
        selected GPU indices. MPI is reduced to a single process for builders
        without MPI support.

        Args:
            params (ParamBag): The job parameters.
            builder (CommandBuilder | None): Builder of the job providing its capabilities.

        Returns:
            ResourceSpec: The resource requirements.
        """
        uses_gpu = builder.uses_gpu if builder is not None else is_gpu_enabled(params)
        mpi_procs = builder.mpi_procs if builder is not None else get_mpi_procs(params)

        gpus = 0
        if uses_gpu:
            ids = [x for x in re.split(r"[,:]", get_gpu_ids(params)) if x]
            gpus = get_int_param(params, ["gres", "gpus", "numberOfGpus"], len(set(ids)) or 1)

        return cls(
            mpi_procs=mpi_procs,
            threads=get_threads(params),
            gpus=gpus,
            partition=_as_str(get_param(params, ["queueName", "partition", "queue"])),
            queue_args=_as_str(
                get_param(params, ["queueArgs", "queue_args", "additionalQueueArgs"])
            ),
            walltime=_as_str(get_param(params, ["walltime", "time"])),
            submit_command=_as_str(get_param(params, ["queueSubmitCommand", "submitCommand"])),
            to_queue=builder.to_queue if builder is not None else get_submit_to_queue(params),
        )


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, int(value)))


def _as_str(value: object) -> str | None:
    return None if value is None else str(value)
