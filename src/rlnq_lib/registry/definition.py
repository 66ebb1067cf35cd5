# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Self

from rlnq_lib.builders.interface import CommandBuilder, ValidationResult
from rlnq_lib.core.error import RlnqError
from rlnq_lib.params.resolver import ParamBag

# validator of a parameter bag run before the builder is constructed
Validator = Callable[[ParamBag], ValidationResult]


class ComputeTier(Enum):
    """Compute resources a job kind is typically run with."""

    MPI = 1
    GPU = 2
    LOCAL = 3

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def fromStr(cls, s: str) -> Self:
        """
        Convert a string to the corresponding ComputeTier enum variant.

        Raises:
            RlnqError: If the string does not name a compute tier.
        """
        try:
            return cls[s.upper()]
        except KeyError:
            raise RlnqError(f"Unknown compute tier '{s}'.") from None


@dataclass(frozen=True)
class JobTypeDefinition:
    """
    Definition of a job kind.

    Attributes:
        canonical_id (str): Canonical identifier of the kind.
        builder (type[CommandBuilder]): Command builder class of the kind.
        validator (Validator): Parameter validator run before building.
        stage_name (str): Name of the directory holding the job outputs.
        aliases (frozenset[str]): Accepted names of the kind, including `canonical_id`.
        compute_tier (ComputeTier): Typical compute resources of the kind.
    """

    canonical_id: str
    builder: type[CommandBuilder]
    validator: Validator
    stage_name: str
    aliases: frozenset[str]
    compute_tier: ComputeTier
