# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Registry of job kinds: maps canonical identifiers and their aliases
to command builders, validators, stage names, and compute tiers.
"""

from .definition import ComputeTier, JobTypeDefinition, Validator
from .registry import DEFAULT_DEFINITIONS, JobTypeRegistry, build_registry, get_registry
from .validators import generic_validator, validate_import

__all__ = [
    "DEFAULT_DEFINITIONS",
    "ComputeTier",
    "JobTypeDefinition",
    "JobTypeRegistry",
    "Validator",
    "build_registry",
    "generic_validator",
    "get_registry",
    "validate_import",
]
