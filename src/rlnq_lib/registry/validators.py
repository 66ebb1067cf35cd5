# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Parameter validators run before a command builder is constructed.

These checks only look at the parameters themselves. Checks that need
the filesystem are performed by the builders.
"""

from rlnq_lib.builders.importer import (
    INPUT_FILE_FIELDS,
    OTHER_INPUT_FIELDS,
    OTHER_NODE_TYPE_FIELDS,
    is_other_import,
)
from rlnq_lib.builders.interface import ValidationResult
from rlnq_lib.params.resolver import ParamBag, get_param


def generic_validator(params: ParamBag) -> ValidationResult:
    """Accept any parameters."""
    return ValidationResult.success()


def validate_import(params: ParamBag) -> ValidationResult:
    """
    Check that the import parameters are consistent with the import mode.

    Importing other node types requires an input file and a node type.
    Importing movies or micrographs requires the input files path.
    """
    if is_other_import(params):
        if get_param(params, OTHER_INPUT_FIELDS) is None:
            return ValidationResult.missing("Input file for other node types", "otherInputFile")
        if get_param(params, OTHER_NODE_TYPE_FIELDS) is None:
            return ValidationResult.missing("Node type", "otherNodeType")
        return ValidationResult.success()

    if get_param(params, INPUT_FILE_FIELDS) is None:
        return ValidationResult.missing("Input files path for movies/micrographs import", "inputFiles")

    return ValidationResult.success()
