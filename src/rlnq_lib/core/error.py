# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Exception types used throughout rlnq.

Invalid user input to a command builder is never raised: builders report it
through a `ValidationResult`. The exceptions below signal failures that abort
an operation (unknown job kinds, a broken registry, rejected submissions,
unusable stores). Each exception carries the exit code used by rlnq commands.
"""

from .config import CFG


class RlnqError(Exception):
    """Common exception type for all recoverable rlnq errors."""

    exit_code = CFG.exit_codes.default


class UnknownJobTypeError(RlnqError):
    """Raised when a job kind or alias is not registered."""

    pass


class RegistryError(RlnqError):
    """Raised when the job type definitions are inconsistent."""

    pass


class SubmissionError(RlnqError):
    """Raised when the scheduler rejects a job or its identifier cannot be determined."""

    pass


class NotSuitableError(RlnqError):
    """Raised when a job is unsuitable for an operation."""

    pass


class UnsafeValueError(RlnqError):
    """Raised when a value contains characters that must not reach a shell."""

    pass


class StoreError(RlnqError):
    """Raised when a job record cannot be read, written, or transitioned."""

    pass
