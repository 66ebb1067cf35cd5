# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Allow-list and deny-list checks for values that end up in shell scripts
or process arguments.

Functions prefixed with `sanitize` return the cleaned value or `None` when
the value must be dropped; they log the reason but never raise. Functions
prefixed with `ensure` raise `UnsafeValueError` instead.
"""

import re

from .config import CFG
from .error import UnsafeValueError
from .logger import get_logger

logger = get_logger(__name__)

# characters that are never allowed in a value embedded into a shell script
DANGEROUS_CHARS = re.compile(r"[;|&`$()<>{}!\\\n\r]")

# characters that are never allowed in a path passed to a tool
UNSAFE_PATH_CHARS = re.compile(r"[;&|`$(){}\[\]<>!\\*?\"']")

_DIRECTIVE_PATTERN = re.compile(r"^[\w\-.,:/]+$")
_QUEUE_ARGS_PATTERN = re.compile(r"^[\w\-.,:/\s=]+$")
_PARTITION_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_QUEUE_JOB_ID_PATTERN = re.compile(r"^[0-9]+(_[0-9]+)?$")
_GPU_IDS_PATTERN = re.compile(r"^[0-9,:]+$")


def contains_dangerous_chars(value: str) -> bool:
    """Return True if the value contains a shell metacharacter from the deny-list."""
    return DANGEROUS_CHARS.search(value) is not None


def is_path_safe(path: str) -> bool:
    """
    Check that a path contains no shell metacharacters, quotes, glob characters,
    or null bytes.
    """
    if not path or "\0" in path:
        return False
    return UNSAFE_PATH_CHARS.search(path) is None


def ensure_path_safe(path: str, label: str) -> str:
    """
    Return the path if it is safe, otherwise raise.

    Raises:
        UnsafeValueError: If the path contains disallowed characters.
    """
    if not is_path_safe(path):
        raise UnsafeValueError(f"Invalid {label} path '{path}': contains unsafe characters.")
    return path


def sanitize_directive(
    value: object,
    name: str,
    pattern: re.Pattern[str] = _DIRECTIVE_PATTERN,
    max_length: int | None = None,
) -> str | None:
    """
    Sanitize a value embedded into a scheduler directive.

    The value is stringified, stripped, truncated to `max_length`, then checked
    against the deny-list and the allow-list pattern.

    Args:
        value (object): The value to sanitize.
        name (str): Name of the directive, used in log messages.
        pattern (re.Pattern[str]): Allow-list pattern the value must match.
        max_length (int | None): Maximal length. Defaults to `CFG.limits.max_directive_length`.

    Returns:
        str | None: The sanitized value or None if it must be dropped.
    """
    if value is None:
        return None

    text = str(value).strip()
    if not text:
        return None

    limit = max_length if max_length is not None else CFG.limits.max_directive_length
    if len(text) > limit:
        logger.warning(f"Value of '{name}' truncated to {limit} characters.")
        text = text[:limit]

    if contains_dangerous_chars(text):
        logger.warning(f"Dropping '{name}': contains disallowed characters.")
        return None

    if not pattern.match(text):
        logger.warning(f"Dropping '{name}': value '{text}' has an invalid format.")
        return None

    return text


def sanitize_queue_args(value: object) -> str | None:
    """Sanitize free-form extra scheduler arguments. Whitespace and '=' are permitted."""
    return sanitize_directive(
        value,
        "queue arguments",
        pattern=_QUEUE_ARGS_PATTERN,
        max_length=CFG.limits.max_queue_args_length,
    )


def sanitize_partition(value: object) -> str | None:
    """Return the partition name if it is a plain identifier of a permitted length."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or len(text) > CFG.limits.max_partition_length:
        if text:
            logger.warning(f"Dropping partition '{text[:80]}': name is too long.")
        return None
    if not _PARTITION_PATTERN.match(text):
        logger.warning(f"Dropping partition '{text}': invalid characters.")
        return None
    return text


def sanitize_queue_job_id(value: object) -> str | None:
    """Return the scheduler job id (optionally with an array index) or None."""
    if value is None:
        return None
    text = str(value).strip()
    if not _QUEUE_JOB_ID_PATTERN.match(text):
        logger.warning(f"Invalid scheduler job id '{text}'.")
        return None
    return text


def sanitize_gpu_ids(value: object) -> str | None:
    """Return a comma/colon separated list of GPU indices or None."""
    if value is None:
        return None
    text = re.sub(r"\s+", "", str(value))
    if not text or not _GPU_IDS_PATTERN.match(text):
        return None
    return text
