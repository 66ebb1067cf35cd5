# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Sanitization of free-text arguments appended to built commands.

A string containing any shell metacharacter is rejected as a whole. Otherwise
it is split into tokens (double-quoted substrings are kept together and the
quotes removed). Tokens that look like a flag must have a valid flag syntax,
or they are dropped. Well-formed flags not known for the target program are
still appended, because the flag set of RELION programs differs between versions.
"""

import re
from collections.abc import Sequence

from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import contains_dangerous_chars
from rlnq_lib.params.resolver import ParamBag, get_param

from .flags import is_flag_syntax, is_known_flag, normalize_program

logger = get_logger(__name__)

# parameters holding the additional arguments
ARGUMENT_FIELDS = ["additionalArguments", "arguments", "otherArgs"]

_TOKEN = re.compile(r'(?:[^\s"]+|"[^"]*")+')


def tokenize(text: str) -> list[str]:
    """
    Split a string on whitespace, keeping double-quoted substrings together.

    Args:
        text (str): The string to split.

    Returns:
        list[str]: Tokens with the double quotes removed.
    """
    return [token.replace('"', "") for token in _TOKEN.findall(text)]


def detect_program(command: Sequence[str], fallback: str | None = None) -> str | None:
    """
    Return the RELION program invoked by a command.

    The first element starting with `relion_` is used, which skips MPI launchers
    and their options. The `_mpi` suffix is removed.
    """
    for element in command:
        name = normalize_program(element)
        if name.startswith("relion_"):
            return name
    return normalize_program(fallback) if fallback else None


def sanitize_arguments(text: str | None, program: str | None = None) -> list[str]:
    """
    Convert a free-text argument string into a list of safe tokens.

    Args:
        text (str | None): The user-provided arguments.
        program (str | None): Program the arguments are for, used to report unknown flags.

    Returns:
        list[str]: Tokens to append to the command. Empty if the string was rejected.
    """
    if text is None:
        return []

    text = str(text).strip()
    if not text:
        return []

    if contains_dangerous_chars(text):
        logger.warning(
            f"Rejecting additional arguments '{text}': contains disallowed characters."
        )
        return []

    tokens = []
    for token in tokenize(text):
        if not token:
            continue

        if token.startswith("-") and not _is_number(token):
            if not is_flag_syntax(token):
                logger.warning(f"Dropping malformed flag '{token}' from additional arguments.")
                continue

            if program and token.startswith("--") and not is_known_flag(program, token):
                logger.warning(
                    f"Flag '{token}' is not known for '{program}'. Passing it through anyway."
                )

        tokens.append(token)

    return tokens


def get_additional_arguments(
    params: ParamBag, command: Sequence[str], fallback_program: str | None = None
) -> list[str]:
    """
    Return the sanitized additional arguments of a job.

    Args:
        params (ParamBag): The job parameters.
        command (Sequence[str]): The command built so far.
        fallback_program (str | None): Program used when no RELION program is found in the command.

    Returns:
        list[str]: Tokens to append to the command.
    """
    text = get_param(params, ARGUMENT_FIELDS)
    if text is None:
        return []
    return sanitize_arguments(str(text), detect_program(command, fallback_program))


def _is_number(token: str) -> bool:
    try:
        float(token)
    except ValueError:
        return False
    return True
