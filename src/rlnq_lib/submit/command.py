# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Helpers shared by the queue and local submission paths: splitting
of chained commands, container wrapping, and shell formatting.
"""

import shlex

from rlnq_lib.core.config import CFG
from rlnq_lib.core.logger import get_logger

logger = get_logger(__name__)

# token joining commands that run one after another
CHAIN = "&&"


def is_chained(command: list[str]) -> bool:
    return CHAIN in command


def split_chain(command: list[str]) -> list[list[str]]:
    """Split a command on `&&` tokens into its parts."""
    parts: list[list[str]] = [[]]
    for token in command:
        if token == CHAIN:
            parts.append([])
        else:
            parts[-1].append(token)
    return [part for part in parts if part]


def join_chain(parts: list[list[str]]) -> list[str]:
    """Inverse of `split_chain`."""
    command: list[str] = []
    for part in parts:
        if command:
            command.append(CHAIN)
        command.extend(part)
    return command


def format_command(command: list[str]) -> str:
    """
    Format a command as a single shell line.

    Every token is quoted using `shlex.quote` (which leaves plain tokens untouched)
    except for `&&` which must stay a shell operator.
    """
    return " ".join(token if token == CHAIN else shlex.quote(token) for token in command)


def container_prefix(use_gpu: bool) -> list[str]:
    """
    Build the container runtime invocation.

    Returns:
        list[str]: The prefix or an empty list if no container image is configured.
    """
    if not CFG.container.image:
        return []

    prefix = [CFG.container.runtime, "exec"]
    if CFG.container.bind_paths:
        prefix.extend(["--bind", CFG.container.bind_paths])
    if use_gpu and CFG.container.gpu_options:
        prefix.extend(CFG.container.gpu_options.split())
    prefix.append(CFG.container.image)
    return prefix


def wrap_in_container(command: list[str], use_gpu: bool) -> list[str]:
    """
    Run every part of a (possibly chained) command inside the configured container.

    A leading local MPI launcher stays outside of the container so that
    it spawns one container instance per process.

    Args:
        command (list[str]): The command to wrap.
        use_gpu (bool): Pass the GPU options to the container runtime.

    Returns:
        list[str]: The wrapped command, or the unchanged command
        if no container image is configured.
    """
    prefix = container_prefix(use_gpu)
    if not prefix:
        return list(command)

    wrapped = []
    for part in split_chain(command):
        launcher: list[str] = []
        if part[0] == CFG.executables.mpi_launcher:
            # launcher, np flag, count
            launcher, part = part[:3], part[3:]
        wrapped.append(launcher + prefix + part)

    logger.debug(f"Wrapping command in container '{CFG.container.image}'.")
    return join_chain(wrapped)
