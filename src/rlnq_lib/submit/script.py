# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Rendering of Slurm batch scripts.

Every dynamic value embedded into the script is either sanitized against
an allow-list (scheduler directives) or quoted (paths and command arguments).
The script always ends by creating the success or failure marker in the job
output directory, because some programs do not create it themselves and
external monitors rely on it.
"""

import shlex
from dataclasses import dataclass
from pathlib import Path

from rlnq_lib.core.config import CFG
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import (
    ensure_path_safe,
    sanitize_directive,
    sanitize_partition,
    sanitize_queue_args,
)
from rlnq_lib.properties.resources import ResourceSpec

from .command import format_command, join_chain, split_chain, wrap_in_container

logger = get_logger(__name__)


def group_queue_args(queue_args: str | None) -> list[str]:
    """
    Split extra scheduler arguments into one directive per option.

    Values following an option are kept on the line of the option,
    e.g. `--mem 4G --exclusive` gives `["--mem 4G", "--exclusive"]`.
    Tokens preceding the first option are dropped.
    """
    sanitized = sanitize_queue_args(queue_args)
    if sanitized is None:
        return []

    groups: list[list[str]] = []
    for token in sanitized.split():
        if token.startswith("-"):
            groups.append([token])
        elif groups:
            groups[-1].append(token)
        else:
            logger.warning(f"Ignoring scheduler argument '{token}' without an option.")

    return [" ".join(group) for group in groups]


@dataclass
class BatchScript:
    """
    Batch script running one job.
    """

    # name of the job, e.g. Job012
    job_name: str

    # absolute path to the output directory of the job
    output_dir: Path

    # absolute path to the project directory
    project_root: Path

    # command to run
    command: list[str]

    # requested resources
    resources: ResourceSpec

    def render(self) -> str:
        """
        Render the batch script.

        Returns:
            str: Content of the script.

        Raises:
            UnsafeValueError: If the output or project directory contains unsafe characters.
        """
        output_dir = ensure_path_safe(str(self.output_dir), "output directory")
        project_root = ensure_path_safe(str(self.project_root), "project directory")

        lines = ["#!/bin/bash"]
        lines.extend(f"#SBATCH {directive}" for directive in self._directives(output_dir))
        lines.append("")

        lines.extend(
            [
                "# suppress PMIx munge warnings",
                "export PMIX_MCA_psec=native",
                "",
                "# writable cache directory, the default location inside the container is read-only",
                f"export SINGULARITYENV_TORCH_HOME={CFG.submission.torch_home}",
                f"export TORCH_HOME={CFG.submission.torch_home}",
                "",
                f"cd {shlex.quote(project_root)}",
                "",
                self._formatCommand(),
                "",
                "CMD_EXIT_CODE=$?",
                "if [ $CMD_EXIT_CODE -eq 0 ]; then",
                f"  {self._marker(output_dir, CFG.submission.success_marker)}",
                "else",
                f"  {self._marker(output_dir, CFG.submission.failure_marker)}",
                "fi",
                "exit $CMD_EXIT_CODE",
            ]
        )

        return "\n".join(lines) + "\n"

    def _directives(self, output_dir: str) -> list[str]:
        res = self.resources
        directives = []

        if job_name := sanitize_directive(self.job_name, "job name"):
            directives.append(f"--job-name={job_name}")
        directives.append(f"--output={Path(output_dir) / CFG.submission.stdout_name}")
        directives.append(f"--error={Path(output_dir) / CFG.submission.stderr_name}")

        if partition := sanitize_partition(res.partition or CFG.slurm.partition):
            directives.append(f"--partition={partition}")
        if res.walltime:
            directives.append(f"--time={res.walltime}")
        if res.mpi_procs > 1:
            directives.append(f"--ntasks={res.mpi_procs}")
        if res.threads > 1:
            directives.append(f"--cpus-per-task={res.threads}")
        if res.gpus > 0:
            directives.append(f"--gres=gpu:{res.gpus}")

        directives.extend(group_queue_args(res.queue_args))
        return directives

    def _formatCommand(self) -> str:
        command = wrap_in_container(self.command, self.resources.gpus > 0)

        if self.resources.mpi_procs <= 1:
            return format_command(command)

        # the scheduler only allocates the slots, the launcher starts the processes
        launcher = [
            CFG.executables.mpi_launcher,
            CFG.executables.mpi_script_np_flag,
            str(self.resources.mpi_procs),
        ]
        parts = split_chain(command)
        return format_command(join_chain([launcher + parts[0], *parts[1:]]))

    @staticmethod
    def _marker(output_dir: str, marker: str) -> str:
        path = shlex.quote(str(Path(output_dir) / marker))
        return f"[ -f {path} ] || touch {path}"
