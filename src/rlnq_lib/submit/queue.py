# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import re
import subprocess
from pathlib import Path

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import SubmissionError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import ensure_path_safe
from rlnq_lib.properties.resources import ResourceSpec

from .script import BatchScript

logger = get_logger(__name__)


class QueueSubmitter:
    """
    Submits a job to Slurm.

    Writes the batch script into the output directory of the job and passes
    its path to a safelisted submission command. The command line is never
    interpreted by a shell.
    """

    def __init__(
        self,
        job_name: str,
        output_dir: Path,
        project_root: Path,
        command: list[str],
        resources: ResourceSpec,
    ):
        self._script = BatchScript(job_name, output_dir, project_root, command, resources)
        self._resources = resources

    @property
    def script_path(self) -> Path:
        return self._script.output_dir / CFG.submission.script_name

    def getSubmitCommand(self) -> str:
        """
        Get the command used to submit the script.

        Commands that are not explicitly allowed are replaced by the default one.
        """
        requested = self._resources.submit_command
        if requested is None:
            return CFG.slurm.submit_command

        if requested not in CFG.slurm.allowed_submit_commands:
            logger.warning(
                f"Submit command '{requested}' is not allowed, using '{CFG.slurm.submit_command}'."
            )
            return CFG.slurm.submit_command

        return requested

    def writeScript(self) -> Path:
        """
        Write the batch script (mode 0755).

        Raises:
            SubmissionError: If the script cannot be written.
        """
        script = self.script_path
        try:
            script.write_text(self._script.render())
            script.chmod(0o755)
        except OSError as e:
            raise SubmissionError(f"Could not write the batch script '{script}': {e}.") from e

        logger.debug(f"Batch script written to '{script}'.")
        return script

    def submit(self) -> str:
        """
        Write and submit the batch script.

        Returns:
            str: Identifier of the job assigned by the scheduler.

        Raises:
            SubmissionError: If the submission command fails or its output
                does not contain the job identifier.
        """
        script = ensure_path_safe(str(self.writeScript()), "batch script")
        command = [self.getSubmitCommand(), script]
        logger.debug(f"Submitting: {' '.join(command)}.")

        try:
            result = subprocess.run(
                command,
                cwd=self._script.project_root,
                text=True,
                check=False,
                capture_output=True,
                errors="replace",
            )
        except OSError as e:
            raise SubmissionError(f"Failed to run '{command[0]}': {e}.") from e

        if result.returncode != 0:
            raise SubmissionError(
                f"Failed to submit script '{script}': {result.stderr.strip()}."
            )

        if not (match := re.search(CFG.submission.submitted_pattern, result.stdout)):
            raise SubmissionError(
                f"Could not parse the job id from the output of '{command[0]}': {result.stdout.strip()}"
            )

        logger.debug(f"Scheduler assigned id '{match.group(1)}'.")
        return match.group(1)
