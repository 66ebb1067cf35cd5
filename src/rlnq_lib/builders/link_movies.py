# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import os
from pathlib import Path

from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import get_param

from .interface import CommandBuilder, ValidationResult

logger = get_logger(__name__)

SOURCE_FIELDS = ["source_path", "sourcePath"]

# name of the link inside the project directory
MOVIES_LINK = "Movies"


class LinkMoviesBuilder(CommandBuilder):
    """
    Link a directory with raw movies into the project as `<project>/Movies`.

    Performed in-process, no command is spawned and no output directory is created.
    """

    stage_name = "LinkMovies"
    program = ""

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    @property
    def runs_in_process(self) -> bool:
        return True

    def validate(self) -> ValidationResult:
        return self.validateFileExists(
            get_param(self.params, SOURCE_FIELDS), "Source path", expect="dir", field="sourcePath"
        )

    def getOutputDir(self, job_name: str) -> Path:
        # the link is the only output
        return self.project.root / MOVIES_LINK

    def buildCommand(self, output_dir: Path, job_name: str) -> None:
        return None

    def execute(self, output_dir: Path) -> None:
        """
        Replace `<project>/Movies` with a symbolic link to the source directory.

        An existing link or an empty directory is removed first.

        Raises:
            RlnqError: If the link could not be created.
        """
        source = self.resolveInputPath(str(get_param(self.params, SOURCE_FIELDS)))
        link = self.project.root / MOVIES_LINK

        try:
            if link.is_symlink():
                link.unlink()
                logger.debug(f"Removed existing link '{link}'.")
            elif link.is_dir():
                link.rmdir()
                logger.debug(f"Removed existing directory '{link}'.")

            os.symlink(source, link, target_is_directory=True)
        except OSError as e:
            raise RlnqError(f"Could not link '{source}' to '{link}': {e}.") from e

        logger.info(f"Linked '{link}' -> '{source}'.")
