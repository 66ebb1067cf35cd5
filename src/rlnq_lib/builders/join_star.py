# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import ParamBag, get_bool_param, get_param

from .interface import CommandBuilder, ValidationResult

logger = get_logger(__name__)

# (toggles, prefix of the input fields, output file)
_COMBINATIONS = [
    (["combineParticles", "combine_particles"], "particles", "join_particles.star"),
    (["combineMicrographs", "combine_micrographs"], "micrograph", "join_micrographs.star"),
    (["combineMovies", "combine_movies"], "movie", "join_movies.star"),
]

# maximal number of files combined per type
MAX_INPUTS = 4


def get_join_inputs(params: ParamBag, prefix: str) -> list[str]:
    """
    Collect up to four input STAR files of one type.

    Fields are named `<prefix>StarFile<N>` or `<prefix>_star_file_<N>`.
    """
    inputs = []
    for i in range(1, MAX_INPUTS + 1):
        value = get_param(params, [f"{prefix}StarFile{i}", f"{prefix}_star_file_{i}"])
        if value is not None:
            inputs.append(str(value))
    return inputs


class JoinStarBuilder(CommandBuilder):
    """Combination of particle, micrograph or movie STAR files."""

    stage_name = "JoinStar"
    program = "relion_star_handler"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        if not any(get_bool_param(self.params, toggles, False) for toggles, _, _ in _COMBINATIONS):
            return ValidationResult.invalid("At least one type of file combination must be selected")

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        command = [self.program, "--combine"]

        for toggles, prefix, output in _COMBINATIONS:
            if not get_bool_param(self.params, toggles, False):
                continue

            inputs = get_join_inputs(self.params, prefix)
            if not inputs:
                logger.warning(f"[{self.stage_name}] No '{prefix}' STAR files to combine.")
                continue

            # the program expects all files of one type as a single argument
            command.extend(
                [
                    "--i", " ".join(self.relInput(x) for x in inputs),
                    "--o", self.makeRelative(output_dir / output),
                ]
            )

        self.addPipelineControl(command, output_dir)

        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command
