# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)


class SubtractBuilder(CommandBuilder):
    """
    Signal subtraction from particle images.

    Subtracts the projections of the reference outside of the provided mask
    and optionally re-centers and re-boxes the subtracted images.
    """

    stage_name = "Subtract"
    program = "relion_particle_subtract"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        if get_param(self.params, ["optimiserStar"]) is None:
            return ValidationResult.missing("Optimiser STAR file", "optimiserStar")

        if get_param(self.params, ["maskOfSignal"]) is None:
            return ValidationResult.missing("Mask of signal to be subtracted", "maskOfSignal")

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params

        command = [
            self.program,
            "--i", self.relInput(get_param(params, ["optimiserStar"])),
            "--mask", self.relInput(get_param(params, ["maskOfSignal"])),
            "--o", self.relOutputDir(output_dir),
            "--new_box", str(get_int_param(params, ["newBoxSize"], -1)),
        ]

        if get_bool_param(params, ["outputInFloat16"], False):
            command.append("--float16")

        if get_bool_param(params, ["differentParticles"], False) and (
            particles := get_param(params, ["inputParticlesStar"])
        ) is not None:
            command.extend(["--data", self.relInput(particles)])

        if get_bool_param(params, ["subtractedImages"], False):
            command.append("--recenter_on_mask")

        if get_bool_param(params, ["centerCoordinates"], False):
            for axis in ("X", "Y", "Z"):
                value = get_float_param(params, [f"coordinate{axis}"], 0)
                command.extend([f"--center_{axis.lower()}", format_number(value)])

        if get_bool_param(params, ["revertToOriginal"], False) and (
            revert := get_param(params, ["revertParticles"])
        ) is not None:
            command.extend(["--revert", self.relInput(revert)])

        self.addPipelineControl(command, output_dir)
        self.addAdditionalArguments(command)

        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command
