# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_angpix,
    get_bool_param,
    get_float_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)


class MaskCreateBuilder(CommandBuilder):
    """Creation of a soft-edged solvent mask from a map. Single process, CPU only."""

    stage_name = "MaskCreate"
    program = "relion_mask_create"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        return self.validateFileExists(
            get_param(self.params, ["inputMap"]), "Input map", field="inputMap"
        )

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params

        command = [
            self.program,
            "--i", self.relInput(get_param(params, ["inputMap"])),
            "--o", self.makeRelative(output_dir / "mask.mrc"),
            "--ini_threshold", format_number(get_float_param(params, ["initialThreshold"], 0.004)),
            "--extend_inimask", format_number(get_float_param(params, ["extendBinaryMask"], 3)),
            "--width_soft_edge", format_number(get_float_param(params, ["softEdgeWidth"], 6)),
        ]

        if (angpix := get_angpix(params, -1)) > 0:
            command.extend(["--angpix", format_number(angpix)])

        if (lowpass := get_float_param(params, ["lowpassFilter"], 15)) > 0:
            command.extend(["--lowpass", format_number(lowpass)])

        if get_bool_param(params, ["invertMask"], False):
            command.append("--invert")

        # filling with spheres is used for helical masks
        if get_bool_param(params, ["fillWithSpheres"], False):
            command.extend(
                ["--fill", "--sphere_radius", format_number(get_float_param(params, ["sphereRadius"], 10))]
            )

        self.addPipelineControl(command, output_dir)
        self.addAdditionalArguments(command)

        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command
