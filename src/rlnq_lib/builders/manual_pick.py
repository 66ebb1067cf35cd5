# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import get_bool_param, get_float_param, get_param

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)


class ManualPickBuilder(CommandBuilder):
    """Interactive particle picking. Single process, CPU only."""

    stage_name = "ManualPick"
    program = "relion_manualpick"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        if get_param(self.params, ["inputMicrographs"]) is None:
            return ValidationResult.missing("Input micrographs STAR file", "inputMicrographs")
        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params

        def number(names: list[str], default: float) -> str:
            return format_number(get_float_param(params, names, default))

        command = [
            self.program,
            "--i", self.relInput(get_param(params, ["inputMicrographs"])),
            "--odir", self.relOutputDir(output_dir),
            "--allow_save",
            "--fast_save",
            "--selection", self.makeRelative(output_dir / "micrographs_selected.star"),
            "--particle_diameter", number(["particleDiameter"], 100),
            "--scale", number(["scaleForMicrographs"], 0.2),
            "--sigma_contrast", number(["sigmaContrast"], 3),
            "--black", number(["blackValue"], 0),
            "--white", number(["whiteValue"], 0),
        ]
        self.addPipelineControl(command, output_dir)

        if get_bool_param(params, ["pickCoordinatesHelices"], False):
            command.append("--pick_start_end")

        if get_bool_param(params, ["useAutopickThreshold"], False):
            command.extend(["--minimum_pick_fom", number(["autopickFOM"], 0)])

        if get_bool_param(params, ["useTopaz"], False):
            command.append("--topaz_denoise")

        # colouring of the particles by a metadata label
        if get_bool_param(params, ["blueRedColorParticles"], False):
            command.extend(
                ["--color_label", str(get_param(params, ["metadataLabel"], "rlnAutopickFigureOfMerit"))]
            )
            if (color_star := get_param(params, ["starfileWithColorLabel"])) is not None:
                command.extend(["--color_star", self.relInput(color_star)])
            command.extend(["--blue", number(["blueValue"], 0), "--red", number(["redValue"], 2)])

        self.addAdditionalArguments(command)
        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command
