# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import get_angpix, get_float_param, get_param

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)


class LocalResolutionBuilder(CommandBuilder):
    """Local resolution estimation using the postprocessing program in `--locres` mode."""

    stage_name = "LocalRes"
    program = "relion_postprocess"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        if not (
            result := self.validateFileExists(
                get_param(self.params, ["halfMap"]), "Half map", field="halfMap"
            )
        ):
            return result

        if get_param(self.params, ["solventMask"]) is None:
            return ValidationResult.missing("Solvent mask", "solventMask")

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params

        command = self.buildMpiCommand()
        command.extend(
            [
                "--locres",
                "--i", self.relInput(get_param(params, ["halfMap"])),
                "--mask", self.relInput(get_param(params, ["solventMask"])),
                "--angpix", format_number(get_angpix(params, 1)),
                "--adhoc_bfac", format_number(get_float_param(params, ["bFactor"], -100)),
                "--o", self.makeRelative(output_dir / "relion"),
            ]
        )
        self.addPipelineControl(command, output_dir)

        if (mtf := get_param(params, ["mtfDetector"])) is not None:
            command.extend(["--mtf", self.relInput(mtf)])

        self.addAdditionalArguments(command)

        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command
