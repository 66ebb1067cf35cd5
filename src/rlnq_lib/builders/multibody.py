# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_param,
    get_pooled_particles,
)

from .interface import CommandBuilder, ValidationResult, format_number
from .refine import add_io_flags

logger = get_logger(__name__)

_REFINEMENT = ["refinementStarFile", "refinement_star_file"]
_BODIES = ["bodyStarFile", "body_star_file"]


class MultibodyBuilder(CommandBuilder):
    """
    Multi-body refinement of a consensus refinement.
    """

    stage_name = "MultiBody"
    program = "relion_refine"

    def validate(self) -> ValidationResult:
        refinement = get_param(self.params, _REFINEMENT)
        if refinement is None:
            return ValidationResult.missing("Refinement STAR file", "refinementStarFile")
        if not (result := self.validateFileExists(refinement, "Refinement STAR file", field="refinementStarFile")):
            return result

        if (bodies := get_param(self.params, _BODIES)) is not None:
            return self.validateFileExists(bodies, "Body STAR file", field="bodyStarFile")
        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        command = self.buildMpiCommand()
        offset_range = get_float_param(params, ["offsetSearchRange", "offset_search_range"], 5)
        offset_step = get_float_param(params, ["offsetStep", "offset_step"], 0.75)

        command.extend(
            [
                "--i", self.relInput(get_param(params, _REFINEMENT)),
                "--o", self.makeRelative(output_dir / "run"),
                "--auto_refine",
                "--split_random_halves",
                "--healpix_order", "2",
                "--offset_range", format_number(offset_range),
                "--offset_step", format_number(offset_step),
                "--auto_local_healpix_order", "4",
                "--flatten_solvent",
                "--norm",
                "--scale",
                "--oversampling", "1",
                "--pool", str(get_pooled_particles(params)),
                "--pad", "2",
                "--low_resol_join_halves", "40",
            ]
        )
        self.addThreadFlags(command, always=True)
        self.addPipelineControl(command, output_dir)

        if (bodies := get_param(params, _BODIES)) is not None:
            command.extend(["--multibody_masks", self.relInput(bodies)])
            if get_bool_param(params, ["reconstructSubtracted", "reconstruct_subtracted_bodies"], True):
                command.append("--reconstruct_subtracted_bodies")

        if get_bool_param(params, ["useBlushRegularisation", "use_blush_regularisation"], False):
            command.append("--blush")

        self.addGpuFlags(command)
        add_io_flags(command, params, combine_default=True)
        self.addAdditionalArguments(command)
        return command
