# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_continue_from,
    get_float_param,
    get_input_star_file,
    get_int_param,
    get_iterations,
    get_mask_diameter,
    get_number_of_classes,
    get_param,
    get_pooled_particles,
)

from .interface import CommandBuilder, ValidationResult, format_number
from .refine import (
    add_particle_io_flags,
    get_offset_range,
    get_offset_step,
    get_regularisation,
)

logger = get_logger(__name__)


class Class2DBuilder(CommandBuilder):
    """
    Reference-free 2D classification.

    A job continuing from the optimiser file of a previous run takes all
    parameters from that file and needs no input particles.
    """

    stage_name = "Class2D"
    program = "relion_refine"

    def validate(self) -> ValidationResult:
        if (continue_from := get_continue_from(self.params)) is not None:
            return self.validateFileExists(continue_from, "Continue from file", field="continueFrom")

        input_star = get_input_star_file(self.params)
        if input_star is None:
            return ValidationResult.missing("Input star file", "inputStarFile")
        return self.validateFileExists(input_star, "Input STAR file", field="inputStarFile")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        rel_out = self.relOutputDir(output_dir)
        command = self.buildMpiCommand()
        pooled = str(get_pooled_particles(params))
        offset_step = get_offset_step(params)

        if (continue_from := get_continue_from(params)) is not None:
            logger.info(f"[{self.stage_name}] Continuing from '{continue_from}'.")
            command.extend(
                [
                    "--o", rel_out,
                    "--continue", self.relInput(continue_from),
                    "--dont_combine_weights_via_disc",
                    "--pool", pooled,
                ]
            )
            self.addThreadFlags(command, always=True)
            self.addPipelineControl(command, output_dir)
        else:
            command.extend(
                [
                    "--o", rel_out,
                    "--i", self.relInput(get_input_star_file(params)),
                    "--dont_combine_weights_via_disc",
                    "--pool", pooled,
                    "--ctf",
                    "--iter", str(get_iterations(params)),
                    "--tau2_fudge", format_number(get_regularisation(params)),
                    "--particle_diameter", format_number(get_mask_diameter(params)),
                    "--K", str(get_number_of_classes(params)),
                    "--flatten_solvent",
                    "--zero_mask",
                    "--center_classes",
                    "--oversampling", "1",
                    "--psi_step",
                    format_number(get_float_param(params, ["inPlaneAngularSampling", "psi_step"], 6)),
                    "--offset_range", str(get_offset_range(params)),
                    "--offset_step", str(offset_step),
                    "--norm",
                    "--scale",
                ]
            )
            self.addThreadFlags(command, always=True)
            self.addPipelineControl(command, output_dir)
            self._addClassificationFlags(command, offset_step)

        self.addGpuFlags(command)
        add_particle_io_flags(command, params)
        self.addAdditionalArguments(command)
        return command

    def _addClassificationFlags(self, command: list[str], offset_step: int) -> None:
        """Options that only apply to a new run."""
        params = self.params

        if get_bool_param(params, ["ignoreCTFs", "ctf_intact_first_peak"], False):
            command.append("--ctf_intact_first_peak")

        # VDAM algorithm
        if get_bool_param(params, ["useVDAM"], True):
            command.extend(
                ["--grad", "--class_inactivity_threshold", "0.1", "--grad_write_iter", "10"]
            )
            mini_batches = get_int_param(params, ["vdamMiniBatches", "subset_size"], 200)
            if mini_batches > 0:
                command.extend(["--subset_size", str(mini_batches)])

        limit = get_float_param(params, ["limitResolutionEStep", "strict_highres_exp"], -1)
        if limit > 0:
            command.extend(["--strict_highres_exp", format_number(limit)])

        if not get_bool_param(params, ["classify2DHelical", "helical"], False):
            return

        outer = get_float_param(params, ["tubeDiameter", "helical_outer_diameter"], 200)
        command.extend(["--helical_outer_diameter", format_number(outer)])
        if get_bool_param(params, ["doBimodalAngular", "bimodal_psi"], False):
            command.append("--bimodal_psi")

        rise = get_float_param(params, ["helicalRise", "helical_rise"], 4.75)
        command.extend(["--helical_rise", format_number(rise)])

        if (
            get_bool_param(params, ["restrictHelicalOffsets"], False)
            or get_param(params, ["helical_offset_step"]) is not None
        ):
            command.extend(["--helical_offset_step", str(offset_step)])
