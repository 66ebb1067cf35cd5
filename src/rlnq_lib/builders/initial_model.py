# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_input_star_file,
    get_int_param,
    get_mask_diameter,
    get_number_of_classes,
    get_pooled_particles,
    get_symmetry,
)

from .interface import CommandBuilder, ValidationResult, format_number
from .refine import add_particle_io_flags

logger = get_logger(__name__)


class InitialModelBuilder(CommandBuilder):
    """
    De novo 3D initial model by gradient refinement.

    Gradient refinement cannot run with MPI.
    """

    stage_name = "InitialModel"
    program = "relion_refine"

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        input_star = get_input_star_file(self.params)
        if input_star is None:
            return ValidationResult.missing("Input star file", "inputStarFile")
        return self.validateFileExists(input_star, "Input STAR file", field="inputStarFile")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        command = [self.program]
        command.extend(
            [
                "--o", self.makeRelative(output_dir / "run"),
                "--iter", str(get_int_param(params, ["numberOfVdam"], 200)),
                "--grad",
                "--denovo_3dref",
                "--i", self.relInput(get_input_star_file(params)),
                "--K", str(get_number_of_classes(params)),
                "--sym", get_symmetry(params),
                "--zero_mask",
                "--pool", str(get_pooled_particles(params)),
                "--pad", "1",
                "--particle_diameter", format_number(get_mask_diameter(params)),
                "--oversampling", "1",
                "--healpix_order", "1",
                "--offset_range", "6",
                "--offset_step", "2",
                "--auto_sampling",
                "--tau2_fudge",
                format_number(get_float_param(params, ["regularisationParameter"], 2)),
            ]
        )
        self.addThreadFlags(command, always=True)
        self.addPipelineControl(command, output_dir)

        if get_bool_param(params, ["ctfCorrection"], True):
            command.append("--ctf")
        if get_bool_param(params, ["ignoreCTFs"], False):
            command.append("--ctf_intact_first_peak")
        if get_bool_param(params, ["nonNegativeSolvent"], True):
            command.append("--flatten_solvent")

        if not get_bool_param(params, ["Useparalleldisc", "useParallelIO"], True):
            command.append("--no_parallel_disc_io")
        if not get_bool_param(params, ["combineIterations"], False):
            command.append("--dont_combine_weights_via_disc")
        add_particle_io_flags(command, params)

        self.addGpuFlags(command)
        self.addAdditionalArguments(command)
        return command
