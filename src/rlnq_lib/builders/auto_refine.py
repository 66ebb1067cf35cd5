# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_input_star_file,
    get_mask_diameter,
    get_param,
    get_pooled_particles,
    get_reference,
    get_symmetry,
)

from .interface import CommandBuilder, ValidationResult, format_number
from .refine import (
    add_ctf_flags,
    add_helical_flags,
    add_io_flags,
    get_healpix_order,
    get_initial_lowpass,
    get_offset_range,
    get_offset_step,
)

logger = get_logger(__name__)

# leader plus one worker per half-set
MIN_SPLIT_HALVES_PROCS = 3


class AutoRefineBuilder(CommandBuilder):
    """
    3D auto-refinement with gold-standard half-sets.
    """

    stage_name = "AutoRefine"
    program = "relion_refine"

    @property
    def mpi_procs(self) -> int:
        procs = super().mpi_procs
        if 1 < procs < MIN_SPLIT_HALVES_PROCS:
            logger.warning(
                f"[{self.stage_name}] {procs} MPI processes requested, "
                f"using {MIN_SPLIT_HALVES_PROCS} for split random halves."
            )
            return MIN_SPLIT_HALVES_PROCS
        return procs

    def validate(self) -> ValidationResult:
        input_star = get_input_star_file(self.params)
        reference = get_reference(self.params)

        if input_star is None:
            return ValidationResult.missing("Input star file", "inputStarFile")
        if reference is None:
            return ValidationResult.missing("Reference map", "referenceMap")

        if not (result := self.validateFileExists(input_star, "Input STAR file", field="inputStarFile")):
            return result
        return self.validateFileExists(reference, "Reference map", field="referenceMap")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        rel_out = self.relOutputDir(output_dir)
        command = self.buildMpiCommand()

        command.extend(
            [
                "--i", self.relInput(get_input_star_file(params)),
                "--o", rel_out,
                "--auto_refine",
                "--split_random_halves",
                "--ref", self.relInput(get_reference(params)),
                "--ini_high", format_number(get_initial_lowpass(params)),
                "--sym", get_symmetry(params),
                "--particle_diameter", format_number(get_mask_diameter(params)),
                "--healpix_order", str(get_healpix_order(params)),
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

        if not get_bool_param(params, ["resizeReference"], True):
            command.append("--trust_ref_size")

        if (mask := get_param(params, ["referenceMask", "solvent_mask"])) is not None:
            command.extend(["--solvent_mask", self.relInput(mask)])

        command.extend(["--offset_range", str(get_offset_range(params))])
        command.extend(["--offset_step", str(get_offset_step(params))])

        if get_bool_param(params, ["finerAngularSampling"], False):
            command.extend(["--auto_ignore_angles", "--auto_resol_angles"])

        if (relax := get_param(params, ["RelaxSymmetry", "relaxSymmetry"])) is not None:
            command.extend(["--relax_sym", str(relax)])

        if not get_bool_param(params, ["referenceMapAbsolute", "absoluteGreyscale"], False):
            command.append("--firstiter_cc")

        add_ctf_flags(command, params)

        if get_bool_param(params, ["maskIndividualparticles", "maskParticlesWithZeros"], True):
            command.append("--zero_mask")
        if get_bool_param(params, ["useBlushRegularisation"], False):
            command.append("--blush")
        if get_bool_param(params, ["useSolventFlattenedFscs", "solvent_correct_fsc"], False):
            command.append("--solvent_correct_fsc")

        add_io_flags(command, params)
        self.addGpuFlags(command)
        add_helical_flags(command, params, refine=True)

        self.addAdditionalArguments(command)
        return command
