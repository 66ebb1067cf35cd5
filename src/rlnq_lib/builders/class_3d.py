# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_input_star_file,
    get_iterations,
    get_mask_diameter,
    get_number_of_classes,
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
    get_regularisation,
)

logger = get_logger(__name__)


class Class3DBuilder(CommandBuilder):
    """
    3D classification of particles against a reference map.
    """

    stage_name = "Class3D"
    program = "relion_refine"

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

        command.extend(["--i", self.relInput(get_input_star_file(params))])
        command.extend(["--o", rel_out])
        command.extend(["--ref", self.relInput(get_reference(params))])

        if not get_bool_param(params, ["resizeReference"], True):
            command.append("--trust_ref_size")

        command.extend(
            [
                "--ini_high", format_number(get_initial_lowpass(params)),
                "--sym", get_symmetry(params),
                "--K", str(get_number_of_classes(params)),
                "--tau2_fudge", format_number(get_regularisation(params)),
                "--particle_diameter", format_number(get_mask_diameter(params)),
                "--iter", str(get_iterations(params)),
                "--flatten_solvent",
                "--norm",
                "--scale",
                "--oversampling", "1",
                "--pad", "2",
                "--pool", str(get_pooled_particles(params)),
            ]
        )
        self.addThreadFlags(command, always=True)
        self.addPipelineControl(command, output_dir)

        if (mask := get_param(params, ["referenceMask", "solvent_mask"])) is not None:
            command.extend(["--solvent_mask", self.relInput(mask)])

        if not get_bool_param(params, ["referenceMapAbsolute", "absoluteGreyscale"], False):
            command.append("--firstiter_cc")

        add_ctf_flags(command, params)

        if get_bool_param(params, ["fastSubsets", "useEM"], False):
            command.append("--fast_subsets")
        if get_bool_param(params, ["useBlushRegularisation"], False):
            command.append("--blush")
        if get_bool_param(params, ["maskIndividualparticles", "maskParticlesWithZeros"], True):
            command.append("--zero_mask")

        if get_bool_param(params, ["performImageAlignment"], True):
            command.extend(["--offset_range", str(get_offset_range(params))])
            command.extend(["--offset_step", str(get_offset_step(params))])
        else:
            command.append("--skip_align")

        add_io_flags(command, params)
        self.addGpuFlags(command)
        add_helical_flags(command, params)

        command.extend(["--healpix_order", str(get_healpix_order(params))])

        if get_bool_param(params, ["localAngularSearches"], False):
            local_range = get_float_param(params, ["localAngularSearchRange"], 5)
            command.extend(["--sigma_ang", format_number(local_range / 3.0)])

        if get_bool_param(params, ["coarserSampling"], False):
            command.append("--allow_coarser_sampling")

        self.addAdditionalArguments(command)
        return command
