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

CLASS_FIELDS = ["classFromJob", "class_from_job", "selectClassesFromJob", "select_classes_from_job"]
PARTICLE_FIELDS = ["particlesStar", "particles_star"]
MICROGRAPH_FIELDS = ["microGraphsStar", "micrographsStar", "micrographs_star"]


class SubsetBuilder(CommandBuilder):
    """
    Subset selection.

    Either ranks 2D classes and selects the good ones automatically using
    `relion_class_ranker`, or selects, splits and deduplicates entries
    of a STAR file using `relion_star_handler`.
    """

    stage_name = "Select"
    program = "relion_star_handler"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    @property
    def auto_select(self) -> bool:
        return get_bool_param(self.params, ["select2DClass", "select_2d_class", "autoSelect"], False)

    @property
    def input_file(self) -> str | None:
        value = get_param(self.params, CLASS_FIELDS + PARTICLE_FIELDS + MICROGRAPH_FIELDS)
        return None if value is None else str(value)

    def validate(self) -> ValidationResult:
        if self.input_file is None:
            return ValidationResult.missing("Input STAR file", "particlesStar")

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        if self.auto_select:
            command = self._buildClassRankerCommand(output_dir)
        else:
            command = self._buildStarHandlerCommand(output_dir)

        self.addAdditionalArguments(command)
        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command

    def getOptimiserFile(self) -> str:
        """
        Get the optimiser file of the classification job the input belongs to.

        The data and model STAR files are mapped to the optimiser file of
        the same iteration. If that file does not exist, the latest optimiser
        file in the same directory is used.

        Returns:
            str: Project-relative path to the optimiser file.
        """
        optimiser = self.input_file
        for suffix in ("_data.star", "_model.star"):
            if suffix in optimiser:
                optimiser = optimiser.replace(suffix, "_optimiser.star")
                break

        resolved = self.resolveInputPath(optimiser)
        if not resolved.exists() and resolved.parent.is_dir():
            candidates = sorted(resolved.parent.glob("*_optimiser.star"))
            if candidates:
                logger.info(f"[{self.stage_name}] Using the latest optimiser file '{candidates[-1].name}'.")
                resolved = candidates[-1]

        return self.makeRelative(resolved)

    def _buildClassRankerCommand(self, output_dir: Path) -> list[str]:
        params = self.params
        rel_out = self.relOutputDir(output_dir)

        command = [
            "relion_class_ranker",
            "--opt", self.getOptimiserFile(),
            "--o", rel_out,
            "--auto_select",
            "--min_score",
            format_number(get_float_param(params, ["minThresholdAutoSelect", "min_threshold_auto_select"], 0.5)),
        ]

        if (min_particles := get_int_param(params, ["manyParticles", "many_particles", "minParticles"], -1)) > 0:
            command.extend(["--min_particles", str(min_particles)])

        if (min_classes := get_int_param(params, ["manyClasses", "many_classes", "minClasses"], -1)) > 0:
            command.extend(["--min_classes", str(min_classes)])

        self.addPipelineControl(command, output_dir)
        return command

    def _buildStarHandlerCommand(self, output_dir: Path) -> list[str]:
        params = self.params

        command = [
            self.program,
            "--i", self.relInput(self.input_file),
            "--o", self.makeRelative(output_dir / "particles.star"),
        ]

        if get_bool_param(params, ["metaDataValues", "meta_data_values"], False):
            command.extend(
                [
                    "--select", str(get_param(params, ["metaDataLabel", "meta_data_label"], "rlnCtfMaxResolution")),
                    "--minval", format_number(get_float_param(params, ["minMetaData", "min_meta_data"], -9999)),
                    "--maxval", format_number(get_float_param(params, ["maxMetaData", "max_meta_data"], 9999)),
                ]
            )

        if get_bool_param(params, ["imageStatics", "image_statics", "imageStatistics"], False):
            command.extend(
                [
                    "--discard_on_stats",
                    "--discard_label", str(get_param(params, ["metaDataForImage", "meta_data_for_image"], "rlnImageName")),
                    "--discard_sigma", format_number(get_float_param(params, ["SigmaValue", "sigmaValue", "sigma_value"], 4)),
                ]
            )

        if get_bool_param(params, ["split"], False):
            command.append("--split")
            if get_bool_param(params, ["randomise", "randomize"], False):
                command.append("--random_order")

            n_subsets = get_int_param(params, ["numberSubsets", "number_subsets"], -1)
            subset_size = get_int_param(params, ["subsetSize", "subset_size"], 100)
            if n_subsets > 0:
                command.extend(["--nr_split", str(n_subsets)])
            elif subset_size > 0:
                command.extend(["--size_split", str(subset_size)])

        if get_bool_param(params, ["removeDuplicates", "remove_duplicates"], False):
            command.extend(["--check_duplicates", "rlnImageName"])

        self.addPipelineControl(command, output_dir)
        return command
