# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import contains_dangerous_chars, ensure_path_safe, is_path_safe
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
    is_gpu_enabled,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

_INPUT = ["inputMicrographs", "input_star_file", "inputStarFile"]
_TOPAZ_EXE = ["topazExecutable", "topaz_exe"]


class AutoPickingBuilder(CommandBuilder):
    """
    Automated particle picking by Laplacian-of-Gaussian, template matching, or Topaz.

    Only template matching runs on GPUs.
    """

    stage_name = "AutoPick"
    program = "relion_autopick"

    @property
    def use_log(self) -> bool:
        return get_bool_param(self.params, ["laplacianGaussian"], False)

    @property
    def use_templates(self) -> bool:
        return get_bool_param(self.params, ["templateMatching"], False)

    @property
    def supports_gpu(self) -> bool:
        return self.use_templates and not self.use_log

    @property
    def uses_gpu(self) -> bool:
        return self.supports_gpu and (
            get_bool_param(self.params, ["useAcceleration"], False) or is_gpu_enabled(self.params)
        )

    def validate(self) -> ValidationResult:
        micrographs = get_param(self.params, _INPUT)
        if micrographs is None:
            return ValidationResult.missing("Input micrographs file", "inputMicrographs")

        topaz = get_param(self.params, _TOPAZ_EXE)
        if topaz is not None and not is_path_safe(str(topaz)):
            return ValidationResult.invalid(
                "Topaz executable path contains unsafe characters", "topazExecutable"
            )

        return self.validateFileExists(micrographs, "Input micrographs file", field="inputMicrographs")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        command = self.buildMpiCommand()
        command.extend(
            [
                "--i", self.relInput(get_param(params, _INPUT)),
                "--odir", self.relOutputDir(output_dir),
                "--pickname", "autopick",
                "--shrink", str(get_int_param(params, ["shrinkFactor", "shrink"], 0)),
                "--lowpass",
                format_number(get_float_param(params, ["lowpassFilterReference", "lowpass"], 20)),
            ]
        )
        self.addPipelineControl(command, output_dir)

        if self.use_log:
            command.extend(
                [
                    "--LoG",
                    "--LoG_diam_min",
                    format_number(get_float_param(params, ["minDiameter", "log_diam_min"], 200)),
                    "--LoG_diam_max",
                    format_number(get_float_param(params, ["maxDiameter", "log_diam_max"], 250)),
                    "--LoG_adjust_threshold",
                    format_number(
                        get_float_param(params, ["defaultThreshold", "log_adjust_threshold"], 0)
                    ),
                    "--LoG_upper_threshold",
                    format_number(
                        get_float_param(params, ["upperThreshold", "log_upper_threshold"], 999)
                    ),
                ]
            )

        if get_bool_param(params, ["areParticlesWhite", "log_invert"], False):
            command.append("--LoG_invert")

        if get_bool_param(params, ["useTopaz"], False):
            self._addTopazFlags(command)

        if self.use_templates:
            self._addTemplateFlags(command)

        command.extend(
            [
                "--threshold",
                format_number(get_float_param(params, ["pickingThreshold", "threshold"], 0.05)),
                "--min_distance",
                format_number(get_float_param(params, ["interParticle", "min_distance"], 100)),
                "--max_stddev_noise",
                format_number(get_float_param(params, ["maxStddev", "max_stddev_noise"], 1)),
                "--min_avg_noise",
                format_number(get_float_param(params, ["minAvg", "min_avg_noise"], -999)),
            ]
        )

        if get_bool_param(params, ["writeFOMMaps", "write_fom_maps"], False):
            command.append("--write_fom_maps")
        if get_bool_param(params, ["readFOMMaps", "read_fom_maps"], False):
            command.append("--read_fom_maps")

        self.addGpuFlags(command)

        if get_bool_param(params, ["pick2DHelicalSeg", "helix"], False):
            outer = get_float_param(params, ["tubeDiameter", "helical_tube_outer_diameter"], 200)
            command.extend(["--helix", "--helical_tube_outer_diameter", format_number(outer)])
            min_length = get_float_param(params, ["minLength", "helical_tube_length_min"], -1)
            if min_length > 0:
                command.extend(["--helical_tube_length_min", format_number(min_length)])

        command.extend(
            ["--do_thumbnails", "true", "--thumbnail_size", "512", "--thumbnail_count", "-1"]
        )
        self.addAdditionalArguments(command)
        return command

    def _addTopazFlags(self, command: list[str]) -> None:
        params = self.params

        if get_bool_param(params, ["performTopazPicking", "topaz_extract"], False):
            command.append("--topaz_extract")
            if (model := get_param(params, ["trainedTopazparticles", "topaz_model"])) is not None:
                command.extend(["--topaz_model", self.relInput(str(model))])

            diameter = get_float_param(params, ["particleDiameter", "topaz_particle_diameter"], -1)
            if diameter > 0:
                command.extend(["--topaz_particle_diameter", format_number(diameter)])

        if get_bool_param(params, ["performTopazTraining", "topaz_train"], False):
            command.append("--topaz_train")

            particles = get_param(params, ["particlesStar", "topaz_train_parts"])
            if particles is not None:
                command.extend(["--topaz_train_parts", self.relInput(str(particles))])
            elif not get_bool_param(params, ["trainParticles"], False):
                picks = get_param(params, ["inputPickCoordinates", "topaz_train_picks"])
                if picks is not None:
                    command.extend(["--topaz_train_picks", self.relInput(str(picks))])

            count = get_int_param(params, ["nrParticles", "topaz_nr_particles"], -1)
            if count > 0:
                command.extend(["--topaz_nr_particles", str(count)])

        if (executable := get_param(params, _TOPAZ_EXE)) is not None:
            command.extend(["--topaz_exe", ensure_path_safe(str(executable), "Topaz executable")])

        if (extra := get_param(params, ["topazArguments", "extra_topaz_args"])) is not None:
            if contains_dangerous_chars(str(extra)):
                logger.warning(f"[{self.stage_name}] Dropping Topaz arguments: contain disallowed characters.")
            else:
                command.extend(["--extra_topaz_args", str(extra)])

    def _addTemplateFlags(self, command: list[str]) -> None:
        params = self.params

        # 2D and 3D references are mutually exclusive
        refs_2d = get_param(params, ["twoDReferences", "ref"])
        ref_3d = get_param(params, ["threeDReference", "ref3d"])
        if refs_2d is not None and ref_3d is not None:
            logger.warning(
                f"[{self.stage_name}] Both 2D and 3D references specified, using the 2D references."
            )

        if refs_2d is not None:
            command.extend(["--ref", self.relInput(str(refs_2d))])
        elif ref_3d is not None:
            command.extend(["--ref", self.relInput(str(ref_3d))])

        command.extend(
            [
                "--angpix_ref", format_number(get_float_param(params, ["pixelRefe", "angpix_ref"], -1)),
                "--ang", format_number(get_float_param(params, ["angular", "ang"], 5)),
            ]
        )
        if get_bool_param(params, ["contrast", "invert"], False):
            command.append("--invert")
        if get_bool_param(params, ["corrected", "ctf"], False):
            command.append("--ctf")
