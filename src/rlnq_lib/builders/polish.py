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


class PolishBuilder(CommandBuilder):
    """
    Bayesian polishing of particles, or training of its motion parameters.
    Runs on CPUs only.
    """

    stage_name = "Polish"
    program = "relion_motion_refine"

    @property
    def supports_gpu(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        particles = get_param(self.params, ["particlesFile"])
        if not (result := self.validateFileExists(particles, "Input particles STAR file", field="particlesFile")):
            return result

        movies = get_param(self.params, ["micrographsFile"])
        return self.validateFileExists(movies, "Input movies STAR file", field="micrographsFile")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        command = self.buildMpiCommand()
        command.extend(
            [
                "--i", self.relInput(get_param(params, ["particlesFile"])),
                "--o", self.relOutputDir(output_dir),
                "--corr_mic", self.relInput(get_param(params, ["micrographsFile"])),
            ]
        )

        if (postprocess := get_param(params, ["postProcessStarFile"])) is not None:
            command.extend(["--f", self.relInput(postprocess)])

        command.extend(
            [
                "--first_frame", str(get_int_param(params, ["firstMovieFrame"], 1)),
                "--last_frame", str(get_int_param(params, ["lastMovieFrame"], -1)),
            ]
        )

        if (window := get_int_param(params, ["extractionSize"], -1)) > 0:
            command.extend(["--window", str(window)])
        if (scale := get_int_param(params, ["rescaledSize"], -1)) > 0:
            command.extend(["--scale", str(scale)])

        if get_bool_param(params, ["float16"], False):
            command.append("--float16")

        if get_bool_param(params, ["trainOptimalBfactors"], False):
            fraction = format_number(get_float_param(params, ["fractionFourierPixels"], 0.5))
            command.extend(["--params3", "--align_frac", fraction, "--eval_frac", fraction])
            if (min_particles := get_int_param(params, ["useParticles"], 10000)) > 0:
                command.extend(["--min_p", str(min_particles)])
        else:
            command.extend(
                [
                    "--s_vel", format_number(get_float_param(params, ["sigmaVelocity"], 0.2)),
                    "--s_div", format_number(get_float_param(params, ["sigmaDivergence"], 5000)),
                    "--s_acc", format_number(get_float_param(params, ["sigmaAcceleration"], 2)),
                ]
            )
            if get_bool_param(params, ["performBfactorWeighting"], True):
                command.extend(
                    [
                        "--combine_frames",
                        "--bfac_minfreq",
                        format_number(get_float_param(params, ["minResolutionBfac"], 20)),
                    ]
                )
                max_res = get_float_param(params, ["maxResolutionBfac"], -1)
                if max_res > 0:
                    command.extend(["--bfac_maxfreq", format_number(max_res)])

        self.addThreadFlags(command, always=True)
        self.addPipelineControl(command, output_dir)
        self.addAdditionalArguments(command)
        return command
