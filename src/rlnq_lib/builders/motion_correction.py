# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.config import CFG
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import ensure_path_safe
from rlnq_lib.params.resolver import (
    ParamBag,
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
)

from .arguments import sanitize_arguments
from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

GAIN_ROTATIONS = {
    "No rotation (0)": 0,
    "90 degrees (1)": 1,
    "180 degrees (2)": 2,
    "270 degrees (3)": 3,
}

GAIN_FLIPS = {
    "No flipping (0)": 0,
    "Flip upside down (1)": 1,
    "Flip left to right (2)": 2,
}


def get_gain_rotation(params: ParamBag) -> int:
    """Gain reference rotation as the RELION code (0-3)."""
    value = get_param(params, ["gainRotation", "gain_rot"], 0)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return int(value)

    text = str(value)
    if text in GAIN_ROTATIONS:
        return GAIN_ROTATIONS[text]
    for degrees, code in (("270", 3), ("180", 2), ("90", 1)):
        if degrees in text:
            return code
    return int(text) if text.isdigit() else 0


def get_gain_flip(params: ParamBag) -> int:
    """Gain reference flip as the RELION code (0-2)."""
    value = get_param(params, ["gainFlip", "gain_flip"], 0)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return int(value)

    text = str(value)
    if text in GAIN_FLIPS:
        return GAIN_FLIPS[text]
    lowered = text.lower()
    if "upside" in lowered or "horizontal" in lowered:
        return 1
    if "left" in lowered or "vertical" in lowered:
        return 2
    return int(text) if text.isdigit() else 0


class MotionCorrectionBuilder(CommandBuilder):
    """
    Beam-induced motion correction of movies.

    RELION's own implementation runs on CPUs. MotionCor2 runs on GPUs and
    cannot write float16 output or power spectra.
    """

    stage_name = "MotionCorr"
    program = "relion_run_motioncorr"

    @property
    def use_own(self) -> bool:
        return get_bool_param(self.params, ["useRelionImplementation"], True)

    @property
    def supports_gpu(self) -> bool:
        return not self.use_own

    @property
    def uses_gpu(self) -> bool:
        # MotionCor2 always runs on GPUs
        return self.supports_gpu

    def validate(self) -> ValidationResult:
        movies = get_param(self.params, ["inputMovies"])
        if movies is None:
            return ValidationResult.missing("Input movies STAR file", "inputMovies")
        return self.validateFileExists(movies, "Input movies STAR file", field="inputMovies")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        command = self.buildMpiCommand()
        command.extend(
            [
                "--i", self.relInput(get_param(params, ["inputMovies"])),
                "--o", self.relOutputDir(output_dir),
                "--first_frame_sum", str(get_int_param(params, ["firstFrame"], 1)),
                "--last_frame_sum", str(get_int_param(params, ["lastFrame"], -1)),
                "--bin_factor", str(get_int_param(params, ["binningFactor"], 1)),
                "--bfactor", str(get_int_param(params, ["bfactor"], 150)),
                "--dose_per_frame",
                format_number(get_float_param(params, ["dosePerFrame"], 1.0)),
                "--preexposure",
                format_number(get_float_param(params, ["preExposure"], 0.0)),
                "--patch_x", str(get_int_param(params, ["patchesX"], 1)),
                "--patch_y", str(get_int_param(params, ["patchesY"], 1)),
                "--eer_grouping", str(get_int_param(params, ["eerFractionation"], 32)),
            ]
        )
        self.addPipelineControl(command, output_dir)

        gain = get_param(params, ["gainReferenceImage"])
        if gain is not None and str(gain).strip():
            command.extend(["--gainref", self.relInput(str(gain).strip())])
            if rotation := get_gain_rotation(params):
                command.extend(["--gain_rot", str(rotation)])
            if flip := get_gain_flip(params):
                command.extend(["--gain_flip", str(flip)])

        defect = get_param(params, ["defectFile"])
        if defect is not None and str(defect).strip():
            command.extend(["--defect_file", self.relInput(str(defect).strip())])

        float16 = self.use_own and get_bool_param(params, ["float16Output"], False)
        if float16:
            command.append("--float16")

        dose_weighting = get_bool_param(params, ["doseWeighting"], False)
        if dose_weighting:
            command.append("--dose_weighting")
            if get_bool_param(params, ["nonDoseWeighted"], False):
                command.append("--save_noDW")

        # float16 output requires power spectra
        if self.use_own and (get_bool_param(params, ["savePowerSpectra"], False) or float16):
            every = get_int_param(params, ["sumPowerSpectra", "powerSpectraEvery"], 4)
            command.extend(["--grouping_for_ps", str(every)])

        self.addThreadFlags(command)

        if self.use_own:
            command.append("--use_own")
        else:
            self._addMotionCor2Flags(command)

        command.extend(
            ["--do_thumbnails", "true", "--thumbnail_size", "512", "--thumbnail_count", "-1"]
        )
        self.addAdditionalArguments(command)
        return command

    def _addMotionCor2Flags(self, command: list[str]) -> None:
        command.append("--use_motioncor2")

        executable = CFG.executables.motioncor2.strip()
        if executable:
            command.extend(["--motioncor2_exe", ensure_path_safe(executable, "MotionCor2 executable")])
        else:
            logger.warning(f"[{self.stage_name}] MotionCor2 executable is not configured.")

        self.addGpuFlags(command)

        if (other := get_param(self.params, ["otherMotion"])) is not None:
            command.extend(sanitize_arguments(str(other)))
