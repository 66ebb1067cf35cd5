# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import re
from pathlib import Path

from rlnq_lib.core.config import CFG
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import ensure_path_safe, is_path_safe
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_input_star_file,
    get_int_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

_CTFFIND5 = re.compile(r"ctffind[-_]?5", re.IGNORECASE)


class CtfEstimationBuilder(CommandBuilder):
    """
    Estimation of the contrast transfer function of micrographs.

    CTFFIND runs on CPUs, Gctf on GPUs.
    """

    stage_name = "CtfFind"
    program = "relion_run_ctffind"

    @property
    def use_gctf(self) -> bool:
        return get_bool_param(self.params, ["useGctf", "use_gctf"], False)

    @property
    def supports_gpu(self) -> bool:
        return self.use_gctf

    @property
    def uses_gpu(self) -> bool:
        # Gctf always runs on GPUs
        return self.use_gctf

    @property
    def executable(self) -> str:
        if self.use_gctf:
            return str(get_param(self.params, ["gctfExecutable", "gctf_exe"], CFG.executables.gctf))
        return str(
            get_param(
                self.params,
                ["ctfFindExecutable", "ctffindExecutable", "ctffind_exe"],
                CFG.executables.ctffind,
            )
        )

    def validate(self) -> ValidationResult:
        input_star = get_input_star_file(self.params)
        if input_star is None:
            return ValidationResult.missing("Input STAR file", "inputStarFile")

        if not is_path_safe(self.executable):
            return ValidationResult.invalid("Executable path contains unsafe characters")

        return self.validateFileExists(input_star, "Input STAR file", field="inputStarFile")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        rel_out = self.relOutputDir(output_dir)
        command = self.buildMpiCommand()
        command.extend(
            [
                "--i", self.relInput(get_input_star_file(params)),
                "--o", rel_out,
                "--dAst", str(get_int_param(params, ["astigmatism", "dAst"], 100)),
            ]
        )

        executable = ensure_path_safe(self.executable, "CTF estimation executable")
        if self.use_gctf:
            command.extend(["--use_gctf", "--gctf_exe", executable])
        else:
            command.extend(["--ctffind_exe", executable])
            # CTFFIND5 writes a different output format
            if not _CTFFIND5.search(executable):
                command.append("--is_ctffind4")

        def_min = get_float_param(params, ["minDefocus"], 5000)
        def_max = get_float_param(params, ["maxDefocus"], 50000)
        if def_min > def_max:
            logger.warning(
                f"[{self.stage_name}] Defocus range inverted ({def_min} > {def_max}), swapping."
            )
            def_min, def_max = def_max, def_min

        command.extend(
            [
                "--ctfWin", str(get_int_param(params, ["ctfWindowSize"], -1)),
                "--Box", str(get_int_param(params, ["fftBoxSize"], 512)),
                "--ResMin", format_number(get_float_param(params, ["minResolution"], 30)),
                "--ResMax", format_number(get_float_param(params, ["maxResolution"], 5)),
                "--dFMin", format_number(def_min),
                "--dFMax", format_number(def_max),
                "--FStep", format_number(get_float_param(params, ["defocusStepSize"], 500)),
            ]
        )
        self.addPipelineControl(command, output_dir)

        if get_bool_param(params, ["usePowerSpectraFromMotionCorr"], False):
            command.append("--use_given_ps")
        if get_bool_param(params, ["useMicrographWithoutDoseWeighting"], False):
            command.append("--use_noDW")
        if not get_bool_param(params, ["useExhaustiveSearch"], True):
            command.append("--fast_search")

        if get_bool_param(params, ["estimatePhaseShifts"], False):
            command.extend(
                [
                    "--do_phaseshift",
                    "--phase_min", format_number(get_float_param(params, ["phaseShiftMin"], 0)),
                    "--phase_max", format_number(get_float_param(params, ["phaseShiftMax"], 180)),
                    "--phase_step", format_number(get_float_param(params, ["phaseShiftStep"], 10)),
                ]
            )

        self.addGpuFlags(command)
        command.extend(
            ["--do_thumbnails", "true", "--thumbnail_size", "512", "--thumbnail_count", "-1"]
        )
        self.addAdditionalArguments(command)
        return command
