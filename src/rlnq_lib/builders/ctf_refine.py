# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    ParamBag,
    get_bool_param,
    get_float_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

# label in a postprocess STAR file written only for masked runs
MASK_LABEL = "_rlnMaskName"

_MODES = ["estimateMagnification", "ctfParameter", "estimateBeamtilt", "aberrations"]


def _mode_char(value: object) -> str:
    if value == "Per-micrograph":
        return "m"
    if value == "Per-particle":
        return "p"
    return "f"


def get_fit_mode(params: ParamBag) -> str:
    """
    Compose the `--fit_mode` string.

    The five characters select the fitting of the phase shift, defocus,
    astigmatism, (always fixed) and B-factor: 'm' per micrograph,
    'p' per particle, 'f' fixed.
    """
    return (
        _mode_char(get_param(params, ["fitPhaseShift"], "No"))
        + _mode_char(get_param(params, ["fitDefocus"], "No"))
        + _mode_char(get_param(params, ["fitAstigmatism"], "No"))
        + "f"
        + _mode_char(get_param(params, ["fitBFactor"], "No"))
    )


class CtfRefineBuilder(CommandBuilder):
    """
    Per-particle CTF refinement. Runs on CPUs only.

    Requires a postprocess run with a solvent mask and at least one enabled refinement.
    """

    stage_name = "CtfRefine"
    program = "relion_ctf_refine"

    @property
    def supports_gpu(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        particles = get_param(self.params, ["particlesStar"])
        if not (result := self.validateFileExists(particles, "Input particles STAR file", field="particlesStar")):
            return result

        postprocess = get_param(self.params, ["postProcessStar"])
        if postprocess is None:
            return ValidationResult.missing(
                "Post-process STAR file (for FSC-weighting)", "postProcessStar"
            )
        if not (result := self.validateFileExists(postprocess, "Post-process STAR file", field="postProcessStar")):
            return result

        try:
            content = self.resolveInputPath(postprocess).read_text(errors="replace")
        except OSError as e:
            logger.warning(f"[{self.stage_name}] Could not read '{postprocess}' to check the mask: {e}.")
        else:
            if MASK_LABEL not in content:
                return ValidationResult.invalid(
                    "The PostProcess job was run without a solvent mask. "
                    "CTF refinement requires a masked PostProcess run.",
                    "postProcessStar",
                )

        if not any(get_bool_param(self.params, [mode], False) for mode in _MODES):
            return ValidationResult.invalid(
                "At least one refinement mode must be enabled "
                "(magnification, defocus, beam tilt, or aberrations)"
            )

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        rel_out = self.relOutputDir(output_dir)
        command = self.buildMpiCommand()
        command.extend(
            [
                "--i", self.relInput(get_param(params, ["particlesStar"])),
                "--o", rel_out,
                "--f", self.relInput(get_param(params, ["postProcessStar"])),
            ]
        )
        self.addThreadFlags(command, always=True)
        self.addPipelineControl(command, output_dir)

        min_res = format_number(get_float_param(params, ["minResolutionFits"], 30))

        if get_bool_param(params, ["estimateMagnification"], False):
            command.extend(["--fit_aniso", "--kmin_mag", min_res])

        if get_bool_param(params, ["ctfParameter"], False):
            command.extend(
                ["--fit_defocus", "--kmin_defocus", min_res, "--fit_mode", get_fit_mode(params)]
            )

        if get_bool_param(params, ["estimateBeamtilt"], False):
            command.extend(["--fit_beamtilt", "--kmin_tilt", min_res])
            if get_bool_param(params, ["estimateTreFoil"], False):
                command.extend(["--odd_aberr_max_n", "3"])

        if get_bool_param(params, ["aberrations"], False):
            command.append("--fit_aberr")

        self.addAdditionalArguments(command)
        return command
