# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from collections.abc import Sequence
from pathlib import Path

from rlnq_lib.core.config import CFG, CompanionRule
from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_param,
)

from .interface import CommandBuilder, ValidationKind, ValidationResult, format_number

logger = get_logger(__name__)


def derive_half_maps(
    half_map: str, rules: Sequence[CompanionRule] | None = None
) -> tuple[str, str] | None:
    """
    Derive both half-maps from the path to either of them.

    Rules are tried in order, first by their second-half substring and then by
    their first-half substring, so that a path to the second half-map is not
    mistaken for the first one. The first match wins.

    Args:
        half_map (str): Path to one of the half-maps.
        rules (Sequence[CompanionRule] | None): Substitution rules. Defaults to `CFG.companions.half_maps`.

    Returns:
        tuple[str, str] | None: Paths to the first and the second half-map,
        or None if no rule matches.
    """
    rules = CFG.companions.half_maps if rules is None else rules

    for rule in rules:
        if rule.second in half_map:
            return half_map.replace(rule.second, rule.first, 1), half_map

    for rule in rules:
        if rule.first in half_map:
            return half_map, half_map.replace(rule.first, rule.second, 1)

    return None


class PostProcessBuilder(CommandBuilder):
    """
    Masking, sharpening and FSC calculation of a pair of unfiltered half-maps.

    When only one half-map is provided, validation derives the other one from
    its file name and stores both in the parameters.
    """

    stage_name = "PostProcess"
    program = "relion_postprocess"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        params = self.params
        half1 = get_param(params, ["halfMap1"])
        half2 = get_param(params, ["halfMap2"])
        half_map = get_param(params, ["halfMap"])

        if half_map is not None and half1 is None and half2 is None:
            if (derived := derive_half_maps(str(half_map))) is not None:
                half1, half2 = derived
                params["halfMap1"], params["halfMap2"] = half1, half2
                logger.info(f"[{self.stage_name}] Derived half-maps '{half1}' and '{half2}'.")

        if half1 is None:
            return ValidationResult.missing("First half-map", "halfMap1")
        if half2 is None:
            return ValidationResult(
                False,
                "Second half-map is required (could not auto-derive from first half-map name)",
                ValidationKind.MISSING,
                "halfMap2",
            )

        if not (result := self.validateFileExists(half1, "Half-map 1", field="halfMap1")):
            return result
        return self.validateFileExists(half2, "Half-map 2", field="halfMap2")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        command = [
            self.program,
            "--i", self.relInput(get_param(params, ["halfMap1"])),
            "--i2", self.relInput(get_param(params, ["halfMap2"])),
            "--o", self.makeRelative(output_dir / "postprocess"),
            "--angpix", format_number(get_float_param(params, ["calibratedPixelSize"], 1.0)),
        ]

        # an explicit mask excludes automatic masking
        if (mask := get_param(params, ["solventMask"])) is not None:
            command.extend(["--mask", self.relInput(mask)])
        elif get_bool_param(params, ["autoMask"], False):
            command.extend(
                [
                    "--auto_mask",
                    "--inimask_threshold",
                    format_number(get_float_param(params, ["initialMaskThreshold"], 0.02)),
                    "--extend_inimask",
                    format_number(get_float_param(params, ["extendMaskBinaryMap"], 3)),
                    "--width_mask_edge",
                    format_number(get_float_param(params, ["addMaskEdge"], 6)),
                ]
            )

        if get_bool_param(params, ["bFactor"], True):
            command.extend(
                [
                    "--auto_bfac",
                    "--autob_lowres",
                    format_number(get_float_param(params, ["lowestResolution"], 10)),
                    "--autob_highres",
                    format_number(get_float_param(params, ["highestResolution"], 0)),
                ]
            )
        else:
            command.extend(
                ["--adhoc_bfac", format_number(get_float_param(params, ["providedBFactor"], 0))]
            )

        if (mtf := get_param(params, ["mtfDetector"])) is not None:
            command.extend(["--mtf", self.relInput(mtf)])

        mtf_angpix = get_float_param(params, ["originalDetector"], -1)
        if mtf_angpix > 0:
            command.extend(["--mtf_angpix", format_number(mtf_angpix)])

        if get_bool_param(params, ["skipFSC"], False):
            command.extend(
                [
                    "--skip_fsc_weighting",
                    "--low_pass",
                    format_number(get_float_param(params, ["adHoc"], 5)),
                ]
            )

        if get_bool_param(params, ["estimateLocalResolution"], False):
            command.extend(
                [
                    "--locres",
                    "--locres_sampling",
                    format_number(get_float_param(params, ["localResSampling"], 25)),
                    "--locres_minres",
                    format_number(get_float_param(params, ["localResMinRes"], 50)),
                ]
            )

        self.addPipelineControl(command, output_dir)
        self.addAdditionalArguments(command)
        return command
