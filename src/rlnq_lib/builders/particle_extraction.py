# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import os
import re
from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import (
    ParamBag,
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

DEFAULT_COORD_SUFFIX = "_autopick.star"

_COORD_SUFFIX = re.compile(r"^coords_suffix(.+)$")


def _box_sizes(params: ParamBag) -> tuple[int, int | None]:
    """Return the extraction box size and the rescaled size (None without rescaling)."""
    box = get_int_param(params, ["particleBoxSize"], 128)
    if get_bool_param(params, ["rescaleParticles"], False):
        return box, get_int_param(params, ["rescaledSize"], 128)
    return box, None


def get_background_radius(params: ParamBag) -> float:
    """
    Radius of the background area used for normalization, in pixels of the output box.

    A provided background diameter is halved and scaled with the rescaling factor.
    Otherwise 75 % of the half box is used. A radius that does not fit into
    the box is reduced to box / 2.5.
    """
    box, rescaled = _box_sizes(params)
    effective = rescaled if rescaled is not None else box

    radius = get_float_param(params, ["diameterBackgroundCircle"], -1)
    if radius > 0:
        radius /= 2.0
        if rescaled is not None and box > 0:
            radius *= rescaled / box
    else:
        radius = 0.75 * (effective / 2.0)

    if 2 * radius >= effective:
        radius = effective / 2.5
        logger.warning(f"Background radius reduced to {radius:.2f} to fit box size {effective}.")

    return radius


def get_coord_suffix(filename: str) -> str:
    """Coordinate suffix encoded in a `coords_suffix<suffix>` file name."""
    if match := _COORD_SUFFIX.match(filename):
        return match.group(1)
    logger.warning(
        f"Could not derive coordinate suffix from '{filename}', using '{DEFAULT_COORD_SUFFIX}'."
    )
    return DEFAULT_COORD_SUFFIX


class ParticleExtractionBuilder(CommandBuilder):
    """
    Extraction of particle images from micrographs. Runs on CPUs only.
    """

    stage_name = "Extract"
    program = "relion_preprocess"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def reextract(self) -> bool:
        return get_bool_param(self.params, ["reExtractRefinedParticles"], False)

    def validate(self) -> ValidationResult:
        params = self.params

        micrographs = get_param(params, ["micrographStarFile"])
        if micrographs is None:
            return ValidationResult.missing("Micrograph STAR file", "micrographStarFile")
        if not (result := self.validateFileExists(micrographs, "Micrograph STAR file", field="micrographStarFile")):
            return result

        if not self.reextract and get_param(params, ["inputCoordinates"]) is None:
            return ValidationResult.missing(
                "Input coordinates (when not re-extracting refined particles)",
                "inputCoordinates",
            )

        box, rescaled = _box_sizes(params)
        if box <= 0:
            return ValidationResult.invalid(
                f"Particle box size must be positive, got {box}", "particleBoxSize"
            )
        if box % 2 != 0:
            return ValidationResult.invalid(
                f"Particle box size must be an even number, got {box}", "particleBoxSize"
            )

        if rescaled is not None:
            if rescaled <= 0:
                return ValidationResult.invalid(
                    f"Re-scaled size must be positive, got {rescaled}", "rescaledSize"
                )
            if rescaled % 2 != 0:
                return ValidationResult.invalid(
                    f"Re-scaled size must be an even number, got {rescaled}", "rescaledSize"
                )
            if rescaled > box:
                return ValidationResult.invalid(
                    f"Re-scaled size ({rescaled}) cannot be larger than box size ({box})",
                    "rescaledSize",
                )

        if self.reextract and get_param(params, ["refinedParticlesStarFile"]) is None:
            return ValidationResult.missing(
                "Refined particles STAR file (when re-extracting refined particles)",
                "refinedParticlesStarFile",
            )

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")

        rel_out = self.relOutputDir(output_dir)
        box, rescaled = _box_sizes(params)

        command = self.buildMpiCommand()
        command.extend(
            [
                "--i", self.relInput(get_param(params, ["micrographStarFile"])),
                "--part_dir", rel_out,
                "--part_star", self.makeRelative(output_dir / "particles.star"),
                "--extract",
                "--extract_size", str(box),
            ]
        )

        if not self.reextract:
            coordinates = self.relInput(str(get_param(params, ["inputCoordinates"])))
            coord_dir = os.path.dirname(coordinates)
            command.extend(
                [
                    "--coord_dir", (coord_dir or ".") + os.sep,
                    "--coord_suffix", get_coord_suffix(os.path.basename(coordinates)),
                ]
            )
        else:
            refined = get_param(params, ["refinedParticlesStarFile"])
            command.extend(["--reextract_data_star", self.relInput(str(refined))])

        if get_bool_param(params, ["resetRefinedOffsets"], False):
            command.append("--reset_offsets")

        if get_bool_param(params, ["reCenterRefinedCoordinates"], False):
            command.append("--recenter")
            for flag, names in (
                ("--recenter_x", ["xRec", "reCenterCoordsX"]),
                ("--recenter_y", ["yRec", "reCenterCoordsY"]),
                ("--recenter_z", ["zRec", "reCenterCoordsZ"]),
            ):
                command.extend([flag, format_number(get_float_param(params, names, 0))])

        if get_bool_param(params, ["writeOutputInFloat16"], False):
            command.append("--float16")
        if get_bool_param(params, ["invertContrast"], False):
            command.append("--invert_contrast")

        if get_bool_param(params, ["normalizeParticles"], True):
            command.extend(["--norm", "--bg_radius", f"{get_background_radius(params):.2f}"])
            white = get_float_param(params, ["stddevWhiteDust"], -1)
            black = get_float_param(params, ["stddevBlackDust"], -1)
            if white > 0:
                command.extend(["--white_dust", format_number(white)])
            if black > 0:
                command.extend(["--black_dust", format_number(black)])

        if rescaled is not None:
            command.extend(["--scale", str(rescaled)])

        if get_bool_param(params, ["useAutopickFOMThreshold", "useAutopickFomThreshold"], False):
            fom = get_float_param(params, ["minimumAutopickFOM", "minimumAutopickFom"], 0)
            command.extend(["--minimum_pick_fom", format_number(fom)])

        if get_bool_param(params, ["extractHelicalSegments"], False):
            self._addHelicalFlags(command)

        self.addThreadFlags(command)
        self.addPipelineControl(command, output_dir)
        self.addAdditionalArguments(command)
        return command

    def _addHelicalFlags(self, command: list[str]) -> None:
        params = self.params
        command.extend(
            [
                "--helix",
                "--helical_outer_diameter",
                format_number(get_float_param(params, ["tubeDiameter"], 200)),
            ]
        )
        if get_bool_param(params, ["useBimodalAngularPriors"], False):
            command.append("--helical_bimodal_angular_priors")
        if get_bool_param(params, ["coordinatesStartEndOnly"], False):
            command.append("--helical_tubes")
        if get_bool_param(params, ["cutHelicalSegments"], False):
            command.append("--helical_cut_into_segments")
        command.extend(
            [
                "--helical_nr_asu", str(get_int_param(params, ["numAsymmetricalUnits"], 1)),
                "--helical_rise", format_number(get_float_param(params, ["helicalRise"], 1)),
            ]
        )
