# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Import of raw movies, micrographs and other pipeline nodes.
"""

import glob
import os
from pathlib import Path

from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import is_path_safe
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

# node type label -> RELION node type
NODE_TYPES = {
    "2D references": "refs2d",
    "Particle coordinates": "coords",
    "3D reference": "ref3d",
    "3D mask": "mask",
    "Unfiltered half-map": "halfmap",
}

# RELION node type -> name of the output file
OUTPUT_FILES = {
    "refs2d": "class_averages.star",
    "coords": "coords_suffix_autopick.star",
    "ref3d": "ref3d.mrc",
    "mask": "mask.mrc",
    "halfmap": "halfmap.mrc",
}

_OTHER_MODE = ["nodetype", "nodeType", "node_type"]
OTHER_INPUT_FIELDS = ["otherInputFile", "other_input_file"]
OTHER_NODE_TYPE_FIELDS = ["otherNodeType", "other_node_type"]
INPUT_FILE_FIELDS = ["input_files", "inputFiles"]


def is_other_import(params) -> bool:
    """True when importing a pipeline node rather than movies or micrographs."""
    return get_bool_param(params, _OTHER_MODE, False)


def get_node_type(label: object) -> str:
    """Convert a node type label (or a RELION node type) to the RELION node type."""
    text = str(label)
    if text in NODE_TYPES.values():
        return text
    return NODE_TYPES.get(text, "ref3d")


class ImportBuilder(CommandBuilder):
    """
    Import of data into the project. Runs as a single CPU process.
    """

    stage_name = "Import"
    program = "relion_import"

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    def validate(self) -> ValidationResult:
        if is_other_import(self.params):
            return self._validateOther()
        return self._validateMovies()

    def _validateOther(self) -> ValidationResult:
        other_input = get_param(self.params, OTHER_INPUT_FIELDS)
        if other_input is None:
            return ValidationResult.missing("Input file for other node types", "otherInputFile")

        other_input = str(other_input)
        if not is_path_safe(other_input.replace("*", "")):
            return ValidationResult.invalid(
                "Input path contains invalid characters", "otherInputFile"
            )

        if get_param(self.params, OTHER_NODE_TYPE_FIELDS) is None:
            return ValidationResult.missing("Node type", "otherNodeType")

        resolved = self.resolveInputPath(other_input)
        if resolved.exists():
            return ValidationResult.success()

        if "*" in other_input:
            if glob.glob(str(resolved)):
                return ValidationResult.success()
            return ValidationResult.notFound("Files matching pattern", other_input, "otherInputFile")

        return ValidationResult.notFound("Input file", other_input, "otherInputFile")

    def _validateMovies(self) -> ValidationResult:
        input_files = get_param(self.params, INPUT_FILE_FIELDS)
        if input_files is None:
            return ValidationResult.missing("Input files path", "inputFiles")

        input_files = str(input_files)
        is_pattern = "*" in input_files or "?" in input_files
        input_dir = os.path.dirname(input_files) if is_pattern else input_files

        if input_dir and not is_path_safe(input_dir.replace("*", "")):
            return ValidationResult.invalid("Input path contains invalid characters", "inputFiles")

        if input_dir and self.resolveInputPath(input_dir).resolve().exists():
            return ValidationResult.success()

        if is_pattern:
            matches = glob.glob(str(self.resolveInputPath(input_files)))
            if matches:
                logger.debug(f"[{self.stage_name}] {len(matches)} files match '{input_files}'.")
                return ValidationResult.success()

        return ValidationResult.notFound("Input path", input_dir or input_files, "inputFiles")

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        logger.debug(f"[{self.stage_name}] Building command for '{job_name}'.")
        if is_other_import(self.params):
            return self._buildOther(output_dir)
        return self._buildMovies(output_dir)

    def _buildOther(self, output_dir: Path) -> list[str]:
        other_input = str(get_param(self.params, OTHER_INPUT_FIELDS))
        node_type = get_node_type(get_param(self.params, OTHER_NODE_TYPE_FIELDS, "3D reference"))

        command = [
            self.program,
            "--do_other",
            "--node_type", node_type,
            "--i", self.relInput(other_input),
            "--odir", self.relOutputDir(output_dir),
            "--ofile", OUTPUT_FILES.get(node_type, "imported.star"),
        ]
        self.addPipelineControl(command, output_dir)

        rename = get_param(
            self.params, ["renameopticsgroup", "renameOpticsGroup", "rename_optics_group"]
        )
        if rename is not None and node_type in ("coords", "refs2d"):
            command.extend(["--optics_group_name", str(rename)])

        return command

    def _buildMovies(self, output_dir: Path) -> list[str]:
        params = self.params

        if get_bool_param(params, ["multiframemovies", "multiFrameMovies", "multi_frame_movies"], False):
            mode, output_file = "--do_movies", "movies.star"
        else:
            mode, output_file = "--do_micrographs", "micrographs.star"

        optics = get_param(
            params, ["optics_group_name", "opticsgroupname", "opticsGroupName"], "opticsGroup1"
        )

        def number(names: list[str], default: float) -> str:
            return format_number(get_float_param(params, names, default))

        command = [
            self.program,
            mode,
            "--optics_group_name", str(optics),
            "--angpix", number(["angpix", "pixelSize", "pixel_size"], 1.4),
            "--kV", number(["kV", "voltage"], 300),
            "--Cs", number(["spherical", "Cs", "sphericalAberration"], 2.7),
            "--Q0", number(["amplitudeContrast", "amplitude_contrast", "Q0"], 0.1),
            "--beamtilt_x", number(["beamtilt_x", "beamTiltX"], 0.0),
            "--beamtilt_y", number(["beamtilt_y", "beamTiltY"], 0.0),
            "--i", self.relInput(str(get_param(params, INPUT_FILE_FIELDS))),
            "--odir", self.relOutputDir(output_dir),
            "--ofile", output_file,
        ]
        self.addPipelineControl(command, output_dir)
        command.extend(
            ["--do_thumbnails", "true", "--thumbnail_size", "512", "--thumbnail_count", "50"]
        )
        return command

