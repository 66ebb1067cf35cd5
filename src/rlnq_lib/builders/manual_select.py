# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Manual selection of 2D or 3D classes.

The particles belonging to the selected classes are copied from the data
STAR file of a classification job to `particles.star` of the selection job.
Filtering is done line by line: only the data rows of the particles table
are dropped, everything else is copied unchanged.
"""

from pathlib import Path

from rlnq_lib.core.common import split_list
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import get_param, is_missing

from .interface import CommandBuilder, ValidationResult

logger = get_logger(__name__)

CLASS_LABEL = "rlnClassNumber"

OUTPUT_FILE = "particles.star"


def to_data_star(path: str) -> str:
    """Map the model or optimiser STAR file of a classification iteration to its data STAR file."""
    for suffix in ("_model.star", "_optimiser.star"):
        if suffix in path:
            return path.replace(suffix, "_data.star")
    return path


def parse_classes(value: object) -> set[int]:
    """
    Parse the selected class numbers.

    Accepts a list of numbers or a comma/space-separated string.
    Items that are not integers are ignored.
    """
    items = value if isinstance(value, list | tuple | set) else split_list(str(value))

    classes = set()
    for item in items:
        try:
            classes.add(int(str(item).strip()))
        except ValueError:
            logger.debug(f"Ignoring invalid class number '{item}'.")
    return classes


def _is_particles_block(name: str) -> bool:
    return "particles" in name or name == "data_"


def filter_star_by_class(text: str, classes: set[int]) -> tuple[str, int, int]:
    """
    Keep only the particles of the given classes.

    Args:
        text (str): Content of a data STAR file.
        classes (set[int]): Class numbers to keep.

    Returns:
        tuple[str, int, int]: The filtered content, the number of kept
        particles and the total number of particles.

    Raises:
        RlnqError: If there is no particles table or it has no class column.
    """
    output = []
    block = ""
    in_loop = False
    labels: list[str] = []
    column = None
    found = False
    kept = total = 0

    for line in text.splitlines(keepends=True):
        stripped = line.strip()

        if stripped.startswith("data_"):
            block = stripped
            in_loop = False
        elif stripped == "loop_":
            in_loop = True
            labels = []
            column = None
        elif in_loop and stripped.startswith("_"):
            labels.append(stripped.split()[0].lstrip("_"))
            if labels[-1] == CLASS_LABEL:
                column = len(labels) - 1
        elif in_loop and stripped and not stripped.startswith("#") and _is_particles_block(block):
            if column is None:
                raise RlnqError(f"No '{CLASS_LABEL}' column found in table '{block}'.")

            found = True
            total += 1
            fields = stripped.split()
            try:
                number = int(float(fields[column]))
            except (IndexError, ValueError):
                logger.debug(f"Skipping malformed row: {stripped}")
                continue

            if number not in classes:
                continue
            kept += 1
        elif in_loop and not stripped:
            in_loop = False

        output.append(line)

    if not found:
        raise RlnqError("No particles table found in the STAR file.")

    return "".join(output), kept, total


class ManualSelectBuilder(CommandBuilder):
    """Manual selection of classes, performed in-process."""

    stage_name = "ManualSelect"
    program = ""

    @property
    def supports_gpu(self) -> bool:
        return False

    @property
    def supports_mpi(self) -> bool:
        return False

    @property
    def runs_in_process(self) -> bool:
        return True

    @property
    def data_star(self) -> str:
        return to_data_star(str(get_param(self.params, ["classFromJob"])))

    def validate(self) -> ValidationResult:
        if get_param(self.params, ["classFromJob"]) is None:
            return ValidationResult.missing("Classification job", "classFromJob")

        selected = get_param(self.params, ["selectedClasses"])
        if is_missing(selected) or (isinstance(selected, list | tuple | set) and not selected):
            return ValidationResult.missing("At least one selected class", "selectedClasses")

        if not self.resolveInputPath(self.data_star).exists():
            return ValidationResult.notFound("Data STAR file", self.data_star, "classFromJob")

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> None:
        return None

    def execute(self, output_dir: Path) -> None:
        """
        Write the particles of the selected classes and the success marker.

        Raises:
            RlnqError: If the input could not be read, contains no suitable
                table, or no particle belongs to the selected classes.
        """
        classes = parse_classes(get_param(self.params, ["selectedClasses"]))
        input_file = self.resolveInputPath(self.data_star)
        logger.info(f"Selecting classes {sorted(classes)} from '{self.data_star}'.")

        try:
            content = input_file.read_text()
        except OSError as e:
            raise RlnqError(f"Could not read '{input_file}': {e}.") from e

        filtered, kept, total = filter_star_by_class(content, classes)
        logger.info(f"Kept {kept} of {total} particles.")

        if kept == 0:
            raise RlnqError("No particles found in the selected classes.")

        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / OUTPUT_FILE).write_text(filtered)
        (output_dir / CFG.submission.success_marker).touch()
