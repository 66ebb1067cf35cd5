# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from pathlib import Path

from rlnq_lib.core.config import CFG
from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import ensure_path_safe, is_path_safe
from rlnq_lib.params.resolver import (
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
)

from .interface import CommandBuilder, ValidationResult, format_number

logger = get_logger(__name__)

# (parameter, flag of the `build` subcommand)
FASTA_FIELDS = [("fastaProtein", "-pf"), ("fastaDNA", "-df"), ("fastaRNA", "-rf")]


class ModelAngeloBuilder(CommandBuilder):
    """
    Automated model building using ModelAngelo.

    Optionally followed by an HMMER search of the built model
    against a sequence library.
    """

    stage_name = "ModelAngelo"
    program = "relion_python_modelangelo"

    @property
    def supports_mpi(self) -> bool:
        return False

    @property
    def executable(self) -> str:
        return str(get_param(self.params, ["modelAngeloExecutable"], CFG.executables.modelangelo))

    def validate(self) -> ValidationResult:
        if not is_path_safe(self.executable):
            return ValidationResult.invalid("Executable path contains unsafe characters")

        if get_param(self.params, ["bFactorSharpenedMap"]) is None:
            return ValidationResult.missing("B-factor sharpened map", "bFactorSharpenedMap")

        if all(get_param(self.params, [field]) is None for field, _ in FASTA_FIELDS):
            return ValidationResult.missing(
                "At least one FASTA sequence file (protein, DNA, or RNA)", "fastaProtein"
            )

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        executable = ensure_path_safe(self.executable, "ModelAngelo executable")
        rel_out = self.relOutputDir(output_dir)

        command = [executable, "build"]
        fastas = []
        for field, flag in FASTA_FIELDS:
            if (fasta := get_param(params, [field])) is not None:
                fastas.append(self.relInput(fasta))
                command.extend([flag, fastas[-1]])

        command.extend(
            [
                "-v", self.relInput(get_param(params, ["bFactorSharpenedMap"])),
                "-o", rel_out,
                "-d", str(get_int_param(params, ["gpuToUse"], 0)),
            ]
        )
        self.addPipelineControl(command, output_dir)

        if get_bool_param(params, ["performHmmerSearch"], False):
            library = get_param(params, ["hmmerSequenceLibrary"])
            library = self.relInput(library) if library is not None else fastas[0]
            command.extend(
                [
                    "&&",
                    executable, "hmm_search",
                    "-i", rel_out,
                    "-f", library,
                    "-o", rel_out,
                    "-a", str(get_param(params, ["hmmerAlphabet"], "amino")),
                    "--F1", format_number(get_float_param(params, ["hmmerF1"], 0.02)),
                    "--F2", format_number(get_float_param(params, ["hmmerF2"], 0.001)),
                    "--F3", format_number(get_float_param(params, ["hmmerF3"], 1e-05)),
                    "--E", format_number(get_float_param(params, ["hmmerE"], 10)),
                ]
            )
            self.addPipelineControl(command, output_dir)

        self.addAdditionalArguments(command)
        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command
