# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Flexibility analysis using DynaMight.

A job either trains the deformation model (`optimize-deformations`) or,
when a checkpoint and at least one post-training task is provided, runs
the selected tasks one after another joined by `&&`.
"""

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

INPUT_FIELDS = ["micrographs", "input_file", "inputFile"]
CHECKPOINT_FIELDS = ["checkpointFile", "checkpoint_file"]


class DynamightBuilder(CommandBuilder):
    """DynaMight training and post-training tasks. Uses a single GPU and no MPI."""

    stage_name = "Dynamight"
    program = "relion_python_dynamight"

    @property
    def supports_mpi(self) -> bool:
        return False

    @property
    def executable(self) -> str:
        return str(
            get_param(self.params, ["dynamightExecutable", "dynamight_executable"], CFG.executables.dynamight)
        )

    @property
    def checkpoint(self) -> str | None:
        value = get_param(self.params, CHECKPOINT_FIELDS)
        return None if value is None else str(value)

    def validate(self) -> ValidationResult:
        if not is_path_safe(self.executable):
            return ValidationResult.invalid("Executable path contains unsafe characters")

        # continuing from a checkpoint needs nothing else
        if self.checkpoint is not None:
            return ValidationResult.success()

        if get_param(self.params, INPUT_FIELDS) is None:
            return ValidationResult.missing("Input particles STAR file", "inputFile")

        return ValidationResult.success()

    def buildCommand(self, output_dir: Path, job_name: str) -> list[str]:
        params = self.params
        executable = ensure_path_safe(self.executable, "DynaMight executable")

        tasks = []
        if self.checkpoint is not None:
            if get_bool_param(params, ["doVisulization", "doVisualization", "do_visualization"], False):
                tasks.append(self._exploreLatentSpace(executable, output_dir))
            if get_bool_param(params, ["inverseDeformation", "inverse_deformation"], False):
                tasks.append(self._optimizeInverseDeformations(executable, output_dir))
            if get_bool_param(params, ["deformedBackProjection", "deformed_back_projection"], False):
                tasks.append(self._deformableBackprojection(executable, output_dir))

        if not tasks:
            tasks.append(self._optimizeDeformations(executable, output_dir))

        command = tasks[0]
        for task in tasks[1:]:
            command.append("&&")
            command.extend(task)

        self.addAdditionalArguments(command)
        logger.debug(f"[{self.stage_name}] Command for '{job_name}': {' '.join(command)}.")
        return command

    @property
    def _gpu_device(self) -> str:
        return str(get_int_param(self.params, ["gpuToUse", "gpu_to_use"], 0))

    @property
    def _preload(self) -> bool:
        return get_bool_param(self.params, ["preloadImages", "preload_images"], False)

    def _finishTask(self, command: list[str], output_dir: Path) -> list[str]:
        command.extend(["--gpu-id", self._gpu_device])
        if self._preload:
            command.append("--preload-images")
        command.extend(["--pipeline-control", self.relOutputDir(output_dir)])
        return command

    def _startTask(self, executable: str, task: str, output_dir: Path) -> list[str]:
        command = [executable, task, "--output-directory", self.relOutputDir(output_dir)]
        if task != "optimize-deformations":
            command.extend(["--checkpoint-file", self.relInput(self.checkpoint)])
        return command

    def _optimizeDeformations(self, executable: str, output_dir: Path) -> list[str]:
        params = self.params
        command = self._startTask(executable, "optimize-deformations", output_dir)
        command[2:2] = ["--refinement-star-file", self.relInput(get_param(params, INPUT_FIELDS))]

        if (consensus := get_param(params, ["consensusMap", "consensus_map", "initial_model"])) is not None:
            command.extend(["--initial-model", self.relInput(consensus)])

        command.extend(
            ["--n-gaussians", str(get_int_param(params, ["numGaussians", "num_gaussians", "n_gaussians"], 10000))]
        )

        if (threshold := get_param(params, ["initialMapThreshold", "initial_map_threshold"])) is not None:
            command.extend(["--initial-threshold", str(threshold).strip()])

        command.extend(
            [
                "--regularization-factor",
                format_number(get_float_param(params, ["regularizationFactor", "regularization_factor"], 1)),
            ]
        )

        if self.checkpoint is not None:
            command.extend(["--checkpoint-file", self.relInput(self.checkpoint)])

        command.extend(["--gpu-id", self._gpu_device, "--n-threads", str(self.threads)])
        if self._preload:
            command.append("--preload-images")
        command.extend(["--pipeline-control", self.relOutputDir(output_dir)])
        return command

    def _exploreLatentSpace(self, executable: str, output_dir: Path) -> list[str]:
        command = self._startTask(executable, "explore-latent-space", output_dir)
        half_set = get_int_param(self.params, ["halfSetToVisualize", "half_set_to_visualize"], 1)
        command.extend(["--half-set", str(half_set)])
        return self._finishTask(command, output_dir)

    def _optimizeInverseDeformations(self, executable: str, output_dir: Path) -> list[str]:
        command = self._startTask(executable, "optimize-inverse-deformations", output_dir)
        epochs = get_int_param(self.params, ["numEpochs", "num_epochs", "n_epochs"], 50)
        command.extend(["--n-epochs", str(epochs)])
        if get_bool_param(self.params, ["storeDeformations", "store_deformations", "save_deformations"], False):
            command.append("--save-deformations")
        return self._finishTask(command, output_dir)

    def _deformableBackprojection(self, executable: str, output_dir: Path) -> list[str]:
        command = self._startTask(executable, "deformable-backprojection", output_dir)
        batch_size = get_int_param(
            self.params, ["backprojBatchsize", "backproj_batchsize", "backprojection_batch_size"], 1
        )
        command.extend(["--backprojection-batch-size", str(batch_size)])
        return self._finishTask(command, output_dir)
