# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Configuration system for rlnq.

This module defines dataclasses representing all configurable aspects of rlnq:
project storage roots, Slurm submission defaults, the container runtime,
paths to external executables, resource limits, the layout of the per-job
output directory, and the naming conventions used to derive companion files.

The `Config` class loads user configuration from a TOML file (if available)
and provides a globally accessible `CFG` instance.
"""

import os
import tomllib
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Self


@dataclass
class PathSettings:
    """Storage roots of rlnq projects."""

    # Directory containing active projects.
    root: str = "/data/projects"
    # Directory containing archived projects.
    archive_root: str = "/data/archive"


@dataclass
class SlurmSettings:
    """Defaults used when submitting jobs to Slurm."""

    # Partition used when the job does not specify one.
    partition: str = "default"
    # Command used to submit batch scripts.
    submit_command: str = "sbatch"
    # Submission commands that may be used. Anything else falls back to `submit_command`.
    allowed_submit_commands: list[str] = field(
        default_factory=lambda: ["sbatch", "/usr/bin/sbatch"]
    )
    # Command used to cancel queued or running jobs.
    cancel_command: str = "scancel"
    # Default number of CPU cores per task.
    cpus_per_task: int = 8
    # Default number of GPUs per node.
    gpus_per_node: int = 1
    # Default walltime.
    time: str = "24:00:00"


@dataclass
class ContainerSettings:
    """Settings of the container runtime wrapping the external toolchain."""

    # Container runtime binary.
    runtime: str = "singularity"
    # Path to the container image. Commands are not wrapped if empty.
    image: str = ""
    # Comma-separated list of paths to bind into the container.
    bind_paths: str = ""
    # Options passed to the runtime when GPUs are requested.
    gpu_options: str = "--nv"


@dataclass
class ExecutableSettings:
    """Paths to external executables."""

    # Launcher used for local MPI runs.
    mpi_launcher: str = "mpirun"
    # Flag passing the number of processes to the local launcher.
    mpi_launcher_np_flag: str = "-np"
    # Flag passing the number of processes to the launcher inside batch scripts.
    mpi_script_np_flag: str = "-n"
    # CTFFIND executable.
    ctffind: str = "ctffind"
    # Gctf executable.
    gctf: str = "gctf"
    # MotionCor2 executable. Not passed to RELION if empty.
    motioncor2: str = ""
    # Topaz executable. Not passed to RELION if empty.
    topaz: str = ""
    # ModelAngelo executable.
    modelangelo: str = "relion_python_modelangelo"
    # DynaMight executable.
    dynamight: str = "relion_python_dynamight"


@dataclass
class LimitSettings:
    """Bounds applied to requested resources."""

    # Maximum number of MPI processes.
    max_mpi_procs: int = 128
    # Maximum number of threads per process.
    max_threads: int = 256
    # Maximum number of GPUs.
    max_gpus: int = 16
    # Maximum length of a scheduler directive value.
    max_directive_length: int = 256
    # Maximum length of extra scheduler arguments.
    max_queue_args_length: int = 512
    # Maximum length of a partition name.
    max_partition_length: int = 64


@dataclass
class SubmissionSettings:
    """Settings for the submission engine."""

    # Whether jobs go to the queue when the parameters do not say otherwise.
    submit_to_queue_default: bool = True
    # Name of the generated batch script.
    script_name: str = "run.sh"
    # Name of the file capturing standard output.
    stdout_name: str = "run.out"
    # Name of the file capturing standard error.
    stderr_name: str = "run.err"
    # Marker created when the command succeeds.
    success_marker: str = "RELION_JOB_EXIT_SUCCESS"
    # Marker created when the command fails.
    failure_marker: str = "RELION_JOB_EXIT_FAILURE"
    # Writable cache directory exported into the job environment.
    torch_home: str = "${HOME}/.cache/torch"
    # Pattern matching the job id printed by the submit command.
    submitted_pattern: str = r"Submitted batch job (\d+)"


@dataclass
class CompanionRule:
    """A substitution deriving one half-map from the other."""

    # Substring identifying the first half-map.
    first: str = "half1"
    # Substring identifying the second half-map.
    second: str = "half2"


@dataclass
class CompanionSettings:
    """Naming conventions used to derive companion input files."""

    # Rules are tried in order and the first matching rule wins.
    half_maps: list[CompanionRule] = field(
        default_factory=lambda: [
            CompanionRule("_half1_", "_half2_"),
            CompanionRule("half1", "half2"),
        ]
    )


@dataclass
class StoreSettings:
    """Settings for the file-based job store."""

    # Directory (relative to the project root) holding job records.
    directory: str = ".rlnq"
    # Suffix of job record files.
    suffix: str = ".rlnqjob"


@dataclass
class EnvironmentVariables:
    """Environment variable names used by rlnq."""

    # Enables rlnq debug mode.
    debug_mode: str = "RLNQ_DEBUG"
    # Path to the configuration file.
    config: str = "RLNQ_CONFIG"


@dataclass
class DateFormats:
    """Date and time format strings."""

    # Standard date format used by rlnq.
    standard: str = "%Y-%m-%d %H:%M:%S"


@dataclass
class ExitCodes:
    """Exit codes used for various errors."""

    # Returned when an rlnq command fails with a known error.
    default: int = 91
    # Returned when an rlnq command fails unexpectedly.
    unexpected_error: int = 99


@dataclass
class StatusColors:
    """Colors used to display job statuses."""

    pending: str = "bright_magenta"
    running: str = "bright_blue"
    success: str = "bright_green"
    failed: str = "bright_red"
    cancelled: str = "bright_yellow"


@dataclass
class PresenterSettings:
    """Settings for the panel presenting a single job."""

    # Maximal width of the job info panel.
    max_width: int | None = None
    # Minimal width of the job info panel.
    min_width: int | None = 80
    # Style of the border lines.
    border_style: str = "white"
    # Style of the title.
    title_style: str = "white bold"
    # Style of the separators between sections.
    rule_style: str = "white"
    # Style used for the keys.
    key_style: str = "default bold"
    # Style used for the values.
    value_style: str = "white"
    # Style used for the error message.
    notes_style: str = "grey50"


@dataclass
class JobsPresenterSettings:
    """Settings for the tables listing jobs and job types."""

    # Maximal width of the jobs panel.
    max_width: int | None = None
    # Minimal width of the jobs panel.
    min_width: int | None = 80
    # Style of the border lines.
    border_style: str = "white"
    # Style of the title.
    title_style: str = "white bold"
    # Style of the table headers.
    headers_style: str = "default"
    # Style used for the main information.
    main_style: str = "white"
    # Style used for the secondary information.
    secondary_style: str = "grey70"


@dataclass
class Config:
    """Main configuration for rlnq."""

    paths: PathSettings = field(default_factory=PathSettings)
    slurm: SlurmSettings = field(default_factory=SlurmSettings)
    container: ContainerSettings = field(default_factory=ContainerSettings)
    executables: ExecutableSettings = field(default_factory=ExecutableSettings)
    limits: LimitSettings = field(default_factory=LimitSettings)
    submission: SubmissionSettings = field(default_factory=SubmissionSettings)
    companions: CompanionSettings = field(default_factory=CompanionSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    env_vars: EnvironmentVariables = field(default_factory=EnvironmentVariables)
    date_formats: DateFormats = field(default_factory=DateFormats)
    exit_codes: ExitCodes = field(default_factory=ExitCodes)
    status_colors: StatusColors = field(default_factory=StatusColors)
    presenter: PresenterSettings = field(default_factory=PresenterSettings)
    jobs_presenter: JobsPresenterSettings = field(default_factory=JobsPresenterSettings)

    # Name of the rlnq binary.
    binary_name: str = "rlnq"

    @classmethod
    def load(cls, config_path: Path | None = None) -> Self:
        """
        Load configuration from TOML file or use defaults.

        Args:
            config_path: Explicit path to config file. If None, searches standard locations.

        Returns:
            Config instance with loaded or default values.
        """
        if config_path is None:
            config_path = Config._get_config_path()

        try:
            if config_path and config_path.exists():
                with config_path.open("rb") as f:
                    config_data = tomllib.load(f)
                return _dict_to_dataclass(cls, config_data)
        except Exception as e:
            raise ValueError(f"Could not read rlnq config '{config_path}': {e}.")

        return cls()

    @staticmethod
    def _get_config_path() -> Path | None:
        """
        Search for config file in standard locations (XDG compliant).
        Returns the first existing config file, or None.
        """
        config_locations: list[Path | None] = [
            Path(env_path) if (env_path := os.getenv("RLNQ_CONFIG")) else None,
            Path.cwd() / "rlnq_config.toml",
            Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
            / "rlnq"
            / "config.toml",
        ]

        for path in config_locations:
            if path and path.is_file():
                return path

        return None


def _dict_to_dataclass(cls, data: dict[str, Any]):
    """
    Recursively convert a dictionary to a dataclass instance.

    Nested dataclasses are converted from nested tables. Lists of tables are
    converted when the field is a list of companion rules.
    """
    if not is_dataclass(cls):
        return data

    field_values = {}
    for field_info in fields(cls):
        field_name = field_info.name
        field_type = field_info.type

        if field_name not in data:
            continue

        value = data[field_name]
        if is_dataclass(field_type) and isinstance(value, dict):
            field_values[field_name] = _dict_to_dataclass(field_type, value)
        elif field_type == list[CompanionRule] and isinstance(value, list):
            field_values[field_name] = [
                _dict_to_dataclass(CompanionRule, v) if isinstance(v, dict) else v
                for v in value
            ]
        else:
            field_values[field_name] = value

    return cls(**field_values)


# Global configuration for rlnq.
CFG = Config.load()
