# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from unittest.mock import patch

import pytest

from rlnq_lib.builders.ctf_estimation import CtfEstimationBuilder
from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.properties.project import ProjectContext


@pytest.fixture
def project(tmp_path):
    (tmp_path / "MotionCorr" / "Job002").mkdir(parents=True)
    (tmp_path / "MotionCorr" / "Job002" / "corrected_micrographs.star").write_text("data_\n")
    return ProjectContext(tmp_path)


_INPUT = "MotionCorr/Job002/corrected_micrographs.star"


def test_validate(project):
    assert CtfEstimationBuilder({"inputStarFile": _INPUT}, project).validate()
    assert CtfEstimationBuilder({}, project).validate().kind == ValidationKind.MISSING


def test_validate_unsafe_executable(project):
    params = {"inputStarFile": _INPUT, "ctfFindExecutable": "/opt/ctffind$(id)"}
    assert CtfEstimationBuilder(params, project).validate().kind == ValidationKind.INVALID


def test_build_ctffind(project):
    params = {
        "inputStarFile": _INPUT,
        "ctfFindExecutable": "/opt/ctffind-4.1.14/bin/ctffind",
        "usePowerSpectraFromMotionCorr": "Yes",
        "gpuAcceleration": "Yes",
    }
    builder = CtfEstimationBuilder(params, project, to_queue=True)
    command = builder.buildCommand(project.root / "CtfFind" / "Job003", "Job003")

    assert not builder.supports_gpu
    assert command == [
        "relion_run_ctffind",
        "--i", _INPUT,
        "--o", "CtfFind/Job003/",
        "--dAst", "100",
        "--ctffind_exe", "/opt/ctffind-4.1.14/bin/ctffind",
        "--is_ctffind4",
        "--ctfWin", "-1",
        "--Box", "512",
        "--ResMin", "30",
        "--ResMax", "5",
        "--dFMin", "5000",
        "--dFMax", "50000",
        "--FStep", "500",
        "--pipeline_control", "CtfFind/Job003/",
        "--use_given_ps",
        "--do_thumbnails", "true",
        "--thumbnail_size", "512",
        "--thumbnail_count", "-1",
    ]  # fmt: skip


def test_build_ctffind5_has_no_ctffind4_flag(project):
    params = {"inputStarFile": _INPUT, "ctfFindExecutable": "/opt/ctffind5/bin/ctffind5"}
    command = CtfEstimationBuilder(params, project).buildCommand(
        project.root / "CtfFind" / "Job003", "Job003"
    )
    assert "--is_ctffind4" not in command


def test_build_gctf_uses_gpu(project):
    params = {"inputStarFile": _INPUT, "useGctf": "Yes", "gpuToUse": "1"}
    builder = CtfEstimationBuilder(params, project)
    command = builder.buildCommand(project.root / "CtfFind" / "Job003", "Job003")

    assert builder.uses_gpu
    index = command.index("--use_gctf")
    assert command[index : index + 3] == ["--use_gctf", "--gctf_exe", "gctf"]
    assert command[command.index("--gpu") + 1] == "1"


def test_build_swaps_inverted_defocus_range(project):
    params = {"inputStarFile": _INPUT, "minDefocus": 40000, "maxDefocus": 10000}
    with patch("rlnq_lib.builders.ctf_estimation.logger.warning") as mock_warning:
        command = CtfEstimationBuilder(params, project).buildCommand(
            project.root / "CtfFind" / "Job003", "Job003"
        )

    mock_warning.assert_called_once()
    assert command[command.index("--dFMin") + 1] == "10000"
    assert command[command.index("--dFMax") + 1] == "40000"


def test_build_phase_shift_and_fast_search(project):
    params = {
        "inputStarFile": _INPUT,
        "estimatePhaseShifts": "Yes",
        "phaseShiftMax": 90,
        "useExhaustiveSearch": "No",
    }
    command = CtfEstimationBuilder(params, project).buildCommand(
        project.root / "CtfFind" / "Job003", "Job003"
    )

    assert "--fast_search" in command
    index = command.index("--do_phaseshift")
    assert command[index : index + 7] == [
        "--do_phaseshift", "--phase_min", "0", "--phase_max", "90", "--phase_step", "10",
    ]  # fmt: skip
