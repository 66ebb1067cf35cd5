# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.builders.manual_pick import ManualPickBuilder
from rlnq_lib.properties.project import ProjectContext

_MICROGRAPHS = "CtfFind/Job003/micrographs_ctf.star"


@pytest.fixture
def project(tmp_path):
    return ProjectContext(tmp_path)


def _build(project, params):
    return ManualPickBuilder(params, project).buildCommand(
        project.root / "ManualPick" / "Job025", "Job025"
    )


def test_validate(project):
    assert ManualPickBuilder({"inputMicrographs": _MICROGRAPHS}, project).validate()
    assert ManualPickBuilder({}, project).validate().kind == ValidationKind.MISSING


def test_build_defaults(project):
    assert _build(project, {"inputMicrographs": _MICROGRAPHS, "mpiProcs": 2}) == [
        "relion_manualpick",
        "--i", _MICROGRAPHS,
        "--odir", "ManualPick/Job025/",
        "--allow_save",
        "--fast_save",
        "--selection", "ManualPick/Job025/micrographs_selected.star",
        "--particle_diameter", "100",
        "--scale", "0.2",
        "--sigma_contrast", "3",
        "--black", "0",
        "--white", "0",
        "--pipeline_control", "ManualPick/Job025/",
    ]  # fmt: skip


def test_build_options(project):
    params = {
        "inputMicrographs": _MICROGRAPHS,
        "pickCoordinatesHelices": "Yes",
        "useAutopickThreshold": "Yes",
        "autopickFOM": 0.5,
        "useTopaz": "Yes",
        "blueRedColorParticles": "Yes",
        "starfileWithColorLabel": "AutoPick/Job004/coords.star",
        "redValue": 1.5,
    }
    command = _build(project, params)

    index = command.index("--pick_start_end")
    assert command[index:] == [
        "--pick_start_end",
        "--minimum_pick_fom", "0.5",
        "--topaz_denoise",
        "--color_label", "rlnAutopickFigureOfMerit",
        "--color_star", "AutoPick/Job004/coords.star",
        "--blue", "0",
        "--red", "1.5",
    ]  # fmt: skip
