# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.builders.local_resolution import LocalResolutionBuilder
from rlnq_lib.properties.project import ProjectContext

_HALF = "Refine3D/Job012/run_half1_class001_unfil.mrc"


@pytest.fixture
def project(tmp_path):
    (tmp_path / "Refine3D" / "Job012").mkdir(parents=True)
    (tmp_path / _HALF).write_text("map")
    return ProjectContext(tmp_path)


def test_validate(project):
    assert LocalResolutionBuilder({"halfMap": _HALF, "solventMask": "mask.mrc"}, project).validate()

    result = LocalResolutionBuilder({"halfMap": _HALF}, project).validate()
    assert result.kind == ValidationKind.MISSING
    assert result.field == "solventMask"

    result = LocalResolutionBuilder({"solventMask": "mask.mrc"}, project).validate()
    assert result.field == "halfMap"


def test_build_command(project):
    params = {
        "halfMap": _HALF,
        "solventMask": "MaskCreate/Job011/mask.mrc",
        "angpix": 0.85,
        "mtfDetector": "mtf_k3.star",
        "mpiProcs": 4,
    }
    builder = LocalResolutionBuilder(params, project, to_queue=False)

    assert builder.buildCommand(project.root / "LocalRes" / "Job017", "Job017") == [
        "relion_postprocess",
        "--locres",
        "--i", _HALF,
        "--mask", "MaskCreate/Job011/mask.mrc",
        "--angpix", "0.85",
        "--adhoc_bfac", "-100",
        "--o", "LocalRes/Job017/relion",
        "--pipeline_control", "LocalRes/Job017/",
        "--mtf", "mtf_k3.star",
    ]  # fmt: skip
