# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.builders.class_3d import Class3DBuilder
from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.properties.project import ProjectContext

_PARTICLES = "Select/Job006/particles.star"
_REFERENCE = "InitialModel/Job009/initial_model.mrc"


@pytest.fixture
def project(tmp_path):
    for path in (_PARTICLES, _REFERENCE):
        (tmp_path / path).parent.mkdir(parents=True, exist_ok=True)
        (tmp_path / path).write_text("data_\n")
    return ProjectContext(tmp_path)


def _params(**extra):
    return {"inputStarFile": _PARTICLES, "referenceMap": _REFERENCE, **extra}


def _build(project, params):
    builder = Class3DBuilder(params, project, to_queue=True)
    return builder.buildCommand(project.root / "Class3D" / "Job010", "Job010")


def test_validate_success(project):
    assert Class3DBuilder(_params(), project).validate()


@pytest.mark.parametrize(
    "params,kind,field",
    [
        ({"referenceMap": _REFERENCE}, ValidationKind.MISSING, "inputStarFile"),
        ({"inputStarFile": _PARTICLES}, ValidationKind.MISSING, "referenceMap"),
        (
            {"inputStarFile": _PARTICLES, "referenceMap": "InitialModel/Job009/none.mrc"},
            ValidationKind.NOT_FOUND,
            "referenceMap",
        ),
        (
            {"inputStarFile": "Select", "referenceMap": _REFERENCE},
            ValidationKind.WRONG_TYPE,
            "inputStarFile",
        ),
    ],
)
def test_validate_failures(project, params, kind, field):
    result = Class3DBuilder(params, project).validate()
    assert result.kind == kind
    assert result.field == field


def test_build_defaults(project):
    assert _build(project, _params()) == [
        "relion_refine",
        "--i", _PARTICLES,
        "--o", "Class3D/Job010/",
        "--ref", _REFERENCE,
        "--ini_high", "60",
        "--sym", "C1",
        "--K", "1",
        "--tau2_fudge", "2",
        "--particle_diameter", "200",
        "--iter", "25",
        "--flatten_solvent",
        "--norm",
        "--scale",
        "--oversampling", "1",
        "--pad", "2",
        "--pool", "3",
        "--j", "1",
        "--pipeline_control", "Class3D/Job010/",
        "--firstiter_cc",
        "--ctf",
        "--zero_mask",
        "--offset_range", "5",
        "--offset_step", "1",
        "--dont_combine_weights_via_disc",
        "--healpix_order", "2",
    ]  # fmt: skip


def test_build_options(project):
    params = _params(
        numberOfClasses=4,
        symmetry="D2",
        resizeReference="No",
        referenceMask="MaskCreate/Job011/mask.mrc",
        referenceMapAbsolute="Yes",
        fastSubsets="Yes",
        useBlushRegularisation="Yes",
        initialAngularSampling="3.7 degrees",
        localAngularSearches="Yes",
        localAngularSearchRange=6,
        coarserSampling="Yes",
        gpuToUse="0",
    )
    command = _build(project, params)

    assert "--trust_ref_size" in command
    assert command[command.index("--K") + 1] == "4"
    assert command[command.index("--sym") + 1] == "D2"
    assert command[command.index("--solvent_mask") + 1] == "MaskCreate/Job011/mask.mrc"
    assert "--firstiter_cc" not in command
    assert "--fast_subsets" in command
    assert "--blush" in command
    assert command[command.index("--gpu") + 1] == "0"
    assert command[command.index("--healpix_order") + 1] == "3"
    assert command[-3:] == ["--sigma_ang", "2", "--allow_coarser_sampling"]


def test_build_without_alignment(project):
    command = _build(project, _params(performImageAlignment="No"))

    assert "--skip_align" in command
    assert "--offset_range" not in command
