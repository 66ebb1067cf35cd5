# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.builders.multibody import MultibodyBuilder
from rlnq_lib.properties.project import ProjectContext

_REFINEMENT = "Refine3D/Job012/run_it020_optimiser.star"
_BODIES = "MultiBody/bodies.star"


@pytest.fixture
def project(tmp_path):
    for path in (_REFINEMENT, _BODIES):
        (tmp_path / path).parent.mkdir(parents=True, exist_ok=True)
        (tmp_path / path).write_text("data_\n")
    return ProjectContext(tmp_path)


def test_validate(project):
    assert MultibodyBuilder({"refinementStarFile": _REFINEMENT}, project).validate()
    assert MultibodyBuilder(
        {"refinementStarFile": _REFINEMENT, "bodyStarFile": _BODIES}, project
    ).validate()


@pytest.mark.parametrize(
    "params,kind,field",
    [
        ({}, ValidationKind.MISSING, "refinementStarFile"),
        (
            {"refinementStarFile": "Refine3D/Job012/missing.star"},
            ValidationKind.NOT_FOUND,
            "refinementStarFile",
        ),
        (
            {"refinementStarFile": _REFINEMENT, "bodyStarFile": "MultiBody/none.star"},
            ValidationKind.NOT_FOUND,
            "bodyStarFile",
        ),
    ],
)
def test_validate_failures(project, params, kind, field):
    result = MultibodyBuilder(params, project).validate()
    assert result.kind == kind
    assert result.field == field


def test_build_command(project):
    params = {
        "refinementStarFile": _REFINEMENT,
        "bodyStarFile": _BODIES,
        "mpiProcs": 3,
        "numberOfThreads": 4,
        "gpuToUse": "0:1",
    }
    builder = MultibodyBuilder(params, project, to_queue=True)

    assert builder.buildCommand(project.root / "MultiBody" / "Job013", "Job013") == [
        "relion_refine_mpi",
        "--i", _REFINEMENT,
        "--o", "MultiBody/Job013/run",
        "--auto_refine",
        "--split_random_halves",
        "--healpix_order", "2",
        "--offset_range", "5",
        "--offset_step", "0.75",
        "--auto_local_healpix_order", "4",
        "--flatten_solvent",
        "--norm",
        "--scale",
        "--oversampling", "1",
        "--pool", "3",
        "--pad", "2",
        "--low_resol_join_halves", "40",
        "--j", "4",
        "--pipeline_control", "MultiBody/Job013/",
        "--multibody_masks", _BODIES,
        "--reconstruct_subtracted_bodies",
        "--gpu", "0:1",
    ]  # fmt: skip


def test_build_without_bodies(project):
    params = {
        "refinementStarFile": _REFINEMENT,
        "useBlushRegularisation": "Yes",
        "combineIterations": "No",
    }
    command = MultibodyBuilder(params, project).buildCommand(
        project.root / "MultiBody" / "Job013", "Job013"
    )

    assert "--multibody_masks" not in command
    assert "--reconstruct_subtracted_bodies" not in command
    assert "--blush" in command
    assert command[-1] == "--dont_combine_weights_via_disc"
