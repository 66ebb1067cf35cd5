# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.builders.postprocess import PostProcessBuilder, derive_half_maps
from rlnq_lib.core.config import CompanionRule
from rlnq_lib.properties.project import ProjectContext

_HALF1 = "Refine3D/Job012/run_half1_class001_unfil.mrc"
_HALF2 = "Refine3D/Job012/run_half2_class001_unfil.mrc"


@pytest.fixture
def project(tmp_path):
    for path in (_HALF1, _HALF2):
        (tmp_path / path).parent.mkdir(parents=True, exist_ok=True)
        (tmp_path / path).write_text("map")
    return ProjectContext(tmp_path)


@pytest.mark.parametrize(
    "half_map,expected",
    [
        (_HALF1, (_HALF1, _HALF2)),
        (_HALF2, (_HALF1, _HALF2)),
        ("maps/half1.mrc", ("maps/half1.mrc", "maps/half2.mrc")),
        ("maps/half2.mrc", ("maps/half1.mrc", "maps/half2.mrc")),
        ("maps/full.mrc", None),
    ],
)
def test_derive_half_maps_default_rules(half_map, expected):
    assert derive_half_maps(half_map) == expected


def test_derive_half_maps_custom_rules():
    rules = [CompanionRule("_a.", "_b.")]
    assert derive_half_maps("map_b.mrc", rules) == ("map_a.mrc", "map_b.mrc")
    assert derive_half_maps(_HALF1, rules) is None


def test_derive_half_maps_replaces_first_occurrence_only():
    assert derive_half_maps("half1/run_half1_x.mrc") == (
        "half1/run_half1_x.mrc",
        "half1/run_half2_x.mrc",
    )


def test_validate_derives_second_half_map(project):
    params = {"halfMap": _HALF1}

    assert PostProcessBuilder(params, project).validate()
    assert params["halfMap1"] == _HALF1
    assert params["halfMap2"] == _HALF2


def test_validate_explicit_half_maps(project):
    assert PostProcessBuilder({"halfMap1": _HALF1, "halfMap2": _HALF2}, project).validate()


def test_validate_underivable_half_map(project):
    result = PostProcessBuilder({"halfMap1": _HALF1}, project).validate()

    assert not result
    assert result.kind == ValidationKind.MISSING
    assert result.field == "halfMap2"
    assert "could not auto-derive" in result.message


def test_validate_missing_first_half_map(project):
    result = PostProcessBuilder({}, project).validate()
    assert result.field == "halfMap1"


def test_validate_derived_half_map_not_found(project, tmp_path):
    (tmp_path / _HALF2).unlink()
    result = PostProcessBuilder({"halfMap": _HALF1}, project).validate()

    assert result.kind == ValidationKind.NOT_FOUND
    assert result.field == "halfMap2"


def test_is_single_process_cpu_job(project):
    builder = PostProcessBuilder({"mpiProcs": 4, "gpuAcceleration": "Yes"}, project)
    assert builder.mpi_procs == 1
    assert not builder.uses_gpu


def test_build_defaults(project):
    builder = PostProcessBuilder({"halfMap1": _HALF1, "halfMap2": _HALF2}, project)

    assert builder.buildCommand(project.root / "PostProcess" / "Job014", "Job014") == [
        "relion_postprocess",
        "--i", _HALF1,
        "--i2", _HALF2,
        "--o", "PostProcess/Job014/postprocess",
        "--angpix", "1",
        "--auto_bfac",
        "--autob_lowres", "10",
        "--autob_highres", "0",
        "--pipeline_control", "PostProcess/Job014/",
    ]  # fmt: skip


def test_build_mask_excludes_auto_mask(project):
    params = {
        "halfMap1": _HALF1,
        "halfMap2": _HALF2,
        "solventMask": "MaskCreate/Job011/mask.mrc",
        "autoMask": "Yes",
    }
    command = PostProcessBuilder(params, project).buildCommand(
        project.root / "PostProcess" / "Job014", "Job014"
    )

    assert command[command.index("--mask") + 1] == "MaskCreate/Job011/mask.mrc"
    assert "--auto_mask" not in command


def test_build_options(project):
    params = {
        "halfMap1": _HALF1,
        "halfMap2": _HALF2,
        "calibratedPixelSize": 0.85,
        "autoMask": "Yes",
        "bFactor": "No",
        "providedBFactor": -100,
        "mtfDetector": "mtf_k3.star",
        "originalDetector": 0.425,
        "skipFSC": "Yes",
        "estimateLocalResolution": "Yes",
    }
    command = PostProcessBuilder(params, project).buildCommand(
        project.root / "PostProcess" / "Job014", "Job014"
    )

    assert command[7:] == [
        "--angpix", "0.85",
        "--auto_mask",
        "--inimask_threshold", "0.02",
        "--extend_inimask", "3",
        "--width_mask_edge", "6",
        "--adhoc_bfac", "-100",
        "--mtf", "mtf_k3.star",
        "--mtf_angpix", "0.425",
        "--skip_fsc_weighting",
        "--low_pass", "5",
        "--locres",
        "--locres_sampling", "25",
        "--locres_minres", "50",
        "--pipeline_control", "PostProcess/Job014/",
    ]  # fmt: skip
