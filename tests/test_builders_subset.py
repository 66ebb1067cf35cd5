# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.builders.interface import ValidationKind
from rlnq_lib.builders.subset import SubsetBuilder
from rlnq_lib.properties.project import ProjectContext


@pytest.fixture
def project(tmp_path):
    (tmp_path / "Class2D" / "Job008").mkdir(parents=True)
    for name in ("run_it020_optimiser.star", "run_it025_optimiser.star", "run_it025_data.star"):
        (tmp_path / "Class2D" / "Job008" / name).write_text("data_\n")
    return ProjectContext(tmp_path)


def _build(project, params):
    return SubsetBuilder(params, project).buildCommand(
        project.root / "Select" / "Job009", "Job009"
    )


def test_validate(project):
    assert SubsetBuilder({"particlesStar": "x.star"}, project).validate()
    assert SubsetBuilder({"microGraphsStar": "x.star"}, project).validate()

    result = SubsetBuilder({}, project).validate()
    assert result.kind == ValidationKind.MISSING


@pytest.mark.parametrize(
    "input_file,expected",
    [
        ("Class2D/Job008/run_it025_data.star", "Class2D/Job008/run_it025_optimiser.star"),
        ("Class2D/Job008/run_it025_model.star", "Class2D/Job008/run_it025_optimiser.star"),
        ("Class2D/Job008/run_it030_data.star", "Class2D/Job008/run_it025_optimiser.star"),
        ("Class2D/Job008/run_it020_optimiser.star", "Class2D/Job008/run_it020_optimiser.star"),
    ],
)
def test_get_optimiser_file(project, input_file, expected):
    builder = SubsetBuilder({"classFromJob": input_file}, project)
    assert builder.getOptimiserFile() == expected


def test_build_class_ranker(project):
    params = {
        "classFromJob": "Class2D/Job008/run_it025_data.star",
        "select2DClass": "Yes",
        "minThresholdAutoSelect": 0.25,
        "manyParticles": 5000,
        "manyClasses": 10,
    }

    assert _build(project, params) == [
        "relion_class_ranker",
        "--opt", "Class2D/Job008/run_it025_optimiser.star",
        "--o", "Select/Job009/",
        "--auto_select",
        "--min_score", "0.25",
        "--min_particles", "5000",
        "--min_classes", "10",
        "--pipeline_control", "Select/Job009/",
    ]  # fmt: skip


def test_build_star_handler_defaults(project):
    assert _build(project, {"particlesStar": "Extract/Job005/particles.star"}) == [
        "relion_star_handler",
        "--i", "Extract/Job005/particles.star",
        "--o", "Select/Job009/particles.star",
        "--pipeline_control", "Select/Job009/",
    ]  # fmt: skip


def test_build_star_handler_options(project):
    params = {
        "particlesStar": "Extract/Job005/particles.star",
        "metaDataValues": "Yes",
        "maxMetaData": 6,
        "imageStatics": "Yes",
        "split": "Yes",
        "randomise": "Yes",
        "numberSubsets": 3,
        "removeDuplicates": "Yes",
    }

    assert _build(project, params)[5:] == [
        "--select", "rlnCtfMaxResolution",
        "--minval", "-9999",
        "--maxval", "6",
        "--discard_on_stats",
        "--discard_label", "rlnImageName",
        "--discard_sigma", "4",
        "--split",
        "--random_order",
        "--nr_split", "3",
        "--check_duplicates", "rlnImageName",
        "--pipeline_control", "Select/Job009/",
    ]  # fmt: skip


def test_build_split_by_size(project):
    params = {"particlesStar": "p.star", "split": "Yes", "subsetSize": 500}
    command = _build(project, params)

    assert command[command.index("--split") :][:3] == ["--split", "--size_split", "500"]
