# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.properties.parents import infer_parent_jobs


def test_infer_from_input_paths():
    params = {
        "inputStarFile": "Select/job6/particles.star",
        "referenceMap": "InitialModel/Job009/initial_model.mrc",
        "referenceMask": "MaskCreate/Job011/mask.mrc",
    }
    assert infer_parent_jobs(params) == ["Job006", "Job009", "Job011"]


def test_infer_deduplicates():
    params = {
        "halfMap1": "Refine3D/Job012/run_half1_class001_unfil.mrc",
        "halfMap2": "Refine3D/Job012/run_half2_class001_unfil.mrc",
    }
    assert infer_parent_jobs(params) == ["Job012"]


def test_infer_ignores_other_fields_and_non_strings():
    params = {
        "additionalArguments": "--ref Job003/ref.mrc",
        "inputStarFile": 12,
        "referenceMap": "maps/reference.mrc",
    }
    assert infer_parent_jobs(params) == []


def test_infer_with_custom_fields():
    assert infer_parent_jobs({"source": "Import/Job001/movies.star"}, fields=["source"]) == ["Job001"]


@pytest.mark.parametrize(
    "explicit,expected",
    [
        ("Job002, Job005", ["Job002", "Job005"]),
        (["Job002", "Job002", "custom"], ["Job002", "custom"]),
    ],
)
def test_explicit_ids_take_precedence(explicit, expected):
    params = {"inputJobIds": explicit, "inputStarFile": "Select/Job006/particles.star"}
    assert infer_parent_jobs(params) == expected


def test_empty_explicit_ids_fall_back_to_inference():
    params = {"inputJobIds": "", "inputStarFile": "Select/Job006/particles.star"}
    assert infer_parent_jobs(params) == ["Job006"]
