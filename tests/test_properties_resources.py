# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from unittest.mock import patch

import pytest

from rlnq_lib.builders.class_2d import Class2DBuilder
from rlnq_lib.builders.postprocess import PostProcessBuilder
from rlnq_lib.properties.project import ProjectContext
from rlnq_lib.properties.resources import ResourceSpec


def test_defaults():
    resources = ResourceSpec()
    assert (resources.mpi_procs, resources.threads, resources.gpus) == (1, 1, 0)
    assert resources.to_queue


@pytest.mark.parametrize(
    "kwargs,expected",
    [
        ({"mpi_procs": 0}, (1, 1, 0)),
        ({"mpi_procs": 10_000}, (128, 1, 0)),
        ({"threads": -5}, (1, 1, 0)),
        ({"threads": 1000}, (1, 256, 0)),
        ({"gpus": -1}, (1, 1, 0)),
        ({"gpus": 64}, (1, 1, 16)),
    ],
)
def test_values_are_clamped(kwargs, expected):
    resources = ResourceSpec(**kwargs)
    assert (resources.mpi_procs, resources.threads, resources.gpus) == expected


@pytest.mark.parametrize("walltime", ["12:00:00", "2-00:00:00", "90", "30:00"])
def test_valid_walltime(walltime):
    assert ResourceSpec(walltime=walltime).walltime == walltime


def test_invalid_walltime_is_dropped():
    with patch("rlnq_lib.properties.resources.logger.warning") as mock_warning:
        resources = ResourceSpec(walltime="tomorrow; rm -rf /")

    assert resources.walltime is None
    mock_warning.assert_called_once()


def test_to_dict_skips_unset_fields():
    data = ResourceSpec(mpi_procs=4, partition="gpu").toDict()

    assert data == {
        "mpi_procs": 4,
        "threads": 1,
        "gpus": 0,
        "partition": "gpu",
        "to_queue": True,
    }
    assert ResourceSpec.fromDict(data) == ResourceSpec(mpi_procs=4, partition="gpu")


def test_from_params_without_builder():
    params = {
        "mpiProcs": 5,
        "numberOfThreads": 4,
        "gpuToUse": "0,1,1",
        "queueName": "gpu",
        "queueArgs": "--mem=64G",
        "walltime": "24:00:00",
        "queueSubmitCommand": "sbatch",
        "submitToQueue": "Yes",
    }
    resources = ResourceSpec.fromParams(params)

    assert resources == ResourceSpec(
        mpi_procs=5,
        threads=4,
        gpus=2,
        partition="gpu",
        queue_args="--mem=64G",
        walltime="24:00:00",
        submit_command="sbatch",
        to_queue=True,
    )


def test_from_params_explicit_gpu_count():
    assert ResourceSpec.fromParams({"gpuToUse": "0", "gres": 4}).gpus == 4


def test_from_params_without_gpu():
    assert ResourceSpec.fromParams({"gpuAcceleration": "No", "gpuToUse": "0,1"}).gpus == 0


def test_from_params_with_builder(tmp_path):
    project = ProjectContext(tmp_path)
    params = {"mpiProcs": 4, "gpuToUse": "0,1", "numberOfThreads": 2}

    resources = ResourceSpec.fromParams(params, PostProcessBuilder(params, project, to_queue=False))
    assert (resources.mpi_procs, resources.threads, resources.gpus, resources.to_queue) == (1, 2, 0, False)

    resources = ResourceSpec.fromParams(params, Class2DBuilder(params, project, to_queue=True))
    assert (resources.mpi_procs, resources.threads, resources.gpus, resources.to_queue) == (4, 2, 2, True)
