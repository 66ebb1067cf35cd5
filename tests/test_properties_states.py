# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import pytest

from rlnq_lib.core.error import RlnqError
from rlnq_lib.properties.states import JobStatus


@pytest.mark.parametrize("status", list(JobStatus))
def test_str_round_trip(status):
    assert JobStatus.fromStr(str(status)) == status
    assert JobStatus.fromStr(str(status).upper()) == status


def test_from_str_unknown():
    with pytest.raises(RlnqError, match="Unknown job status 'queued'"):
        JobStatus.fromStr("queued")


@pytest.mark.parametrize(
    "status,terminal",
    [
        (JobStatus.PENDING, False),
        (JobStatus.RUNNING, False),
        (JobStatus.SUCCESS, True),
        (JobStatus.FAILED, True),
        (JobStatus.CANCELLED, True),
    ],
)
def test_is_terminal(status, terminal):
    assert status.isTerminal() == terminal


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        (JobStatus.PENDING, JobStatus.PENDING, True),
        (JobStatus.PENDING, JobStatus.RUNNING, True),
        (JobStatus.PENDING, JobStatus.FAILED, True),
        (JobStatus.PENDING, JobStatus.CANCELLED, True),
        (JobStatus.PENDING, JobStatus.SUCCESS, True),
        (JobStatus.RUNNING, JobStatus.RUNNING, True),
        (JobStatus.RUNNING, JobStatus.SUCCESS, True),
        (JobStatus.RUNNING, JobStatus.FAILED, True),
        (JobStatus.RUNNING, JobStatus.CANCELLED, True),
        (JobStatus.RUNNING, JobStatus.PENDING, False),
        (JobStatus.SUCCESS, JobStatus.RUNNING, False),
        (JobStatus.FAILED, JobStatus.SUCCESS, False),
        (JobStatus.CANCELLED, JobStatus.CANCELLED, False),
        (JobStatus.CANCELLED, JobStatus.PENDING, False),
    ],
)
def test_can_transition_to(current, new, allowed):
    assert current.canTransitionTo(new) == allowed


def test_color_comes_from_config():
    assert JobStatus.PENDING.color == "bright_magenta"
    assert JobStatus.SUCCESS.color == "bright_green"
    assert JobStatus.CANCELLED.color == "bright_yellow"
