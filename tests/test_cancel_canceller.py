# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import signal
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from rlnq_lib.cancel.canceller import Canceller
from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import NotSuitableError, RlnqError
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.resources import ResourceSpec
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.store.file_store import FileJobStore
from rlnq_lib.submit.engine import SubmissionEngine


@pytest.fixture
def store(tmp_path):
    return FileJobStore(tmp_path)


def _create(store, tmp_path, status, **kwargs):
    return store.create(
        JobRecord(id="Job003", job_type="class3d", project=tmp_path, status=status, **kwargs)
    )


@pytest.mark.parametrize(
    "status,message",
    [
        (JobStatus.CANCELLED, "Job has already been cancelled"),
        (JobStatus.SUCCESS, "Job is already success"),
        (JobStatus.FAILED, "Job is already failed"),
    ],
)
def test_ensure_suitable_rejects_terminal(store, tmp_path, status, message):
    record = _create(store, tmp_path, status)
    with pytest.raises(NotSuitableError, match=message):
        Canceller(store).ensureSuitable(record)


@pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.RUNNING])
def test_ensure_suitable_accepts_active(store, tmp_path, status):
    record = _create(store, tmp_path, status)
    Canceller(store).ensureSuitable(record)


def test_cancel_queue_job(store, tmp_path):
    _create(store, tmp_path, JobStatus.PENDING, queue_id="4815")

    with patch(
        "rlnq_lib.cancel.canceller.subprocess.run",
        return_value=subprocess.CompletedProcess([], 0, "", ""),
    ) as mock_run:
        record = Canceller(store).cancel("Job003")

    assert mock_run.call_args.args[0] == [CFG.slurm.cancel_command, "4815"]
    assert record.status == JobStatus.CANCELLED
    assert record.end_time is not None
    assert store.get("Job003").status == JobStatus.CANCELLED


def test_cancel_queue_job_command_fails(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, queue_id="4815")

    with (
        patch(
            "rlnq_lib.cancel.canceller.subprocess.run",
            return_value=subprocess.CompletedProcess([], 1, "", "Invalid job id specified\n"),
        ),
        pytest.raises(RlnqError, match="Invalid job id specified"),
    ):
        Canceller(store).cancel("Job003")

    assert store.get("Job003").status == JobStatus.RUNNING


def test_cancel_queue_job_missing_command(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, queue_id="4815")

    with (
        patch("rlnq_lib.cancel.canceller.subprocess.run", side_effect=FileNotFoundError("scancel")),
        pytest.raises(RlnqError, match="Could not run"),
    ):
        Canceller(store).cancel("Job003")


def test_cancel_queue_job_invalid_id(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, queue_id="4815; rm -rf /")

    with (
        patch("rlnq_lib.cancel.canceller.subprocess.run") as mock_run,
        pytest.raises(RlnqError, match="Invalid scheduler job id"),
    ):
        Canceller(store).cancel("Job003")

    mock_run.assert_not_called()


def test_cancel_local_job(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, pid=12345)

    with patch("rlnq_lib.cancel.canceller.os.killpg") as mock_killpg:
        record = Canceller(store).cancel("Job003")

    mock_killpg.assert_called_once_with(12345, signal.SIGTERM)
    assert record.status == JobStatus.CANCELLED
    assert record.pid is None


def test_cancel_local_job_already_gone(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, pid=12345)

    with (
        patch("rlnq_lib.cancel.canceller.os.killpg", side_effect=ProcessLookupError),
        patch("rlnq_lib.cancel.canceller.logger") as mock_logger,
    ):
        record = Canceller(store).cancel("Job003")

    mock_logger.warning.assert_called_once()
    assert record.status == JobStatus.CANCELLED


def test_cancel_local_job_permission_denied(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, pid=12345)

    with (
        patch("rlnq_lib.cancel.canceller.os.killpg", side_effect=PermissionError("denied")),
        pytest.raises(RlnqError, match="Could not terminate the process '12345'"),
    ):
        Canceller(store).cancel("Job003")

    assert store.get("Job003").status == JobStatus.CANCELLED


def test_cancel_pending_job_without_ids(store, tmp_path):
    _create(store, tmp_path, JobStatus.PENDING)

    with (
        patch("rlnq_lib.cancel.canceller.subprocess.run") as mock_run,
        patch("rlnq_lib.cancel.canceller.os.killpg") as mock_killpg,
    ):
        record = Canceller(store).cancel("Job003")

    mock_run.assert_not_called()
    mock_killpg.assert_not_called()
    assert record.status == JobStatus.CANCELLED


def test_cancel_finished_job_not_suitable(store, tmp_path):
    _create(store, tmp_path, JobStatus.SUCCESS, queue_id="4815")

    with (
        patch("rlnq_lib.cancel.canceller.subprocess.run") as mock_run,
        pytest.raises(NotSuitableError),
    ):
        Canceller(store).cancel("Job003")

    mock_run.assert_not_called()


def test_cancel_forced_keeps_terminal_status(store, tmp_path):
    _create(store, tmp_path, JobStatus.FAILED, queue_id="4815")

    with (
        patch(
            "rlnq_lib.cancel.canceller.subprocess.run",
            return_value=subprocess.CompletedProcess([], 0, "", ""),
        ) as mock_run,
        patch("rlnq_lib.cancel.canceller.logger") as mock_logger,
    ):
        record = Canceller(store).cancel("Job003", force=True)

    mock_run.assert_called_once()
    mock_logger.warning.assert_called_once()
    assert record.status == JobStatus.FAILED
    assert store.get("Job003").status == JobStatus.FAILED


def test_cancel_unknown_job(store):
    with pytest.raises(RlnqError, match="does not exist"):
        Canceller(store).cancel("Job099")


def test_store_property(store):
    assert Canceller(store).store is store


def test_cancel_with_mocked_store():
    store = MagicMock()
    store.get.return_value = JobRecord(
        id="Job001", job_type="postprocess", project=Path("/data/projects/apoferritin"), status=JobStatus.RUNNING
    )

    Canceller(store).cancel("Job001")

    args, kwargs = store.transition.call_args
    assert args == ("Job001", JobStatus.CANCELLED)
    assert kwargs["pid"] is None


def test_cancel_local_job_records_before_signalling(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, pid=12345)

    def killpg(pid, sig):
        # the process may report its exit as soon as it is signalled
        assert FileJobStore(tmp_path).get("Job003").status == JobStatus.CANCELLED

    with patch("rlnq_lib.cancel.canceller.os.killpg", side_effect=killpg) as mock_killpg:
        Canceller(store).cancel("Job003")

    mock_killpg.assert_called_once_with(12345, signal.SIGTERM)


def test_cancel_queue_job_signals_before_recording(store, tmp_path):
    _create(store, tmp_path, JobStatus.RUNNING, queue_id="4815")

    def scancel(*_args, **_kwargs):
        assert FileJobStore(tmp_path).get("Job003").status == JobStatus.RUNNING
        return subprocess.CompletedProcess([], 0, "", "")

    with patch("rlnq_lib.cancel.canceller.subprocess.run", side_effect=scancel):
        record = Canceller(store).cancel("Job003")

    assert record.status == JobStatus.CANCELLED


def test_cancel_forced_local_job_keeps_terminal_status(store, tmp_path):
    _create(store, tmp_path, JobStatus.SUCCESS, pid=12345)

    with (
        patch("rlnq_lib.cancel.canceller.os.killpg") as mock_killpg,
        patch("rlnq_lib.cancel.canceller.logger"),
    ):
        record = Canceller(store).cancel("Job003", force=True)

    mock_killpg.assert_called_once_with(12345, signal.SIGTERM)
    assert record.status == JobStatus.SUCCESS


def test_cancel_running_process_from_another_store(tmp_path):
    output_dir = tmp_path / "Class3D" / "Job001"
    output_dir.mkdir(parents=True)
    store = FileJobStore(tmp_path)
    record = store.create(JobRecord(id="Job001", job_type="class3d", project=tmp_path, output_dir=output_dir))

    engine = SubmissionEngine(store)
    result = engine.submit(record, ["sleep", "30"], ResourceSpec(to_queue=False))
    assert result.accepted

    cancelled = Canceller(FileJobStore(tmp_path)).cancel("Job001")
    engine.wait(timeout=30)

    assert cancelled.status == JobStatus.CANCELLED
    stored = store.get("Job001")
    assert stored.status == JobStatus.CANCELLED
    assert stored.pid is None
    assert engine.activeJobs() == []
