# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import signal
import time
from unittest.mock import MagicMock, patch

import pytest

from rlnq_lib.core.error import RlnqError, SubmissionError
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.resources import ResourceSpec
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.store import FileJobStore
from rlnq_lib.submit.engine import SubmissionEngine, SubmitResult


@pytest.fixture
def store(tmp_path):
    return FileJobStore(tmp_path)


@pytest.fixture
def record(store, tmp_path):
    output_dir = tmp_path / "PostProcess" / "Job001"
    output_dir.mkdir(parents=True)
    return store.create(
        JobRecord(id="Job001", job_type="postprocess", project=tmp_path, output_dir=output_dir)
    )


def test_submit_to_queue(store, record):
    with patch("rlnq_lib.submit.engine.QueueSubmitter") as mock_submitter:
        mock_submitter.return_value.submit.return_value = "777"
        result = SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=True))

    assert result == SubmitResult(True, "777", "Job submitted to the queue (id 777)", None, "Job001")
    mock_submitter.assert_called_once_with(
        "Job001", record.output_dir, record.project, ["prog"], ResourceSpec(to_queue=True)
    )

    stored = store.get("Job001")
    assert stored.status == JobStatus.RUNNING
    assert stored.queue_id == "777"
    assert stored.to_queue is True
    assert stored.start_time is not None


def test_submit_to_queue_failure_marks_failed(store, record):
    with patch("rlnq_lib.submit.engine.QueueSubmitter") as mock_submitter:
        mock_submitter.return_value.submit.side_effect = SubmissionError("sbatch not found")
        result = SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=True))

    assert not result.accepted
    assert result.error == "sbatch not found"
    assert result.job_id == "Job001"

    stored = store.get("Job001")
    assert stored.status == JobStatus.FAILED
    assert stored.error_message == "sbatch not found"
    assert stored.end_time is not None


def test_submit_unexpected_error_marks_failed(store, record):
    with patch("rlnq_lib.submit.engine.QueueSubmitter", side_effect=KeyError("boom")):
        result = SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=True))

    assert not result.accepted
    assert result.message == "Job submission failed"
    assert store.get("Job001").status == JobStatus.FAILED


def test_submit_locally_records_lifecycle(store, record):
    builder = MagicMock()
    builder.postCommand.return_value = ["echo", "done"]

    with patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher:
        mock_launcher.return_value.launch.return_value = 4321
        engine = SubmissionEngine(store)
        result = engine.submit(record, ["prog", "--gpu", "0"], ResourceSpec(to_queue=False), builder)

    assert result.accepted
    assert result.queue_id is None
    kwargs = mock_launcher.call_args.kwargs
    assert kwargs["post_command"] == ["echo", "done"]
    assert kwargs["use_gpu"] is True

    kwargs["on_start"](4321)
    assert store.get("Job001").pid == 4321

    kwargs["on_exit"](0)
    stored = store.get("Job001")
    assert stored.status == JobStatus.SUCCESS
    assert stored.pid is None

    kwargs["on_post_failure"]("exited with code 2")
    assert store.get("Job001").error_message == "Job succeeded but post-command failed: exited with code 2"

    engine.wait()
    mock_launcher.return_value.wait.assert_called_once()


def test_submit_locally_nonzero_exit(store, record):
    with patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher:
        SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=False))
        mock_launcher.call_args.kwargs["on_exit"](137)

    stored = store.get("Job001")
    assert stored.status == JobStatus.FAILED
    assert stored.error_message == "Process exited with code 137"


def test_exit_after_cancellation_keeps_cancelled(store, record):
    with patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher:
        SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=False))

    store.transition("Job001", JobStatus.CANCELLED)
    mock_launcher.call_args.kwargs["on_exit"](143)

    assert store.get("Job001").status == JobStatus.CANCELLED


def test_submit_locally_launch_failure(store, record):
    with patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher:
        mock_launcher.return_value.launch.side_effect = SubmissionError("Failed to start 'prog'")
        result = SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=False))

    assert not result.accepted
    assert store.get("Job001").status == JobStatus.FAILED


def test_submit_locally_real_process(store, record):
    engine = SubmissionEngine(store)
    result = engine.submit(record, ["sh", "-c", "exit 0"], ResourceSpec(to_queue=False))
    engine.wait(timeout=30)

    assert result.accepted
    assert store.get("Job001").status == JobStatus.SUCCESS


def test_run_in_process(store, record):
    builder = MagicMock()
    result = SubmissionEngine(store).runInProcess(record, builder, record.output_dir)

    assert result == SubmitResult(True, None, "Job completed", None, "Job001")
    builder.execute.assert_called_once_with(record.output_dir)
    stored = store.get("Job001")
    assert stored.status == JobStatus.SUCCESS
    assert stored.to_queue is False


@pytest.mark.parametrize("error", [RlnqError("no particles"), OSError("disk full")])
def test_run_in_process_failure(store, record, error):
    builder = MagicMock()
    builder.execute.side_effect = error
    result = SubmissionEngine(store).runInProcess(record, builder, record.output_dir)

    assert not result.accepted
    assert result.error == str(error)
    stored = store.get("Job001")
    assert stored.status == JobStatus.FAILED
    assert stored.error_message == str(error)


def test_detached_engine_starts_runner(store, record):
    with (
        patch("rlnq_lib.submit.engine.DetachedRunner") as mock_runner,
        patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher,
    ):
        mock_runner.return_value.launch.return_value = 999
        engine = SubmissionEngine(store, detach=True)
        result = engine.submit(record, ["prog"], ResourceSpec(to_queue=False))

        assert result == SubmitResult(True, None, "Job started locally", None, "Job001")
        mock_runner.assert_called_once_with("Job001", record.output_dir, record.project)
        mock_launcher.assert_not_called()

        mock_runner.return_value.isActive.return_value = True
        assert engine.activeJobs() == ["Job001"]
        mock_runner.return_value.isActive.return_value = False
        assert engine.activeJobs() == []

    stored = store.get("Job001")
    assert stored.status == JobStatus.RUNNING
    assert stored.pid is None


def test_detached_runner_failure_marks_failed(store, record):
    with patch("rlnq_lib.submit.engine.DetachedRunner") as mock_runner:
        mock_runner.return_value.launch.side_effect = SubmissionError("Failed to start the job runner")
        engine = SubmissionEngine(store, detach=True)
        result = engine.submit(record, ["prog"], ResourceSpec(to_queue=False))

    assert not result.accepted
    assert engine.activeJobs() == []
    assert store.get("Job001").status == JobStatus.FAILED


def test_start_after_cancellation_terminates_process(store, record):
    with patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher:
        SubmissionEngine(store).submit(record, ["prog"], ResourceSpec(to_queue=False))

    store.transition("Job001", JobStatus.CANCELLED)

    with (
        patch("rlnq_lib.submit.engine.os.killpg") as mock_killpg,
        patch("rlnq_lib.submit.engine.logger") as mock_logger,
    ):
        mock_launcher.call_args.kwargs["on_start"](4321)

    mock_killpg.assert_called_once_with(4321, signal.SIGTERM)
    mock_logger.warning.assert_called_once()
    assert store.get("Job001").status == JobStatus.CANCELLED


def test_finished_launchers_are_forgotten(store, record):
    engine = SubmissionEngine(store)
    engine.submit(record, ["sh", "-c", "exit 0"], ResourceSpec(to_queue=False))

    deadline = time.monotonic() + 30
    while engine.activeJobs() and time.monotonic() < deadline:
        time.sleep(0.05)

    assert engine.activeJobs() == []
    assert store.get("Job001").status == JobStatus.SUCCESS


def test_run_locally_uses_stored_command(store, record):
    store.transition("Job001", JobStatus.RUNNING)
    record = store.get("Job001")
    record.assignCommand(["prog", "--gpu", "0"])
    store.update(record)
    builder = MagicMock()
    builder.postCommand.return_value = None
    builder.params = {}

    with (
        patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher,
        patch("rlnq_lib.submit.engine.ResourceSpec.fromParams", return_value=ResourceSpec(to_queue=False)),
    ):
        mock_launcher.return_value.launch.return_value = 4321
        result = SubmissionEngine(store).runLocally(store.get("Job001"), builder)

    assert result.accepted
    args, kwargs = mock_launcher.call_args
    assert args == (record.output_dir, record.project, ["prog", "--gpu", "0"])
    assert kwargs["use_gpu"] is True


def test_run_locally_skips_finished_job(store, record):
    store.transition("Job001", JobStatus.CANCELLED)

    with (
        patch("rlnq_lib.submit.engine.LocalLauncher") as mock_launcher,
        patch("rlnq_lib.submit.engine.logger"),
    ):
        result = SubmissionEngine(store).runLocally(store.get("Job001"))

    assert not result.accepted
    assert result.message == "Job is cancelled"
    mock_launcher.assert_not_called()
    assert store.get("Job001").status == JobStatus.CANCELLED


def test_run_locally_without_command_fails(store, record):
    with patch("rlnq_lib.submit.engine.logger"):
        result = SubmissionEngine(store).runLocally(store.get("Job001"))

    assert not result.accepted
    assert "has no command" in result.error
    assert store.get("Job001").status == JobStatus.FAILED
