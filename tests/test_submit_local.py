# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import SubmissionError
from rlnq_lib.submit.local import DetachedRunner, LocalLauncher


@pytest.fixture
def output_dir(tmp_path):
    directory = tmp_path / "PostProcess" / "Job014"
    directory.mkdir(parents=True)
    return directory


def test_get_argv_plain(tmp_path, output_dir):
    launcher = LocalLauncher(output_dir, tmp_path, ["relion_postprocess", "--i", "a b.mrc"])
    assert launcher.getArgv() == ["relion_postprocess", "--i", "a b.mrc"]


def test_get_argv_chained_runs_through_shell(tmp_path, output_dir):
    launcher = LocalLauncher(output_dir, tmp_path, ["prog_a", "--i", "a b", "&&", "prog_b"])
    assert launcher.getArgv() == ["sh", "-c", "prog_a --i 'a b' && prog_b"]


def test_get_argv_missing_container_image(tmp_path, output_dir, monkeypatch):
    monkeypatch.setattr(CFG.container, "image", str(tmp_path / "missing.sif"))
    launcher = LocalLauncher(output_dir, tmp_path, ["prog"])

    with patch("rlnq_lib.submit.local.logger.warning") as mock_warning:
        assert launcher.getArgv() == ["prog"]
    mock_warning.assert_called_once()


def test_get_argv_existing_container_image(tmp_path, output_dir, monkeypatch):
    image = tmp_path / "relion.sif"
    image.write_text("")
    monkeypatch.setattr(CFG.container, "image", str(image))
    launcher = LocalLauncher(output_dir, tmp_path, ["prog"], use_gpu=True)

    assert launcher.getArgv() == ["singularity", "exec", "--nv", str(image), "prog"]


def test_get_environment_sets_torch_home(monkeypatch):
    monkeypatch.setenv("HOME", "/home/user")
    env = LocalLauncher.getEnvironment()

    assert env["TORCH_HOME"] == "/home/user/.cache/torch"
    assert env["SINGULARITYENV_TORCH_HOME"] == "/home/user/.cache/torch"


def test_launch_runs_process_and_reports_exit(tmp_path, output_dir):
    on_start = MagicMock()
    on_exit = MagicMock()
    launcher = LocalLauncher(
        output_dir,
        tmp_path,
        ["sh", "-c", "pwd; echo problem >&2; exit 3"],
        on_start=on_start,
        on_exit=on_exit,
    )

    pid = launcher.launch()
    launcher.wait(timeout=30)

    on_start.assert_called_once_with(pid)
    on_exit.assert_called_once_with(3)
    assert (output_dir / "run.out").read_text().strip() == str(tmp_path.resolve())
    assert (output_dir / "run.err").read_text().strip() == "problem"


def test_launch_runs_post_command_after_success(tmp_path, output_dir):
    marker = tmp_path / "post.txt"
    on_post_failure = MagicMock()
    launcher = LocalLauncher(
        output_dir,
        tmp_path,
        ["sh", "-c", "exit 0"],
        post_command=["touch", str(marker)],
        on_post_failure=on_post_failure,
    )

    launcher.launch()
    launcher.wait(timeout=30)

    assert marker.exists()
    on_post_failure.assert_not_called()


def test_launch_skips_post_command_after_failure(tmp_path, output_dir):
    marker = tmp_path / "post.txt"
    launcher = LocalLauncher(
        output_dir, tmp_path, ["sh", "-c", "exit 1"], post_command=["touch", str(marker)]
    )

    launcher.launch()
    launcher.wait(timeout=30)

    assert not marker.exists()


def test_launch_reports_post_command_failure(tmp_path, output_dir):
    on_exit = MagicMock()
    on_post_failure = MagicMock()
    launcher = LocalLauncher(
        output_dir,
        tmp_path,
        ["sh", "-c", "exit 0"],
        post_command=["sh", "-c", "exit 5"],
        on_exit=on_exit,
        on_post_failure=on_post_failure,
    )

    launcher.launch()
    launcher.wait(timeout=30)

    on_exit.assert_called_once_with(0)
    on_post_failure.assert_called_once_with("exited with code 5")


def test_launch_missing_executable(tmp_path, output_dir):
    on_start = MagicMock()
    launcher = LocalLauncher(output_dir, tmp_path, [str(tmp_path / "no_such_program")], on_start=on_start)

    with pytest.raises(SubmissionError, match="Failed to start"):
        launcher.launch()
    on_start.assert_not_called()


def test_launch_reports_done_after_post_command(tmp_path, output_dir):
    marker = tmp_path / "post.txt"
    seen = []
    launcher = LocalLauncher(
        output_dir,
        tmp_path,
        ["sh", "-c", "exit 0"],
        post_command=["touch", str(marker)],
        on_done=lambda: seen.append(marker.exists()),
    )

    launcher.launch()
    launcher.wait(timeout=30)

    assert seen == [True]
    assert not launcher.isActive()


@pytest.mark.filterwarnings("ignore::pytest.PytestUnhandledThreadExceptionWarning")
def test_launch_reports_done_when_exit_callback_fails(tmp_path, output_dir):
    on_done = MagicMock()
    launcher = LocalLauncher(
        output_dir,
        tmp_path,
        ["sh", "-c", "exit 0"],
        on_exit=MagicMock(side_effect=RuntimeError("store unavailable")),
        on_done=on_done,
    )

    launcher.launch()
    launcher.wait(timeout=30)

    on_done.assert_called_once_with()


def test_detached_runner_argv(tmp_path, output_dir):
    runner = DetachedRunner("Job014", output_dir, tmp_path)
    assert runner.getArgv() == [
        sys.executable, "-m", "rlnq_lib", "run", "Job014", "--project", str(tmp_path)
    ]


def test_detached_runner_launch(tmp_path, output_dir):
    runner = DetachedRunner("Job014", output_dir, tmp_path)

    with patch("rlnq_lib.submit.local.subprocess.Popen") as mock_popen:
        mock_popen.return_value.pid = 2024
        mock_popen.return_value.poll.return_value = None
        assert runner.launch() == 2024
        assert runner.isActive()

        mock_popen.return_value.poll.return_value = 0
        assert not runner.isActive()

    kwargs = mock_popen.call_args.kwargs
    assert kwargs["start_new_session"] is True
    assert kwargs["cwd"] == tmp_path
    assert kwargs["stdin"] == subprocess.DEVNULL


def test_detached_runner_wait_timeout(tmp_path, output_dir):
    runner = DetachedRunner("Job014", output_dir, tmp_path)

    with patch("rlnq_lib.submit.local.subprocess.Popen") as mock_popen:
        mock_popen.return_value.wait.side_effect = subprocess.TimeoutExpired("rlnq", 1)
        runner.launch()
        runner.wait(timeout=1)

    mock_popen.return_value.wait.assert_called_once_with(1)


def test_detached_runner_launch_failure(tmp_path, output_dir):
    runner = DetachedRunner("Job014", output_dir, tmp_path)

    with (
        patch("rlnq_lib.submit.local.subprocess.Popen", side_effect=OSError("no such file")),
        pytest.raises(SubmissionError, match="Failed to start the job runner"),
    ):
        runner.launch()
    assert not runner.isActive()
