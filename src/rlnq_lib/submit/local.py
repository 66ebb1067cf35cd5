# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Local execution of jobs.

The process is started in its own session so that it survives the caller
and can be terminated as a process group. Completion is observed by a daemon
watcher thread calling back with the exit code. A watcher thread ends with
its process, so callers that do not stay alive until the job finishes start
the job through a detached `rlnq run` process instead (`DetachedRunner`).
"""

import os
import subprocess
import sys
import threading
from collections.abc import Callable
from pathlib import Path

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import SubmissionError
from rlnq_lib.core.logger import get_logger

from .command import format_command, is_chained, wrap_in_container

logger = get_logger(__name__)


def _noop(*_args) -> None:
    pass


class LocalLauncher:
    """
    Runs a command on the local machine.
    """

    def __init__(
        self,
        output_dir: Path,
        project_root: Path,
        command: list[str],
        post_command: list[str] | None = None,
        use_gpu: bool = False,
        on_start: Callable[[int], None] = _noop,
        on_exit: Callable[[int], None] = _noop,
        on_post_failure: Callable[[str], None] = _noop,
        on_done: Callable[[], None] = _noop,
    ):
        """
        Initialize the launcher.

        Args:
            output_dir (Path): Output directory of the job receiving the logs.
            project_root (Path): Working directory of the process.
            command (list[str]): The command to run.
            post_command (list[str] | None): Command to run after a successful run.
            use_gpu (bool): Whether the command uses GPUs (passed to the container runtime).
            on_start (Callable[[int], None]): Called with the process id once started.
            on_exit (Callable[[int], None]): Called with the exit code once finished.
            on_post_failure (Callable[[str], None]): Called with a description
                when the post-command fails.
            on_done (Callable[[], None]): Called when the process and the post-command
                have finished.
        """
        self._output_dir = output_dir
        self._project_root = project_root
        self._command = command
        self._post_command = post_command
        self._use_gpu = use_gpu
        self._on_start = on_start
        self._on_exit = on_exit
        self._on_post_failure = on_post_failure
        self._on_done = on_done
        self._watchers: list[threading.Thread] = []

    def getArgv(self) -> list[str]:
        """
        Get the argument vector of the process.

        Chained commands run through `sh -c`. The `&&` tokens come from
        the builders, all other tokens are quoted.
        """
        command = self._command
        if CFG.container.image:
            if Path(CFG.container.image).exists():
                command = wrap_in_container(command, self._use_gpu)
            else:
                logger.warning(f"Container image '{CFG.container.image}' not found, running without it.")

        if is_chained(command):
            return ["sh", "-c", format_command(command)]
        return list(command)

    @staticmethod
    def getEnvironment() -> dict[str, str]:
        env = os.environ.copy()
        torch_home = os.path.expandvars(CFG.submission.torch_home)
        env["TORCH_HOME"] = torch_home
        env["SINGULARITYENV_TORCH_HOME"] = torch_home
        return env

    def launch(self) -> int:
        """
        Start the process and a watcher waiting for it.

        Returns:
            int: Process id of the started process.

        Raises:
            SubmissionError: If the process could not be started.
        """
        argv = self.getArgv()
        logger.debug(f"Starting local process: {' '.join(argv)}.")

        try:
            with (
                (self._output_dir / CFG.submission.stdout_name).open("a") as out,
                (self._output_dir / CFG.submission.stderr_name).open("a") as err,
            ):
                process = subprocess.Popen(
                    argv,
                    cwd=self._project_root,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=err,
                    env=self.getEnvironment(),
                    start_new_session=True,
                )
        except OSError as e:
            raise SubmissionError(f"Failed to start '{argv[0]}': {e}.") from e

        self._on_start(process.pid)
        self._startWatcher(self._watch, process)
        return process.pid

    def wait(self, timeout: float | None = None) -> None:
        """Wait for the process and its post-command to finish."""
        while self._watchers:
            self._watchers.pop(0).join(timeout)

    def isActive(self) -> bool:
        """Return True while the process or its post-command is running."""
        return any(watcher.is_alive() for watcher in self._watchers)

    def _startWatcher(self, target: Callable, *args) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        self._watchers.append(thread)
        thread.start()

    def _watch(self, process: subprocess.Popen) -> None:
        try:
            exit_code = process.wait()
            logger.debug(f"Local process {process.pid} finished with exit code {exit_code}.")
            self._on_exit(exit_code)

            if exit_code == 0 and self._post_command:
                self._runPostCommand()
        finally:
            self._on_done()

    def _runPostCommand(self) -> None:
        logger.debug(f"Running post-command: {' '.join(self._post_command)}.")
        try:
            result = subprocess.run(
                self._post_command,
                cwd=self._project_root,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
                check=False,
            )
        except OSError as e:
            self._on_post_failure(str(e))
            return

        if result.returncode != 0:
            self._on_post_failure(f"exited with code {result.returncode}")


class DetachedRunner:
    """
    Starts `rlnq run` for a stored job in a separate session.

    The runner launches the job, waits for it and records its completion,
    independently of the process that submitted the job.
    """

    def __init__(self, job_id: str, output_dir: Path, project_root: Path):
        self._job_id = job_id
        self._output_dir = output_dir
        self._project_root = project_root
        self._process: subprocess.Popen | None = None

    def getArgv(self) -> list[str]:
        return [
            sys.executable,
            "-m",
            "rlnq_lib",
            "run",
            self._job_id,
            "--project",
            str(self._project_root),
        ]

    def launch(self) -> int:
        """
        Start the runner.

        Returns:
            int: Process id of the runner.

        Raises:
            SubmissionError: If the runner could not be started.
        """
        argv = self.getArgv()
        logger.debug(f"Starting job runner: {' '.join(argv)}.")

        try:
            with (self._output_dir / CFG.submission.stderr_name).open("a") as err:
                self._process = subprocess.Popen(
                    argv,
                    cwd=self._project_root,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=err,
                    start_new_session=True,
                )
        except OSError as e:
            raise SubmissionError(f"Failed to start the job runner: {e}.") from e

        return self._process.pid

    def wait(self, timeout: float | None = None) -> None:
        """Wait for the runner to finish."""
        if self._process is None:
            return
        try:
            self._process.wait(timeout)
        except subprocess.TimeoutExpired:
            logger.debug(f"Runner of job '{self._job_id}' is still running.")

    def isActive(self) -> bool:
        """Return True while the runner is running."""
        return self._process is not None and self._process.poll() is None
