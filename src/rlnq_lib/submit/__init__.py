# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Submission of jobs: batch-script rendering, queue submission, local
execution, and the orchestration of a whole submission.
"""

from .engine import SubmissionEngine, SubmitResult
from .local import LocalLauncher
from .orchestrator import submit_job
from .queue import QueueSubmitter
from .script import BatchScript

__all__ = [
    "BatchScript",
    "LocalLauncher",
    "QueueSubmitter",
    "SubmissionEngine",
    "SubmitResult",
    "submit_job",
]
