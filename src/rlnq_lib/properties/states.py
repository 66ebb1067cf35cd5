# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from enum import Enum
from typing import Self

from rlnq_lib.core.config import CFG
from rlnq_lib.core.error import RlnqError
from rlnq_lib.core.logger import get_logger

logger = get_logger(__name__)


class JobStatus(Enum):
    """
    Lifecycle status of a job record.

    Allowed transitions: pending -> running -> {success, failed, cancelled}.
    A pending job may also be failed or cancelled directly. Terminal states are final.
    """

    PENDING = 1
    RUNNING = 2
    SUCCESS = 3
    FAILED = 4
    CANCELLED = 5

    def __str__(self) -> str:
        """
        Return the lowercase string representation of the enum variant.

        Returns:
            str: The name of the status in lowercase.
        """
        return self.name.lower()

    @classmethod
    def fromStr(cls, s: str) -> Self:
        """
        Convert a string to the corresponding JobStatus enum variant.

        Args:
            s (str): String representation of the status (case-insensitive).

        Returns:
            JobStatus: Corresponding enum variant.

        Raises:
            RlnqError: If the string does not name a status.
        """
        try:
            return cls[s.upper()]
        except KeyError:
            raise RlnqError(f"Unknown job status '{s}'.") from None

    @property
    def color(self) -> str:
        """Display color of the status."""
        return getattr(CFG.status_colors, str(self))

    def isTerminal(self) -> bool:
        """Return True for success, failed and cancelled."""
        return self in (JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELLED)

    def canTransitionTo(self, other: "JobStatus") -> bool:
        """
        Check whether the status may change to `other`.

        Returns:
            bool: False when leaving a terminal state or returning to pending.
        """
        if self.isTerminal():
            return False
        if other == JobStatus.PENDING:
            return self == JobStatus.PENDING
        if other == JobStatus.RUNNING:
            return self in (JobStatus.PENDING, JobStatus.RUNNING)
        return True
