# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Persistent storage of job records.
"""

from .file_store import FileJobStore
from .interface import JobStore

__all__ = [
    "FileJobStore",
    "JobStore",
]
