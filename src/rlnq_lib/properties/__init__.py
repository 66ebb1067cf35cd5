# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Data model of rlnq jobs: lifecycle states, resources, project context,
persistent job records, and parent-job inference.
"""

from .parents import INPUT_FIELDS, infer_parent_jobs
from .project import ProjectContext
from .record import JobRecord
from .resources import ResourceSpec
from .states import JobStatus

__all__ = [
    "INPUT_FIELDS",
    "JobRecord",
    "JobStatus",
    "ProjectContext",
    "ResourceSpec",
    "infer_parent_jobs",
]
