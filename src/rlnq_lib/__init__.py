# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Core implementation of the rlnq command-line tool.

This package turns user-supplied parameter bags into RELION command lines.
It defines the registry of job kinds, one command builder per kind,
the parameter resolver, the persistent job records and their store,
and the submission engine running jobs on a Slurm queue or locally.
All rlnq CLI commands ultimately delegate to the functionality implemented here.
"""

from .rlnq import __version__, cli

__all__ = [
    "__version__",
    "cli",
    "builders",
    "cancel",
    "core",
    "info",
    "params",
    "properties",
    "registry",
    "run",
    "store",
    "submit",
]
