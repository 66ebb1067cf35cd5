# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from .cli import run, run_job

__all__ = ["run", "run_job"]
