# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from .canceller import Canceller

__all__ = ["Canceller"]
