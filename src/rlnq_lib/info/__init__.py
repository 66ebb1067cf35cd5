# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from .presenter import JobsPresenter, RecordPresenter, TypesPresenter

__all__ = ["JobsPresenter", "RecordPresenter", "TypesPresenter"]
