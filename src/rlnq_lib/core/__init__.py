# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Core infrastructure for rlnq.

This module collects the foundational utilities used across the rlnq codebase:
configuration, error types, structured logging, path helpers, sanitizers for
values reaching a shell, and click help formatting.
"""
