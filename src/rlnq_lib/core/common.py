# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
General utility functions for the rlnq library.

This module provides helpers for YAML I/O, project-relative path handling,
job-name construction, splitting of user-provided lists, formatting
of durations and panel widths, and user prompts.
"""

import os
import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

import readchar
import yaml
from rich.console import Console
from rich.live import Live
from rich.text import Text

from .logger import get_logger

logger = get_logger(__name__)

# prefix of job names and of the per-job output directories
JOB_NAME_PREFIX = "Job"


@lru_cache(maxsize=1)
def load_yaml_dumper() -> type[yaml.Dumper]:
    """Return the fastest available YAML dumper (CDumper if possible)."""
    try:
        from yaml import CDumper as Dumper  # type: ignore[attr-defined]

        logger.debug("Loaded YAML CDumper.")
    except ImportError:
        from yaml import Dumper

        logger.debug("Loaded default YAML dumper.")
    return Dumper


@lru_cache(maxsize=1)
def load_yaml_loader() -> type[yaml.SafeLoader]:
    """Return the fastest available safe YAML loader (CSafeLoader if possible)."""
    try:
        from yaml import (
            CSafeLoader as SafeLoader,  # ty: ignore[possibly-missing-import]
        )

        logger.debug("Loaded YAML CLoader.")
    except ImportError:
        from yaml import SafeLoader

        logger.debug("Loaded default YAML loader.")

    return SafeLoader


def format_job_name(number: int | str) -> str:
    """
    Return the canonical zero-padded job name for a job number.

    Args:
        number (int | str): The job number, e.g. 7 or "007".

    Returns:
        str: The job name, e.g. "Job007".
    """
    return f"{JOB_NAME_PREFIX}{int(number):03d}"


def resolve_input_path(path: str | Path, project_root: Path) -> Path:
    """
    Resolve a path against the project root unless it is already absolute.

    Args:
        path (str | Path): The path to resolve.
        project_root (Path): Root directory of the project.

    Returns:
        Path: The absolute path.
    """
    path = Path(path)
    if path.is_absolute():
        return path
    return project_root / path


def make_relative(path: str | Path, project_root: Path) -> str:
    """
    Express a path relative to the project root if it lies under the root.

    Paths outside the root are returned unchanged.

    Args:
        path (str | Path): The path to relativize.
        project_root (Path): Root directory of the project.

    Returns:
        str: The relativized path.
    """
    path = Path(path)
    if path.is_absolute() and path.is_relative_to(project_root):
        relative = path.relative_to(project_root)
        return str(relative) if relative != Path(".") else "."
    return str(path)


def with_trailing_separator(path: str) -> str:
    """Append the OS path separator unless the path already ends with it."""
    return path if path.endswith(os.sep) else path + os.sep


def split_list(text: str) -> list[str]:
    """
    Split a string on commas, colons, or whitespace.

    Args:
        text (str): The string to split.

    Returns:
        list[str]: Non-empty items in their original order.
    """
    return [x for x in re.split(r"[,:\s]+", text.strip()) if x]


def yes_or_no_prompt(prompt: str) -> bool:
    """
    Display an interactive yes/no prompt to the user and return the selection.

    Defaults to 'No' if the user presses any key other than 'y'.

    Args:
        prompt (str): The text to display as the question.

    Returns:
        bool: True if the user presses 'y', False otherwise.
    """
    prompt = f"   {prompt} "
    text = (
        Text("PROMPT", style="magenta")
        + Text(prompt, style="default")
        + Text("[y/N]", style="bold default")
    )

    with Live(text, refresh_per_second=1) as live:
        key = readchar.readkey().lower()

        if key == "y":
            choice = (
                Text("[", style="bold default")
                + Text("y", style="bold green")
                + Text("/N]", style="bold default")
            )
        else:
            choice = (
                Text("[y/", style="bold default")
                + Text("N", style="bold red")
                + Text("]", style="bold default")
            )

        live.update(
            Text("PROMPT", style="magenta") + Text(prompt, style="default") + choice
        )

    return key == "y"


def format_duration_wdhhmmss(td: timedelta) -> str:
    """
    Format a timedelta into a human-readable string: Xw Yd HH:MM:SS.

    Weeks and days are included only if non-zero.

    Examples:
        0:00:45         -> "00:00:45"
        1 day, 2:03:04  -> "1d 02:03:04"
        10 days, 5:06:07 -> "1w 3d 05:06:07"
    """
    total_seconds = max(0, int(td.total_seconds()))

    weeks, remainder = divmod(total_seconds, 7 * 24 * 3600)
    days, remainder = divmod(remainder, 24 * 3600)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts = []
    if weeks > 0:
        parts.append(f"{weeks}w")
    if days > 0:
        parts.append(f"{days}d")

    parts.append(f"{hours:02}:{minutes:02}:{seconds:02}")

    return " ".join(parts)


def get_panel_width(
    console: Console, factor: int, min_width: int | None, max_width: int | None
) -> int:
    """
    Calculate the width of a panel relative to the console width, constrained by
    optional minimum and maximum width values.

    Args:
        console (Console): A rich Console-like object that provides terminal size.
        factor (int): A divisor used to scale down the terminal width.
        min_width (int | None): The minimum allowable panel width.
        max_width (int | None): The maximum allowable panel width.

    Returns:
        int: The computed panel width after applying scaling and bounds.
    """
    panel_width = console.size.width // factor
    if min_width is not None:
        panel_width = max(panel_width, min_width)
    if max_width is not None:
        panel_width = min(panel_width, max_width)

    return panel_width
