# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from dataclasses import dataclass
from pathlib import Path
from typing import Self

from rlnq_lib.core.config import CFG
from rlnq_lib.core.common import make_relative, resolve_input_path


@dataclass(frozen=True)
class ProjectContext:
    """
    Filesystem location of a processing project.

    All job-relative paths are resolved against `root`.
    """

    # absolute path to the project directory
    root: Path

    # whether the project lives in the archive storage
    archived: bool = False

    def __post_init__(self):
        object.__setattr__(self, "root", Path(self.root).absolute())

    @classmethod
    def fromName(cls, name: str, archived: bool = False) -> Self:
        """
        Build the context of a project stored under the configured storage roots.

        Args:
            name (str): Name of the project directory.
            archived (bool): Whether the project is archived.

        Returns:
            ProjectContext: The project context.
        """
        base = Path(CFG.paths.archive_root if archived else CFG.paths.root)
        return cls(base / name, archived)

    def resolve(self, path: str | Path) -> Path:
        """Resolve a path against the project root unless it is absolute."""
        return resolve_input_path(path, self.root)

    def relative(self, path: str | Path) -> str:
        """Express a path relative to the project root if it lies under it."""
        return make_relative(path, self.root)
