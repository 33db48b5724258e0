"""File-system collaborator of the filter engine.

File comparators are the only filters allowed to touch the file system.
They go through a `FileChecker` so that the engine can be driven against
an in-memory or remote file system.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Protocol


class FileChecker(Protocol):
    """File-system predicates used by file comparators."""

    def is_readable_file(self, path: str) -> bool:
        """Check that a path is an existing readable file."""

    def is_readable_path(self, path: str) -> bool:
        """Check that a path is an existing readable directory."""

    def is_empty_path(self, path: str) -> bool:
        """Check that a path is an existing directory without entries."""

    def read_text(self, path: str) -> str | None:
        """Read a file as text, or `None` if it is not readable."""

    def modified_time(self, path: str) -> datetime | None:
        """Get the last modification time of a path, if it exists."""


class PathFileChecker:
    """`FileChecker` over the local file system."""

    def is_readable_file(self, path: str) -> bool:
        """Check that a path is an existing readable file."""
        target = Path(path)
        return target.is_file() and os.access(target, os.R_OK)

    def is_readable_path(self, path: str) -> bool:
        """Check that a path is an existing readable directory."""
        target = Path(path)
        return target.is_dir() and os.access(target, os.R_OK)

    def is_empty_path(self, path: str) -> bool:
        """Check that a path is an existing directory without entries."""
        target = Path(path)
        return target.is_dir() and next(target.iterdir(), None) is None

    def read_text(self, path: str) -> str | None:
        """Read a file as UTF-8 text."""
        if not self.is_readable_file(path):
            return None

        return Path(path).read_text(encoding='utf-8', errors='replace')

    def modified_time(self, path: str) -> datetime | None:
        """Get the last modification time in local time."""
        target = Path(path)
        if not target.exists():
            return None

        return datetime.fromtimestamp(target.stat().st_mtime)  # noqa: DTZ006
