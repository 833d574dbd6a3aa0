"""
Local filesystem access: directory listing and ignore rules.
"""

import fnmatch
import os
from pathlib import Path
from typing import Iterable, Optional

from shared.logging import get_logger

log = get_logger("batch", "files")

# Directories never worth handing to an agent
IGNORED_DIRECTORIES = frozenset({
    "node_modules",
    "__pycache__",
    ".git",
    ".svn",
    ".hg",
    ".venv",
    "venv",
    "env",
    ".env",
    "dist",
    "build",
    "out",
    "bundle",
    "vendor",
    "tmp",
    "temp",
    "deps",
    "pkg",
    "Pods",
    "target",
    ".idea",
    ".vscode",
    ".mypy_cache",
    ".pytest_cache",
    ".tox",
})

DEFAULT_IGNORE_FILE = ".batchignore"


def is_path_in_ignored_directory(path: str) -> bool:
    """True if any directory component of `path` is a built-in ignored name."""
    parts = Path(path).as_posix().split("/")
    return any(part in IGNORED_DIRECTORIES for part in parts[:-1])


def file_exists(path: Path) -> bool:
    return path.exists()


class LocalFileLister:
    """
    Lists a directory tree with os.walk.

    Returned paths are absolute POSIX strings; directories carry a
    trailing "/" so callers can tell them apart.
    """

    def list(self, absolute_dir: Path, recursive: bool = True, limit: int = 1000) -> tuple[list[str], bool]:
        """
        Returns:
            (paths, limit_reached)
        """
        results: list[str] = []
        root_dir = Path(absolute_dir)

        for root, dirs, files in os.walk(root_dir):
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRECTORIES)
            root_path = Path(root)

            for name in dirs:
                results.append((root_path / name).as_posix() + "/")
                if len(results) >= limit:
                    return results, True

            for name in sorted(files):
                results.append((root_path / name).as_posix())
                if len(results) >= limit:
                    return results, True

            if not recursive:
                break

        return results, False


class IgnoreFilter:
    """
    Ignore rules read from an ignore file (default .batchignore) in the
    project root.

    One fnmatch pattern per line, blank lines and "#" comments skipped.
    A pattern ending in "/" matches everything under that directory; a
    pattern without "/" also matches against the bare file name.
    """

    def __init__(self, cwd: Path, ignore_file: str = DEFAULT_IGNORE_FILE,
                 patterns: Optional[Iterable[str]] = None):
        self.cwd = Path(cwd)
        self.patterns: list[str] = list(patterns or [])

        path = self.cwd / ignore_file
        if path.is_file():
            for line in path.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    self.patterns.append(line)
            log.debug("batch.files.ignore_loaded", path=str(path), patterns=len(self.patterns))

    def is_ignored(self, path: str) -> bool:
        """`path` may be absolute or relative to the project root."""
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self.cwd)
            except ValueError:
                return False
        rel = candidate.as_posix()
        name = candidate.name

        for pattern in self.patterns:
            if pattern.endswith("/"):
                prefix = pattern.rstrip("/")
                if rel == prefix or rel.startswith(prefix + "/") or fnmatch.fnmatch(rel, prefix + "/*"):
                    return True
            elif fnmatch.fnmatch(rel, pattern):
                return True
            elif "/" not in pattern and fnmatch.fnmatch(name, pattern):
                return True
        return False
