"""Locate Go package directories and source files under a watched root."""

from __future__ import annotations

import os
from pathlib import Path

# Version-control and dependency-cache directories never hold analysed code.
SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vscode",
    "__pycache__",
    "node_modules",
    "vendor",
}


def is_skipped_dir(name: str) -> bool:
    return name in SKIP_DIRS or (name.startswith(".") and name not in (".", ".."))


def is_go_source(path: Path) -> bool:
    return path.suffix == ".go"


def find_package_dirs(root: Path) -> list[Path]:
    """Return *root* and every non-skipped subdirectory, sorted for stable walks."""
    dirs: list[Path] = []
    for current, subdirs, _ in os.walk(root):
        subdirs[:] = sorted(d for d in subdirs if not is_skipped_dir(d))
        dirs.append(Path(current))
    return dirs


def go_files(directory: Path) -> list[Path]:
    """Return the ``*.go`` files directly inside *directory*, sorted by name."""
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []
    return [p for p in entries if p.is_file() and is_go_source(p)]


def latest_mtime(root: Path) -> float:
    """Return the newest modification time of any Go source under *root*.

    Directory times count too, so deleting a file is noticed.  Returns 0.0
    when the tree does not exist.
    """
    latest = 0.0
    for directory in find_package_dirs(root):
        for path in [directory, *go_files(directory)]:
            try:
                mtime = path.stat().st_mtime
            except OSError:
                continue
            if mtime > latest:
                latest = mtime
    return latest


def relative_name(path: Path, root: Path) -> str:
    """Return *path* relative to *root* with POSIX separators."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
