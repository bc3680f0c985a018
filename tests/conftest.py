from __future__ import annotations

import textwrap
from pathlib import Path

import pytest


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative path: source}`` under *root* and return *root*."""
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
    return root


@pytest.fixture
def go_tree(tmp_path):
    """Factory fixture: ``go_tree({"a.go": "..."})`` returns the tree root."""

    def _make(files: dict[str, str]) -> Path:
        return write_tree(tmp_path / "src", files)

    return _make
