"""Extractor protocol: every source-tree extractor conforms to this interface."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from godiagram.extractors.go.package_tree import Extraction


class Extractor(Protocol):
    """Protocol for source-tree structure extractors."""

    def can_handle(self, project_dir: Path) -> bool:
        """Return True if this extractor applies to the given tree."""
        ...

    def extract(self, project_dir: Path) -> Extraction:
        """Return the model and parsed trees extracted from *project_dir*."""
        ...
