"""Resolve draft edges to the file that defines their target struct."""

from __future__ import annotations

import logging
from dataclasses import replace

from godiagram.model import Edge, Package

logger = logging.getLogger(__name__)


def build_struct_index(packages: list[Package]) -> dict[tuple[str, str], str]:
    """Map ``(package name, struct name)`` to the first file that declares it."""
    index: dict[tuple[str, str], str] = {}
    for pkg in packages:
        for f in pkg.files:
            for st in f.structs:
                index.setdefault((pkg.name, st.name), f.name)
    return index


def resolve_edges(drafts: list[Edge], packages: list[Package]) -> list[Edge]:
    """Return the drafts whose target struct is declared somewhere in *packages*.

    Resolved edges are copies with ``to_node.file_name`` filled in.  Targets
    that cannot be located (standard library, third-party or non-struct
    types) are dropped silently.
    """
    index = build_struct_index(packages)
    resolved: list[Edge] = []
    missed = 0
    for edge in drafts:
        file_name = index.get((edge.to_node.package_name, edge.to_node.struct_name))
        if not file_name:
            missed += 1
            logger.debug(
                "No declaring file for %s.%s (probably a library package)",
                edge.to_node.package_name,
                edge.to_node.struct_name,
            )
            continue
        resolved.append(
            Edge(
                from_node=replace(edge.from_node),
                to_node=replace(edge.to_node, file_name=file_name),
            )
        )
    if missed:
        logger.debug("Dropped %d unresolved edge(s)", missed)
    return resolved
