"""Go extractors: shared parsing helpers built on tree-sitter."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import tree_sitter_go as tsgo
from tree_sitter import Language, Node, Parser, Tree

from godiagram.errors import ParseError

__all__ = [
    "ParsedFile",
    "find_error",
    "is_go_project",
    "make_parser",
    "node_text",
    "parse_file",
    "parse_source",
]


@lru_cache(maxsize=1)
def go_language() -> Language:
    return Language(tsgo.language())


def make_parser() -> Parser:
    """Return a fresh Go parser (parsers are not shared between threads)."""
    return Parser(go_language())


def is_go_project(project_dir: Path) -> bool:
    """Return True if *project_dir* contains a go.mod or any Go source."""
    if (project_dir / "go.mod").exists():
        return True
    return any(project_dir.rglob("*.go"))


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8")


def find_error(node: Node) -> Node | None:
    """Return the first ERROR or missing node under *node*, depth-first."""
    if node.type == "ERROR" or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        hit = find_error(child)
        if hit is not None:
            return hit
    return node


@dataclass
class ParsedFile:
    """A parsed Go file: the tree plus the exact bytes it was parsed from."""

    path: Path
    name: str
    package: str
    source: bytes
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node


def _package_name(root: Node, source: bytes) -> str:
    for child in root.named_children:
        if child.type == "package_clause":
            for ident in child.named_children:
                if ident.type == "package_identifier":
                    return node_text(ident, source)
    return ""


def parse_source(source: bytes, path: Path, name: str) -> ParsedFile:
    """Parse *source*, raising ParseError if the tree contains syntax errors.

    Go source must be UTF-8; tree-sitter accepts any bytes, so the encoding
    is checked first.
    """
    try:
        source.decode("utf-8")
    except UnicodeDecodeError as e:
        line_start = source.rfind(b"\n", 0, e.start) + 1
        line = source.count(b"\n", 0, e.start) + 1
        raise ParseError(str(path), line, e.start - line_start + 1, "illegal UTF-8 encoding") from e
    tree = make_parser().parse(source)
    bad = find_error(tree.root_node)
    if bad is not None:
        row, column = bad.start_point
        detail = "missing " + bad.type if bad.is_missing else "syntax error"
        raise ParseError(str(path), row + 1, column + 1, detail)
    return ParsedFile(
        path=path,
        name=name,
        package=_package_name(tree.root_node, source),
        source=source,
        tree=tree,
    )


def parse_file(path: Path, name: str) -> ParsedFile:
    try:
        source = path.read_bytes()
    except OSError as e:
        raise ParseError(str(path), detail=f"cannot read file: {e}") from e
    return parse_source(source, path, name)
