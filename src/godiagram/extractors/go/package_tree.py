"""Walk a directory tree, parse every Go package, and build the global model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from godiagram.detect import find_package_dirs, go_files, relative_name
from godiagram.extractors.go import ParsedFile, is_go_project, parse_file
from godiagram.extractors.go.edges import resolve_edges
from godiagram.extractors.go.file_structs import FileExtraction, extract_file
from godiagram.model import Edge, File, Function, Method, Model, Package, Struct

logger = logging.getLogger(__name__)

# package name -> file name -> parsed file
ParsedPackages = dict[str, dict[str, ParsedFile]]


@dataclass
class Extraction:
    """Result of one aggregation pass: the model and the trees it came from."""

    model: Model
    parsed: ParsedPackages = field(default_factory=dict)


class GoPackageExtractor:
    """Build a resolved Model for every Go package under a root directory."""

    def can_handle(self, project_dir: Path) -> bool:
        return is_go_project(project_dir)

    def extract(self, project_dir: Path) -> Extraction:
        """Parse and aggregate *project_dir*.

        Raises ParseError if any file fails to parse; nothing is returned for
        a failed pass.
        """
        project_dir = project_dir.resolve()
        packages: list[Package] = []
        drafts: list[Edge] = []
        functions: list[Function] = []
        parsed: ParsedPackages = {}

        for directory in find_package_dirs(project_dir):
            dir_packages = _parse_directory(directory, project_dir)
            for package_name, files in dir_packages.items():
                pkg_files: list[File] = []
                orphans: dict[str, list[Method]] = {}
                for pf in files:
                    extraction = extract_file(pf)
                    pkg_files.append(extraction.file)
                    drafts.extend(extraction.edges)
                    functions.extend(extraction.functions)
                    _merge_orphans(orphans, extraction)
                    parsed.setdefault(package_name, {}).setdefault(pf.name, pf)
                    logger.debug("Parsed file: %s", pf.name)
                _attach_orphans(pkg_files, orphans, package_name)
                packages.append(Package(name=package_name, files=pkg_files))

        packages = dedupe_packages(packages)
        edges = resolve_edges(drafts, packages)
        logger.info(
            "Extracted %d packages, %d edges, %d functions",
            len(packages),
            len(edges),
            len(functions),
        )
        return Extraction(
            model=Model(packages=packages, edges=edges, global_functions=functions),
            parsed=parsed,
        )


def _parse_directory(directory: Path, root: Path) -> dict[str, list[ParsedFile]]:
    """Parse the Go files directly in *directory*, grouped by package clause."""
    result: dict[str, list[ParsedFile]] = {}
    for path in go_files(directory):
        pf = parse_file(path, relative_name(path, root))
        if not pf.package:
            logger.info("Skipped file: %s (no package clause)", pf.name)
            continue
        result.setdefault(pf.package, []).append(pf)
    return result


def _merge_orphans(orphans: dict[str, list[Method]], extraction: FileExtraction) -> None:
    for recv, methods in extraction.orphan_methods.items():
        orphans.setdefault(recv, []).extend(methods)


def _attach_orphans(files: list[File], orphans: dict[str, list[Method]], package_name: str) -> None:
    """Attach methods declared in a different file from their receiver struct."""
    if not orphans:
        return
    for f in files:
        for st in f.structs:
            methods = orphans.pop(st.name, None)
            if methods:
                st.methods.extend(methods)
    for recv, methods in orphans.items():
        logger.debug(
            "Dropped %d method(s) on non-struct receiver %s.%s",
            len(methods),
            package_name,
            recv,
        )


def dedupe_packages(packages: list[Package]) -> list[Package]:
    """Collapse repeats, keeping the first-seen entry per identity key.

    Packages sharing a name are folded into the first one; files are unique
    per name within a package, structs per name within a file, and methods
    per ``(struct, method)`` pair.
    """
    by_name: dict[str, Package] = {}
    for pkg in packages:
        kept = by_name.get(pkg.name)
        if kept is None:
            kept = Package(name=pkg.name)
            by_name[pkg.name] = kept
        seen_files = {f.name for f in kept.files}
        for f in pkg.files:
            if f.name in seen_files:
                continue
            seen_files.add(f.name)
            kept.files.append(File(name=f.name, structs=_dedupe_structs(f.structs)))
    return list(by_name.values())


def _dedupe_structs(structs: list[Struct]) -> list[Struct]:
    result: list[Struct] = []
    seen: set[str] = set()
    for st in structs:
        if st.name in seen:
            continue
        seen.add(st.name)
        methods: list[Method] = []
        seen_methods: set[tuple[str, str]] = set()
        for m in st.methods:
            key = (st.name, m.name)
            if key in seen_methods:
                continue
            seen_methods.add(key)
            methods.append(m)
        result.append(Struct(name=st.name, fields=list(st.fields), methods=methods))
    return result
