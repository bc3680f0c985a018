"""Regenerate Go struct and method declarations from an edited model.

The edited :class:`~godiagram.model.File` replaces every struct declaration
in the original file.  Everything else (package clause, imports, functions,
existing methods, non-struct types, variables and constants) is carried over
byte-for-byte and in its original order.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from godiagram.errors import ParseError, SynthesisError
from godiagram.extractors.go import ParsedFile, node_text, parse_source
from godiagram.extractors.go.file_structs import (
    is_struct_spec,
    receiver_struct_name,
    struct_field_declarations,
)
from godiagram.model import File, Method, Model, Struct

logger = logging.getLogger(__name__)

RECEIVER_NAME = "s"

_IDENT_RE = re.compile(r"[^\W\d]\w*")

_KEYWORDS = frozenset(
    {
        "break", "case", "chan", "const", "continue", "default", "defer",
        "else", "fallthrough", "for", "func", "go", "goto", "if", "import",
        "interface", "map", "package", "range", "return", "select", "struct",
        "switch", "type", "var",
    }
)


def validate_identifier(name: str, what: str) -> str:
    if not _IDENT_RE.fullmatch(name or "") or name in _KEYWORDS:
        raise SynthesisError(f"invalid {what} name {name!r}")
    return name


def parse_type_literal(text: str) -> str:
    """Return *text* stripped if it parses as exactly one Go type expression."""
    literal = (text or "").strip()
    if not literal:
        raise SynthesisError("empty type literal")
    source = f"package _\n\ntype _ {literal}\n".encode()
    try:
        parsed = parse_source(source, Path("<literal>"), "<literal>")
    except ParseError as e:
        raise SynthesisError(f"invalid type literal {literal!r}: {e.detail}") from e

    decls = [n for n in parsed.root.named_children if n.type != "package_clause"]
    if len(decls) != 1 or decls[0].type != "type_declaration":
        raise SynthesisError(f"invalid type literal {literal!r}")
    specs = decls[0].named_children
    if len(specs) != 1 or specs[0].type != "type_spec":
        raise SynthesisError(f"invalid type literal {literal!r}")
    type_node = specs[0].child_by_field_name("type")
    if type_node is None or node_text(type_node, source) != literal:
        raise SynthesisError(f"invalid type literal {literal!r}")
    return literal


# -- splitting the original file ----------------------------------------------


@dataclass
class _Chunk:
    """One top-level declaration plus the comments attached to it."""

    kind: str  # "import", "struct" or "other"
    text: str
    end_row: int
    end_byte: int = 0
    gap: str = "\n\n"
    doc: str = ""
    struct_names: list[str] = field(default_factory=list)


@dataclass
class _PreviousStruct:
    doc: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    embedded: list[str] = field(default_factory=list)


def _classify(decl, source: bytes, text: str) -> tuple[str, str, list[str]]:
    """Return ``(kind, text, struct names)`` for one declaration node."""
    if decl.type == "import_declaration":
        return "import", text, []
    if decl.type != "type_declaration":
        return "other", text, []

    specs = [s for s in decl.named_children if s.type in ("type_spec", "type_alias")]
    flags = [s.type == "type_spec" and is_struct_spec(s) for s in specs]
    if not any(flags):
        return "other", text, []
    names = [node_text(s.child_by_field_name("name"), source) for s, is_struct in zip(specs, flags) if is_struct]
    remaining = [s for s, is_struct in zip(specs, flags) if not is_struct]
    if not remaining:
        return "struct", "", names
    # Mixed group: keep the non-struct specs in a regenerated group.
    if len(remaining) == 1:
        kept = "type " + node_text(remaining[0], source)
    else:
        kept = "type (\n" + "".join(f"\t{node_text(s, source)}\n" for s in remaining) + ")"
    return "other", kept, names


def _split(parsed: ParsedFile) -> tuple[str, list[_Chunk], str]:
    """Split *parsed* into ``(header, declaration chunks, trailing comments)``."""
    source = parsed.source
    nodes = parsed.root.named_children
    pkg_index = next((i for i, n in enumerate(nodes) if n.type == "package_clause"), None)
    if pkg_index is None:
        raise SynthesisError(f"{parsed.name}: no package clause")

    header_end = nodes[pkg_index].end_byte
    header_row = nodes[pkg_index].end_point[0]
    chunks: list[_Chunk] = []
    pending_start: int | None = None
    pending_end = 0
    last_end = header_end

    for node in nodes[pkg_index + 1 :]:
        if node.type == "comment":
            if pending_start is None and not chunks and node.start_point[0] == header_row:
                header_end = last_end = node.end_byte
            elif pending_start is None and chunks and node.start_point[0] == chunks[-1].end_row:
                chunks[-1].text += source[chunks[-1].end_byte : node.end_byte].decode("utf-8")
                chunks[-1].end_byte = last_end = node.end_byte
            else:
                if pending_start is None:
                    pending_start = node.start_byte
                pending_end = node.end_byte
            continue

        start = pending_start if pending_start is not None else node.start_byte
        gap = "\n" if source[last_end:start].count(b"\n") <= 1 else "\n\n"
        doc = ""
        if pending_start is not None:
            doc = source[pending_start:pending_end].decode("utf-8")
        text = node_text(node, source)
        kind, text, names = _classify(node, source, text)
        if doc and kind != "struct":
            text = source[start : node.start_byte].decode("utf-8") + text
        chunks.append(
            _Chunk(
                kind=kind,
                text=text,
                end_row=node.end_point[0],
                end_byte=node.end_byte,
                gap=gap,
                doc=doc,
                struct_names=names,
            )
        )
        pending_start = None
        last_end = node.end_byte

    tail = ""
    if pending_start is not None:
        tail = source[pending_start:pending_end].decode("utf-8")
    header = source[:header_end].decode("utf-8")
    return header, chunks, tail


def _previous_structs(parsed: ParsedFile, chunks: list[_Chunk]) -> dict[str, _PreviousStruct]:
    """Collect doc comments, struct tags and embedded fields of existing structs."""
    source = parsed.source
    result: dict[str, _PreviousStruct] = {}
    for decl in parsed.root.named_children:
        if decl.type != "type_declaration":
            continue
        for spec in decl.named_children:
            if spec.type != "type_spec" or not is_struct_spec(spec):
                continue
            name = node_text(spec.child_by_field_name("name"), source)
            if name in result:
                continue
            prev = _PreviousStruct()
            for fd in struct_field_declarations(spec):
                names = fd.children_by_field_name("name")
                tag = fd.child_by_field_name("tag")
                if not names:
                    prev.embedded.append(node_text(fd, source))
                    continue
                for name_node in names:
                    if tag is not None:
                        prev.tags[node_text(name_node, source)] = node_text(tag, source)
            result[name] = prev

    for chunk in chunks:
        if chunk.kind == "struct" and chunk.doc and len(chunk.struct_names) == 1:
            prev = result.get(chunk.struct_names[0])
            if prev is not None:
                prev.doc = chunk.doc
    return result


# -- rendering ------------------------------------------------------------------


def render_struct(struct: Struct, previous: _PreviousStruct | None = None) -> str:
    """Render *struct* as a gofmt-style type declaration."""
    validate_identifier(struct.name, "struct")
    previous = previous or _PreviousStruct()

    rows: list[tuple[str, str, str]] = []
    seen: set[str] = set()
    for fd in struct.fields:
        validate_identifier(fd.name, "field")
        if fd.name in seen:
            raise SynthesisError(f"duplicate field {fd.name!r} in struct {struct.name}")
        seen.add(fd.name)
        literal = parse_type_literal(fd.type.literal)
        rows.append((fd.name, literal, previous.tags.get(fd.name, "")))

    head = f"{previous.doc}\n" if previous.doc else ""
    if not rows and not previous.embedded:
        return f"{head}type {struct.name} struct{{}}"

    name_width = max((len(name) for name, _, _ in rows), default=0)
    type_width = max((len(lit) for _, lit, tag in rows if tag and "\n" not in lit), default=0)
    lines = [f"{head}type {struct.name} struct {{"]
    lines.extend(f"\t{emb}" for emb in previous.embedded)
    for name, literal, tag in rows:
        line = f"\t{name.ljust(name_width)} {literal}"
        if tag:
            pad = type_width if "\n" not in literal else len(literal)
            line = f"\t{name.ljust(name_width)} {literal.ljust(pad)} {tag}"
        lines.append(line)
    lines.append("}")
    return "\n".join(lines)


def render_method(struct_name: str, method: Method) -> str:
    """Render a stub method with a pointer receiver and an empty body."""
    validate_identifier(method.name, "method")
    results = [parse_type_literal(t.literal) for t in method.return_types]
    if not results:
        result = ""
    elif len(results) == 1:
        result = f" {results[0]}"
    else:
        result = f" ({', '.join(results)})"
    return f"func ({RECEIVER_NAME} *{struct_name}) {method.name}(){result} {{\n}}"


def declared_methods(files: Iterable[ParsedFile]) -> set[tuple[str, str]]:
    """Return every ``(receiver struct, method name)`` declared in *files*."""
    result: set[tuple[str, str]] = set()
    for pf in files:
        for decl in pf.root.named_children:
            if decl.type != "method_declaration":
                continue
            recv = receiver_struct_name(decl, pf.source)
            name = decl.child_by_field_name("name")
            if recv and name is not None:
                result.add((recv, node_text(name, pf.source)))
    return result


def synthesize_tree(
    parsed: ParsedFile,
    edited: File,
    existing_methods: set[tuple[str, str]] | None = None,
) -> ParsedFile:
    """Return *parsed* re-parsed with *edited*'s structs spliced in.

    Raises SynthesisError if any name or type literal is invalid, or if the
    result does not parse; nothing is returned in that case.
    """
    existing_methods = existing_methods or set()
    header, chunks, tail = _split(parsed)
    previous = _previous_structs(parsed, chunks)

    new_decls: list[str] = []
    seen_structs: set[str] = set()
    for st in edited.structs:
        if st.name in seen_structs:
            raise SynthesisError(f"struct {st.name!r} declared twice in {edited.name}")
        seen_structs.add(st.name)
        new_decls.append(render_struct(st, previous.get(st.name)))
        seen_methods: set[str] = set()
        for m in st.methods:
            if m.name in seen_methods or (st.name, m.name) in existing_methods:
                continue
            seen_methods.add(m.name)
            new_decls.append(render_method(st.name, m))

    # (text, separator before it, original position or None for new decls)
    kept = [(c.text, c.gap, i) for i, c in enumerate(chunks) if c.kind != "struct"]
    insert_at = 0
    while insert_at < len(kept) and chunks[kept[insert_at][2]].kind == "import":
        insert_at += 1
    parts = kept[:insert_at] + [(d, "\n\n", None) for d in new_decls] + kept[insert_at:]

    text = header.rstrip() + "\n"
    previous_index: int | None = None
    for n, (part, gap, index) in enumerate(parts):
        contiguous = index is not None and previous_index is not None and index == previous_index + 1
        text += (gap if contiguous else "\n\n") if n else "\n"
        text += part
        previous_index = index
    if parts:
        text += "\n"
    if tail:
        text += "\n" + tail + "\n"

    try:
        return parse_source(text.encode("utf-8"), parsed.path, parsed.name)
    except ParseError as e:
        raise SynthesisError(f"{edited.name}: synthesized source does not parse: {e}") from e


def synthesize_file(
    parsed: ParsedFile,
    edited: File,
    existing_methods: set[tuple[str, str]] | None = None,
) -> str:
    """Return the new source text of *parsed* with *edited*'s structs spliced in."""
    return synthesize_tree(parsed, edited, existing_methods).source.decode("utf-8")


def write_source(path: Path, text: str) -> None:
    """Overwrite *path* with *text* via a temporary sibling and an atomic rename."""
    try:
        mode = path.stat().st_mode & 0o777
    except OSError:
        mode = 0o644
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


# -- batches --------------------------------------------------------------------


@dataclass
class FileResult:
    """Outcome of applying one edited file."""

    package: str
    file: str
    ok: bool
    error: str | None = None

    def to_dict(self) -> dict:
        d: dict = {"package": self.package, "file": self.file, "ok": self.ok}
        if self.error is not None:
            d["error"] = self.error
        return d


def _current(parsed: ParsedFile) -> ParsedFile:
    """Return *parsed*, re-parsed if the file changed on disk since."""
    try:
        on_disk = parsed.path.read_bytes()
    except OSError as e:
        raise SynthesisError(f"{parsed.name}: cannot read file: {e}") from e
    if on_disk == parsed.source:
        return parsed
    try:
        return parse_source(on_disk, parsed.path, parsed.name)
    except ParseError as e:
        raise SynthesisError(f"{parsed.name}: current file does not parse: {e}") from e


def apply_edits(parsed_packages: dict[str, dict[str, ParsedFile]], model: Model) -> list[FileResult]:
    """Write every file of *model* back to disk.

    All files are synthesized before anything is written; if any file fails,
    no file of the batch is written.  *parsed_packages* is updated in place
    with the trees of the rewritten files, so callers must hold the
    registry's write lock.
    """
    results: list[FileResult] = []
    staged: list[tuple[int, dict[str, ParsedFile], ParsedFile, ParsedFile]] = []
    seen: set[tuple[str, str]] = set()
    failed = False

    for pkg in model.packages:
        files = parsed_packages.get(pkg.name, {})
        for edited in pkg.files:
            key = (pkg.name, edited.name)
            result = FileResult(package=pkg.name, file=edited.name, ok=False)
            results.append(result)
            if key in seen:
                result.error = "file submitted more than once"
                failed = True
                continue
            seen.add(key)
            pf = files.get(edited.name)
            if pf is None:
                result.error = f"unknown file {edited.name!r} in package {pkg.name!r}"
                failed = True
                continue
            try:
                pf = _current(pf)
                files[edited.name] = pf
                new = synthesize_tree(pf, edited, declared_methods(files.values()))
            except SynthesisError as e:
                logger.warning("Synthesis failed for %s: %s", edited.name, e)
                result.error = str(e)
                failed = True
                continue
            staged.append((len(results) - 1, files, pf, new))

    if failed:
        for index, _, _, _ in staged:
            results[index].error = "not written: another file in the batch failed"
        return results

    for index, files, pf, new in staged:
        result = results[index]
        if new.source == pf.source:
            result.ok = True
            continue
        try:
            write_source(pf.path, new.source.decode("utf-8"))
        except OSError as e:
            logger.warning("Write failed for %s: %s", pf.name, e)
            result.error = f"write failed: {e}"
            continue
        files[pf.name] = new
        result.ok = True
        logger.info("Rewrote %s", pf.name)
    return results
