"""Extract structs, methods, free functions and draft edges from one Go file."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from tree_sitter import Node as TsNode

from godiagram.extractors.go import ParsedFile, node_text
from godiagram.extractors.go.type_shapes import resolve_type, type_ref
from godiagram.model import Edge, Field, File, Function, Method, Node, Parameter, Struct, TypeRef

logger = logging.getLogger(__name__)


@dataclass
class FileExtraction:
    """Everything extracted from a single file.

    ``orphan_methods`` maps a receiver type name to methods whose struct is
    not declared in this file; the package aggregator attaches them once the
    whole package has been seen.
    """

    file: File
    edges: list[Edge] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    orphan_methods: dict[str, list[Method]] = field(default_factory=dict)


def iter_type_specs(root: TsNode) -> Iterator[tuple[TsNode, TsNode]]:
    """Yield ``(type_declaration, type_spec)`` for every top-level type spec."""
    for decl in root.named_children:
        if decl.type != "type_declaration":
            continue
        for spec in decl.named_children:
            if spec.type == "type_spec":
                yield decl, spec


def is_struct_spec(spec: TsNode) -> bool:
    type_node = spec.child_by_field_name("type")
    return type_node is not None and type_node.type == "struct_type"


def struct_field_declarations(spec: TsNode) -> list[TsNode]:
    type_node = spec.child_by_field_name("type")
    if type_node is None:
        return []
    for child in type_node.named_children:
        if child.type == "field_declaration_list":
            return [fd for fd in child.named_children if fd.type == "field_declaration"]
    return []


def receiver_struct_name(method: TsNode, source: bytes) -> str | None:
    """Return the base type name of a method's receiver (``T`` for ``*T``)."""
    receiver = method.child_by_field_name("receiver")
    if receiver is None:
        return None
    for param in receiver.named_children:
        if param.type != "parameter_declaration":
            continue
        recv_type = param.child_by_field_name("type")
        while recv_type is not None and recv_type.type in ("pointer_type", "parenthesized_type"):
            inner = [c for c in recv_type.named_children if c.type != "comment"]
            recv_type = inner[0] if inner else None
        if recv_type is not None and recv_type.type == "generic_type":
            recv_type = recv_type.child_by_field_name("type")
        if recv_type is not None and recv_type.type == "type_identifier":
            return node_text(recv_type, source)
        return None
    return None


def result_types(decl: TsNode, source: bytes, package_name: str) -> list[TypeRef]:
    """Return one TypeRef per result slot of a function or method."""
    result = decl.child_by_field_name("result")
    if result is None:
        return []
    if result.type != "parameter_list":
        return [type_ref(result, source, package_name)]
    types: list[TypeRef] = []
    for param in result.named_children:
        if param.type != "parameter_declaration":
            continue
        type_node = param.child_by_field_name("type")
        if type_node is None:
            continue
        slots = len(param.children_by_field_name("name")) or 1
        for _ in range(slots):
            types.append(type_ref(type_node, source, package_name))
    return types


def parameters(decl: TsNode, source: bytes, package_name: str) -> list[Parameter]:
    params_node = decl.child_by_field_name("parameters")
    if params_node is None:
        return []
    params: list[Parameter] = []
    for param in params_node.named_children:
        type_node = param.child_by_field_name("type")
        if type_node is None:
            continue
        if param.type == "variadic_parameter_declaration":
            name_node = param.child_by_field_name("name")
            ref = type_ref(type_node, source, package_name)
            ref.literal = "..." + ref.literal
            params.append(Parameter(name=node_text(name_node, source) if name_node else "", type=ref))
        elif param.type == "parameter_declaration":
            names = param.children_by_field_name("name")
            if not names:
                params.append(Parameter(name="", type=type_ref(type_node, source, package_name)))
            for name_node in names:
                params.append(
                    Parameter(name=node_text(name_node, source), type=type_ref(type_node, source, package_name))
                )
    return params


def _extract_struct(spec: TsNode, parsed: ParsedFile) -> tuple[Struct, list[Edge]]:
    source = parsed.source
    struct_name = node_text(spec.child_by_field_name("name"), source)
    struct = Struct(name=struct_name)
    edges: list[Edge] = []

    for fd in struct_field_declarations(spec):
        type_node = fd.child_by_field_name("type")
        if type_node is None:
            continue
        # Embedded fields have no name and are not modelled.
        for name_node in fd.children_by_field_name("name"):
            field_name = node_text(name_node, source)
            names, targets = resolve_type(type_node, source, parsed.package)
            struct.fields.append(
                Field(name=field_name, type=TypeRef(literal=node_text(type_node, source), structs=names))
            )
            for target in targets:
                edges.append(
                    Edge(
                        from_node=Node(
                            field_type_name=field_name,
                            struct_name=struct_name,
                            package_name=parsed.package,
                            file_name=parsed.name,
                        ),
                        to_node=target,
                    )
                )

    return struct, edges


def extract_file(parsed: ParsedFile) -> FileExtraction:
    """Walk one parsed file's top-level declarations into a FileExtraction.

    Struct declarations are collected in a first pass so methods attach to
    their receiver regardless of declaration order.
    """
    source = parsed.source
    root = parsed.root
    result = FileExtraction(file=File(name=parsed.name))
    by_name: dict[str, Struct] = {}

    for _, spec in iter_type_specs(root):
        if not is_struct_spec(spec):
            continue
        struct, edges = _extract_struct(spec, parsed)
        result.file.structs.append(struct)
        result.edges.extend(edges)
        by_name.setdefault(struct.name, struct)

    for decl in root.named_children:
        if decl.type == "method_declaration":
            recv = receiver_struct_name(decl, source)
            name_node = decl.child_by_field_name("name")
            if recv is None or name_node is None:
                continue
            method = Method(
                name=node_text(name_node, source),
                return_types=result_types(decl, source, parsed.package),
            )
            target = by_name.get(recv)
            if target is not None:
                target.methods.append(method)
            else:
                result.orphan_methods.setdefault(recv, []).append(method)
        elif decl.type == "function_declaration":
            name_node = decl.child_by_field_name("name")
            if name_node is None:
                continue
            result.functions.append(
                Function(
                    name=node_text(name_node, source),
                    package=parsed.package,
                    file=parsed.name,
                    parameters=parameters(decl, source, parsed.package),
                    return_types=result_types(decl, source, parsed.package),
                )
            )

    return result
