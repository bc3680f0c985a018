"""Classify Go type expressions into primitives and composite-type references."""

from __future__ import annotations

from tree_sitter import Node as TsNode

from godiagram.extractors.go import node_text
from godiagram.model import Node, TypeRef

# Predeclared Go types that never name a composite type.
PRIMITIVES = frozenset(
    {
        "any",
        "bool",
        "byte",
        "complex64",
        "complex128",
        "error",
        "float32",
        "float64",
        "int",
        "int8",
        "int16",
        "int32",
        "int64",
        "rune",
        "string",
        "uint",
        "uint8",
        "uint16",
        "uint32",
        "uint64",
        "uintptr",
    }
)

INTERFACE_MARKER = "interface{}"
FUNC_MARKER = "func"

# Wrapper kinds whose single "element" is the only thing that can be named.
_ELEMENT_FIELDS = {
    "array_type": "element",
    "implicit_length_array_type": "element",
    "slice_type": "element",
    "channel_type": "value",
}


def is_primitive(name: str) -> bool:
    return name in PRIMITIVES


def resolve_type(node: TsNode | None, source: bytes, package_name: str) -> tuple[list[str], list[Node]]:
    """Return ``(names, nodes)`` for the composite types named by *node*.

    *names* holds display names (``Thing`` or ``pkg.Thing``, plus the opaque
    ``interface{}`` / ``func`` markers); *nodes* holds one partially-filled
    :class:`Node` per real reference.  Unrecognised shapes yield nothing.
    """
    names: list[str] = []
    nodes: list[Node] = []

    def _visit(expr: TsNode | None) -> None:
        if expr is None:
            return
        kind = expr.type
        if kind == "type_identifier":
            name = node_text(expr, source)
            if not is_primitive(name):
                names.append(name)
                nodes.append(Node(struct_name=name, package_name=package_name))
        elif kind == "qualified_type":
            pkg = expr.child_by_field_name("package")
            sel = expr.child_by_field_name("name")
            if pkg is None or sel is None:
                return
            pkg_name = node_text(pkg, source)
            sel_name = node_text(sel, source)
            names.append(f"{pkg_name}.{sel_name}")
            nodes.append(Node(struct_name=sel_name, package_name=pkg_name))
        elif kind == "pointer_type":
            # pointer_type has no field name for its operand
            for child in expr.named_children:
                _visit(child)
        elif kind in _ELEMENT_FIELDS:
            _visit(expr.child_by_field_name(_ELEMENT_FIELDS[kind]))
        elif kind == "map_type":
            _visit(expr.child_by_field_name("key"))
            _visit(expr.child_by_field_name("value"))
        elif kind == "struct_type":
            for decl_list in expr.named_children:
                if decl_list.type != "field_declaration_list":
                    continue
                for fd in decl_list.named_children:
                    if fd.type == "field_declaration":
                        _visit(fd.child_by_field_name("type"))
        elif kind == "interface_type":
            names.append(INTERFACE_MARKER)
        elif kind == "function_type":
            names.append(FUNC_MARKER)

    _visit(node)
    return names, nodes


def type_ref(node: TsNode, source: bytes, package_name: str) -> TypeRef:
    """Return the TypeRef (literal text + referenced names) for *node*."""
    names, _ = resolve_type(node, source, package_name)
    return TypeRef(literal=node_text(node, source), structs=names)
