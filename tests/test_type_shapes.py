from __future__ import annotations

from pathlib import Path

import pytest

from godiagram.extractors.go import parse_source
from godiagram.extractors.go.file_structs import iter_type_specs, struct_field_declarations
from godiagram.extractors.go.type_shapes import is_primitive, resolve_type, type_ref
from godiagram.model import Node


def _field_type(literal: str, package: str = "p"):
    source = f"package {package}\n\ntype T struct {{\n\tF {literal}\n}}\n".encode()
    parsed = parse_source(source, Path("t.go"), "t.go")
    _, spec = next(iter_type_specs(parsed.root))
    fd = struct_field_declarations(spec)[0]
    return fd.child_by_field_name("type"), source


def _resolve(literal: str, package: str = "p"):
    node, source = _field_type(literal, package)
    return resolve_type(node, source, package)


@pytest.mark.parametrize("literal", ["int", "string", "bool", "error", "float64", "uintptr", "any", "[]byte"])
def test_primitives_produce_no_reference(literal):
    assert _resolve(literal) == ([], [])


def test_bare_identifier_uses_enclosing_package():
    names, nodes = _resolve("Config", package="server")
    assert names == ["Config"]
    assert nodes == [Node(struct_name="Config", package_name="server")]


def test_qualified_identifier_uses_qualifier():
    names, nodes = _resolve("http.Client")
    assert names == ["http.Client"]
    assert nodes == [Node(struct_name="Client", package_name="http")]


@pytest.mark.parametrize(
    "literal",
    ["*B", "[]B", "[]*B", "[4]B", "chan B", "<-chan B", "chan<- *B", "**B"],
)
def test_wrappers_recurse_into_element(literal):
    names, nodes = _resolve(literal)
    assert names == ["B"]
    assert [n.struct_name for n in nodes] == ["B"]


def test_map_resolves_key_and_value():
    names, nodes = _resolve("map[Key]*Value")
    assert names == ["Key", "Value"]
    assert [n.struct_name for n in nodes] == ["Key", "Value"]


def test_map_with_qualified_value():
    names, nodes = _resolve("map[string][]*other.Thing")
    assert names == ["other.Thing"]
    assert nodes[0].package_name == "other"


def test_inline_struct_recurses_into_fields():
    names, _ = _resolve("struct {\n\t\tA Alpha\n\t\tN int\n\t\tB *beta.Beta\n\t}")
    assert names == ["Alpha", "beta.Beta"]


def test_interface_and_func_are_markers_only():
    names, nodes = _resolve("interface{}")
    assert names == ["interface{}"]
    assert nodes == []

    names, nodes = _resolve("func(a Arg) Result")
    assert names == ["func"]
    assert nodes == []


def test_missing_node_yields_nothing():
    assert resolve_type(None, b"", "p") == ([], [])


def test_type_ref_keeps_literal_text():
    node, source = _field_type("map[string]*Item")
    ref = type_ref(node, source, "p")
    assert ref.literal == "map[string]*Item"
    assert ref.structs == ["Item"]


def test_is_primitive():
    assert is_primitive("int64")
    assert not is_primitive("Int64")
