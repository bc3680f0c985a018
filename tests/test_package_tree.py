from __future__ import annotations

import pytest

from godiagram.errors import ParseError
from godiagram.extractors.go.edges import build_struct_index, resolve_edges
from godiagram.extractors.go.package_tree import GoPackageExtractor, dedupe_packages
from godiagram.model import Edge, File, Method, Node, Package, Struct
from godiagram.wire import dumps


def _extract(root):
    return GoPackageExtractor().extract(root)


def test_same_directory_edge_targets_declaring_file(go_tree):
    root = go_tree(
        {
            "a.go": """
                package p

                type A struct {
                    B *B
                }
            """,
            "b.go": """
                package p

                type B struct{}
            """,
        }
    )
    model = _extract(root).model
    (edge,) = model.edges
    assert edge.from_node == Node(field_type_name="B", struct_name="A", package_name="p", file_name="a.go")
    assert edge.to_node == Node(struct_name="B", package_name="p", file_name="b.go")


def test_library_reference_produces_no_edge(go_tree):
    root = go_tree(
        {
            "a.go": """
                package p

                type A struct {
                    T otherpkg.Thing
                }
            """,
        }
    )
    model = _extract(root).model
    assert model.edges == []
    (field,) = model.packages[0].files[0].structs[0].fields
    assert field.type.structs == ["otherpkg.Thing"]


def test_cross_package_edges_use_relative_file_names(go_tree):
    root = go_tree(
        {
            "main.go": """
                package main

                type App struct {
                    Store *store.DB
                    Cache map[string]store.Entry
                }
            """,
            "store/db.go": """
                package store

                type DB struct {
                    Entries []Entry
                }
            """,
            "store/entry.go": """
                package store

                type Entry struct {
                    Key string
                }
            """,
        }
    )
    model = _extract(root).model
    assert [p.name for p in model.packages] == ["main", "store"]
    assert [f.name for f in model.packages[1].files] == ["store/db.go", "store/entry.go"]
    targets = sorted((e.from_node.field_type_name, e.to_node.file_name) for e in model.edges)
    assert targets == [
        ("Cache", "store/entry.go"),
        ("Entries", "store/entry.go"),
        ("Store", "store/db.go"),
    ]


def test_every_edge_targets_a_declared_struct(go_tree):
    root = go_tree(
        {
            "a.go": """
                package p

                type A struct {
                    B  *B
                    C  []C
                    E  error
                    F  func() B
                    I  interface{}
                    M  map[B]*q.Q
                    X  fmt.Stringer
                }

                type C struct {
                    Back *A
                }
            """,
            "b.go": "package p\n\ntype B struct{}\n",
            "q/q.go": "package q\n\ntype Q struct{}\n",
        }
    )
    model = _extract(root).model
    index = build_struct_index(model.packages)
    assert model.edges
    for edge in model.edges:
        assert index[(edge.to_node.package_name, edge.to_node.struct_name)] == edge.to_node.file_name


def test_methods_in_other_files_attach_to_struct(go_tree):
    root = go_tree(
        {
            "circle.go": "package geo\n\ntype Circle struct {\n\tR float64\n}\n",
            "circle_methods.go": "package geo\n\nfunc (c *Circle) Area() float64 { return 0 }\n",
        }
    )
    model = _extract(root).model
    circle = model.find_file("geo", "circle.go").structs[0]
    assert [m.name for m in circle.methods] == ["Area"]
    assert model.find_file("geo", "circle_methods.go").structs == []


def test_skips_vendor_and_hidden_directories(go_tree):
    root = go_tree(
        {
            "main.go": "package main\n\ntype Main struct{}\n",
            "vendor/lib/lib.go": "package lib\n\ntype Lib struct{}\n",
            ".cache/x.go": "package x\n\ntype X struct{}\n",
            "notes.txt": "not go",
        }
    )
    model = _extract(root).model
    assert [p.name for p in model.packages] == ["main"]


def test_same_named_packages_are_merged(go_tree):
    root = go_tree(
        {
            "a/util/u.go": "package util\n\ntype U struct{}\n",
            "b/util/v.go": "package util\n\ntype V struct{}\n",
        }
    )
    model = _extract(root).model
    (pkg,) = model.packages
    assert [f.name for f in pkg.files] == ["a/util/u.go", "b/util/v.go"]


def test_syntax_error_aborts_extraction(go_tree):
    root = go_tree(
        {
            "ok.go": "package p\n\ntype Ok struct{}\n",
            "bad.go": "package p\n\ntype Bad struct {\n",
        }
    )
    with pytest.raises(ParseError) as excinfo:
        _extract(root)
    assert excinfo.value.path.endswith("bad.go")
    assert excinfo.value.line is not None


def test_extraction_is_idempotent(go_tree):
    root = go_tree(
        {
            "a.go": "package p\n\ntype A struct {\n\tB *B\n}\n\nfunc New() *A { return nil }\n",
            "b.go": "package p\n\ntype B struct {\n\tA []A\n}\n",
        }
    )
    assert dumps(_extract(root).model) == dumps(_extract(root).model)


def test_parsed_trees_are_kept_per_package(go_tree):
    root = go_tree({"a.go": "package p\n\ntype A struct{}\n"})
    parsed = _extract(root).parsed
    assert list(parsed) == ["p"]
    assert parsed["p"]["a.go"].source.startswith(b"package p")


def test_dedupe_keeps_first_seen():
    first = Struct(name="S", methods=[Method(name="M"), Method(name="M")])
    second = Struct(name="S")
    packages = dedupe_packages(
        [
            Package(name="p", files=[File(name="a.go", structs=[first, second]), File(name="a.go")]),
            Package(name="p", files=[File(name="b.go")]),
        ]
    )
    (pkg,) = packages
    assert [f.name for f in pkg.files] == ["a.go", "b.go"]
    (kept,) = pkg.files[0].structs
    assert [m.name for m in kept.methods] == ["M"]


def test_resolve_edges_copies_and_drops_unresolved():
    packages = [Package(name="p", files=[File(name="b.go", structs=[Struct(name="B")])])]
    known = Edge(from_node=Node("B", "A", "p", "a.go"), to_node=Node(struct_name="B", package_name="p"))
    unknown = Edge(from_node=Node("T", "A", "p", "a.go"), to_node=Node(struct_name="T", package_name="time"))
    (resolved,) = resolve_edges([known, unknown], packages)
    assert resolved.to_node.file_name == "b.go"
    assert known.to_node.file_name == ""


def test_can_handle(go_tree, tmp_path):
    extractor = GoPackageExtractor()
    assert extractor.can_handle(go_tree({"sub/a.go": "package a\n"}))
    empty = tmp_path / "empty"
    empty.mkdir()
    assert not extractor.can_handle(empty)
    (empty / "go.mod").write_text("module example.com/empty\n")
    assert extractor.can_handle(empty)


def test_invalid_utf8_is_a_parse_error(go_tree):
    root = go_tree({"ok.go": "package p\n\ntype Ok struct{}\n"})
    (root / "latin1.go").write_bytes(b"package p\n\n// caf\xe9\ntype A struct{}\n")
    with pytest.raises(ParseError) as excinfo:
        _extract(root)
    err = excinfo.value
    assert err.path.endswith("latin1.go")
    assert (err.line, err.column) == (3, 7)
    assert err.detail == "illegal UTF-8 encoding"
