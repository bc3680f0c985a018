"""Data model for the structural graph of a Go source tree."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TypeRef:
    """Printable source form of a type plus the composite types it names."""

    literal: str
    structs: list[str] = field(default_factory=list)


@dataclass
class Field:
    name: str
    type: TypeRef


@dataclass
class Method:
    name: str
    return_types: list[TypeRef] = field(default_factory=list)


@dataclass
class Struct:
    name: str
    fields: list[Field] = field(default_factory=list)
    methods: list[Method] = field(default_factory=list)


@dataclass
class File:
    """A source file; *name* is its path relative to the watched root."""

    name: str
    structs: list[Struct] = field(default_factory=list)


@dataclass
class Package:
    name: str
    files: list[File] = field(default_factory=list)


@dataclass
class Parameter:
    name: str
    type: TypeRef


@dataclass
class Function:
    """A free (receiver-less) function."""

    name: str
    package: str
    file: str
    parameters: list[Parameter] = field(default_factory=list)
    return_types: list[TypeRef] = field(default_factory=list)


@dataclass
class Node:
    """One endpoint of a cross-reference.

    On the ``from`` side it identifies the field that holds the reference;
    on the ``to`` side the composite type being referenced (``file_name`` is
    empty until the edge is resolved).
    """

    field_type_name: str = ""
    struct_name: str = ""
    package_name: str = ""
    file_name: str = ""


@dataclass
class Edge:
    from_node: Node
    to_node: Node


@dataclass
class Model:
    """Complete structural graph exchanged with observers."""

    packages: list[Package] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    global_functions: list[Function] = field(default_factory=list)

    def find_file(self, package_name: str, file_name: str) -> File | None:
        for pkg in self.packages:
            if pkg.name != package_name:
                continue
            for f in pkg.files:
                if f.name == file_name:
                    return f
        return None
