"""Serialize a Model to and from the JSON shape consumed by observers."""

from __future__ import annotations

import json
from typing import Any

from godiagram.errors import WireError
from godiagram.model import (
    Edge,
    Field,
    File,
    Function,
    Method,
    Model,
    Node,
    Package,
    Parameter,
    Struct,
    TypeRef,
)

CLEAR_LAYOUT: dict = {"clearLayout": True}


def _type_to_dict(t: TypeRef) -> dict:
    return {"literal": t.literal, "structs": list(t.structs)}


def _node_to_dict(n: Node) -> dict:
    return {
        "fieldTypeName": n.field_type_name,
        "structName": n.struct_name,
        "packageName": n.package_name,
        "fileName": n.file_name,
    }


def _struct_to_dict(st: Struct) -> dict:
    return {
        "name": st.name,
        "fields": [{"name": f.name, "type": _type_to_dict(f.type)} for f in st.fields],
        "methods": [
            {"name": m.name, "returnType": [_type_to_dict(t) for t in m.return_types]}
            for m in st.methods
        ],
    }


def _function_to_dict(fn: Function) -> dict:
    return {
        "name": fn.name,
        "package": fn.package,
        "file": fn.file,
        "parameters": [
            {"name": p.name, "type": _type_to_dict(p.type)} for p in fn.parameters
        ],
        "returnType": [_type_to_dict(t) for t in fn.return_types],
    }


def model_to_dict(model: Model) -> dict:
    """Return the canonical nested-dict form of *model*."""
    return {
        "packages": [
            {
                "name": pkg.name,
                "files": [
                    {"name": f.name, "structs": [_struct_to_dict(s) for s in f.structs]}
                    for f in pkg.files
                ],
            }
            for pkg in model.packages
        ],
        "edges": [
            {"to": _node_to_dict(e.to_node), "from": _node_to_dict(e.from_node)}
            for e in model.edges
        ],
        "globalFunctions": [_function_to_dict(fn) for fn in model.global_functions],
    }


# -- decoding ---------------------------------------------------------------
#
# Observers are a trust boundary: lists may arrive as null, keys may be
# missing, and anything that is not the expected JSON type is rejected.


def _obj(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise WireError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _list(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise WireError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _str(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise WireError(f"{what} must be a string, got {type(value).__name__}")
    return value


def _type_from(value: Any) -> TypeRef:
    d = _obj(value, "type")
    return TypeRef(
        literal=_str(d.get("literal"), "type.literal"),
        structs=[_str(s, "type.structs[]") for s in _list(d.get("structs"), "type.structs")],
    )


def _node_from(value: Any) -> Node:
    d = _obj(value, "node")
    return Node(
        field_type_name=_str(d.get("fieldTypeName"), "node.fieldTypeName"),
        struct_name=_str(d.get("structName"), "node.structName"),
        package_name=_str(d.get("packageName"), "node.packageName"),
        file_name=_str(d.get("fileName"), "node.fileName"),
    )


def _struct_from(value: Any) -> Struct:
    d = _obj(value, "struct")
    fields = []
    for raw in _list(d.get("fields"), "struct.fields"):
        fd = _obj(raw, "field")
        fields.append(Field(name=_str(fd.get("name"), "field.name"), type=_type_from(fd.get("type"))))
    methods = []
    for raw in _list(d.get("methods"), "struct.methods"):
        md = _obj(raw, "method")
        methods.append(
            Method(
                name=_str(md.get("name"), "method.name"),
                return_types=[_type_from(t) for t in _list(md.get("returnType"), "method.returnType")],
            )
        )
    return Struct(name=_str(d.get("name"), "struct.name"), fields=fields, methods=methods)


def _function_from(value: Any) -> Function:
    d = _obj(value, "function")
    params = []
    for raw in _list(d.get("parameters"), "function.parameters"):
        pd = _obj(raw, "parameter")
        params.append(Parameter(name=_str(pd.get("name"), "parameter.name"), type=_type_from(pd.get("type"))))
    return Function(
        name=_str(d.get("name"), "function.name"),
        package=_str(d.get("package"), "function.package"),
        file=_str(d.get("file"), "function.file"),
        parameters=params,
        return_types=[_type_from(t) for t in _list(d.get("returnType"), "function.returnType")],
    )


def model_from_dict(data: Any) -> Model:
    """Build a Model from its canonical dict form, raising WireError on bad shapes."""
    if not isinstance(data, dict):
        raise WireError(f"model must be an object, got {type(data).__name__}")

    packages = []
    for raw_pkg in _list(data.get("packages"), "packages"):
        pd = _obj(raw_pkg, "package")
        files = []
        for raw_file in _list(pd.get("files"), "package.files"):
            fd = _obj(raw_file, "file")
            files.append(
                File(
                    name=_str(fd.get("name"), "file.name"),
                    structs=[_struct_from(s) for s in _list(fd.get("structs"), "file.structs")],
                )
            )
        packages.append(Package(name=_str(pd.get("name"), "package.name"), files=files))

    edges = []
    for raw_edge in _list(data.get("edges"), "edges"):
        ed = _obj(raw_edge, "edge")
        edges.append(Edge(from_node=_node_from(ed.get("from")), to_node=_node_from(ed.get("to"))))

    functions = [_function_from(f) for f in _list(data.get("globalFunctions"), "globalFunctions")]
    return Model(packages=packages, edges=edges, global_functions=functions)


def dumps(message: Model | dict) -> str:
    """Serialize a Model or a control message to JSON text."""
    if isinstance(message, Model):
        message = model_to_dict(message)
    return json.dumps(message)


def loads(text: str | bytes) -> Model:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise WireError(f"invalid JSON: {e}") from e
    return model_from_dict(data)


def error_message(detail: str) -> dict:
    return {"error": detail}
