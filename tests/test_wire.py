from __future__ import annotations

import json

import pytest

from godiagram.errors import WireError
from godiagram.model import Edge, Field, File, Function, Method, Model, Node, Package, Parameter, Struct, TypeRef
from godiagram.wire import CLEAR_LAYOUT, dumps, error_message, loads, model_from_dict, model_to_dict


def _model() -> Model:
    st = Struct(
        name="A",
        fields=[Field(name="B", type=TypeRef("*B", ["B"]))],
        methods=[Method(name="Get", return_types=[TypeRef("error")])],
    )
    return Model(
        packages=[Package(name="p", files=[File(name="a.go", structs=[st])])],
        edges=[Edge(from_node=Node("B", "A", "p", "a.go"), to_node=Node("", "B", "p", "b.go"))],
        global_functions=[
            Function(name="New", package="p", file="a.go", parameters=[Parameter("x", TypeRef("int"))], return_types=[TypeRef("*A", ["A"])])
        ],
    )


def test_model_to_dict_shape():
    data = model_to_dict(_model())
    field = data["packages"][0]["files"][0]["structs"][0]["fields"][0]
    assert field == {"name": "B", "type": {"literal": "*B", "structs": ["B"]}}
    method = data["packages"][0]["files"][0]["structs"][0]["methods"][0]
    assert method == {"name": "Get", "returnType": [{"literal": "error", "structs": []}]}
    assert data["edges"][0]["to"] == {"fieldTypeName": "", "structName": "B", "packageName": "p", "fileName": "b.go"}
    assert data["edges"][0]["from"]["fieldTypeName"] == "B"
    assert data["globalFunctions"][0]["parameters"] == [{"name": "x", "type": {"literal": "int", "structs": []}}]


def test_loads_inverts_dumps():
    model = _model()
    assert loads(dumps(model)) == model


def test_model_from_dict_tolerates_nulls_and_missing_keys():
    model = model_from_dict({"packages": [{"name": "p", "files": None}], "edges": None})
    assert model == Model(packages=[Package(name="p")])


@pytest.mark.parametrize(
    "payload",
    [[], {"packages": {}}, {"packages": [{"name": 3}]}, {"packages": [{"files": [{"structs": [{"fields": [1]}]}]}]}],
)
def test_model_from_dict_rejects_wrong_types(payload):
    with pytest.raises(WireError):
        model_from_dict(payload)


def test_loads_rejects_invalid_json():
    with pytest.raises(WireError):
        loads("{not json")


def test_control_messages():
    assert json.loads(dumps(CLEAR_LAYOUT)) == {"clearLayout": True}
    assert error_message("boom") == {"error": "boom"}
