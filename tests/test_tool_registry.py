from typing import get_args

import pytest
from pydantic import TypeAdapter, ValidationError

from openapi_mcp_adapter.contract import build_type
from openapi_mcp_adapter.openapi import extract_operations
from openapi_mcp_adapter.schema import EnumNode
from openapi_mcp_adapter.tool_registry import ToolRegistry, describe, summarize


@pytest.fixture
def registry(petstore):
    registry = ToolRegistry(petstore, extract_operations(petstore))
    registry.load()
    return registry


def _validate(registry, name, arguments):
    return registry.get(name).input_model.model_validate(arguments)


def test_one_tool_per_operation(registry):
    assert registry.names() == [
        "listpets",
        "createpet",
        "getpet",
        "deletepet",
        "get_items_id_sub_sub",
        "savenode",
    ]
    tool = registry.get("createpet")
    assert tool.title == "POST /pets"
    assert tool.operation.method == "POST"


def test_load_is_cached(registry):
    first = registry.get("listpets")
    registry.load()
    assert registry.get("listpets") is first


def test_unknown_tool(registry):
    assert registry.get("nope") is None


def test_input_schema_exposes_grouped_fields(registry):
    schema = registry.get("getpet").input_schema
    assert {"pathParams", "baseUrl", "token", "headers", "accept"} <= set(schema["properties"])
    assert "pathParams" in schema["required"]
    assert "body" not in schema["properties"]

    list_schema = registry.get("listpets").input_schema
    assert "query" in list_schema["properties"]
    assert "pathParams" not in list_schema["properties"]
    assert "query" not in list_schema.get("required", [])


def test_unexpected_top_level_key_is_rejected(registry):
    with pytest.raises(ValidationError):
        _validate(registry, "listpets", {"unexpected": 1})


def test_query_accepts_declared_and_extra_primitives(registry):
    validated = _validate(registry, "listpets", {"query": {"limit": 5, "status": "sold", "foo": "bar"}})
    payload = validated.model_dump(by_alias=True, exclude_unset=True)
    assert payload["query"] == {"limit": 5, "status": "sold", "foo": "bar"}


@pytest.mark.parametrize(
    "query",
    [
        {"limit": 0},
        {"limit": 101},
        {"limit": "5"},
        {"status": "lost"},
        {"foo": {"nested": True}},
    ],
)
def test_query_constraints(registry, query):
    with pytest.raises(ValidationError):
        _validate(registry, "listpets", {"query": query})


def test_path_parameters_required(registry):
    with pytest.raises(ValidationError):
        _validate(registry, "getpet", {})
    with pytest.raises(ValidationError):
        _validate(registry, "getpet", {"pathParams": {}})
    with pytest.raises(ValidationError):
        _validate(registry, "getpet", {"pathParams": {"petId": 123}})
    assert _validate(registry, "getpet", {"pathParams": {"petId": "abc"}}).pathParams.petId == "abc"


def test_path_parameter_types(registry):
    _validate(registry, "get_items_id_sub_sub", {"pathParams": {"id": 42, "sub": "a b"}})
    with pytest.raises(ValidationError):
        _validate(registry, "get_items_id_sub_sub", {"pathParams": {"id": "42", "sub": "a"}})


def test_required_body(registry):
    with pytest.raises(ValidationError):
        _validate(registry, "createpet", {})

    validated = _validate(
        registry,
        "createpet",
        {"body": {"name": "Rex", "age": 2, "status": "available", "tags": ["good"], "owner": None}},
    )
    payload = validated.model_dump(by_alias=True, exclude_unset=True)
    assert payload["body"]["name"] == "Rex"
    assert payload["body"]["owner"] is None


@pytest.mark.parametrize(
    "body",
    [
        {"name": ""},
        {"age": 1},
        {"name": "Rex", "age": -1},
        {"name": "Rex", "tags": ["a", "b", "c", "d"]},
        {"name": "Rex", "status": "lost"},
        {"name": "Rex", "color": "brown"},
    ],
)
def test_body_constraints(registry, body):
    with pytest.raises(ValidationError):
        _validate(registry, "createpet", {"body": body})


def test_self_referencing_body_is_usable(registry):
    tool = registry.get("savenode")
    assert "body" in tool.input_schema["properties"]
    assert "body" not in tool.input_schema.get("required", [])

    _validate(registry, "savenode", {})
    _validate(
        registry,
        "savenode",
        {
            "body": {"name": "root", "parent": {"anything": 1}, "children": [{"name": "leaf"}]},
            "contentType": "application/json",
        },
    )


def test_self_referencing_body_stops_at_the_first_repeat(registry):
    validated = _validate(registry, "savenode", {"body": {"parent": {"anything": 1, "parent": "x"}}})
    assert validated.model_dump(by_alias=True, exclude_unset=True)["body"]["parent"] == {
        "anything": 1,
        "parent": "x",
    }
    with pytest.raises(ValidationError):
        _validate(registry, "savenode", {"body": {"name": 5}})
    with pytest.raises(ValidationError):
        _validate(registry, "savenode", {"body": {"unknown": True}})


def test_base_url_must_be_absolute(registry):
    _validate(registry, "listpets", {"baseUrl": "https://api.example.com/v1"})
    with pytest.raises(ValidationError):
        _validate(registry, "listpets", {"baseUrl": "not a url"})


def test_unsafe_parameter_names_keep_their_wire_name():
    document = {
        "paths": {
            "/search": {
                "get": {
                    "operationId": "search",
                    "parameters": [
                        {"name": "page-size", "in": "query", "schema": {"type": "integer"}},
                        {"name": "class", "in": "query", "schema": {"type": "string"}},
                    ],
                }
            }
        }
    }
    registry = ToolRegistry(document, extract_operations(document))
    registry.load()
    tool = registry.get("search")

    (query_schema,) = tool.input_schema["$defs"].values()
    assert set(query_schema["properties"]) == {"page-size", "class"}
    validated = tool.input_model.model_validate({"query": {"page-size": 10, "class": "a"}})
    assert validated.model_dump(by_alias=True, exclude_unset=True) == {
        "query": {"page-size": 10, "class": "a"}
    }


def test_describe_mentions_auth_header(petstore):
    operations = {operation.id: operation for operation in extract_operations(petstore)}
    assert describe(operations["createpet"], "X-Api-Key").startswith("Create a pet")
    assert "`X-Api-Key`" in describe(operations["createpet"], "X-Api-Key")
    assert describe(operations["listpets"]) == "List pets"
    assert describe(operations["getpet"]).startswith("Fetch one pet")
    assert describe(operations["savenode"]) == (
        "PUT /nodes Requires `authtoken` header. "
        "Defaults to the configured API token or the `token` input."
    )


def test_summarize(petstore):
    lines = summarize(extract_operations(petstore)).splitlines()
    assert lines[0] == "listpets: [GET] /pets - List pets"
    assert lines[2] == "getpet: [GET] /pets/{petId} - No summary provided"


def test_enum_keeps_values_that_compare_equal_across_types():
    annotation = build_type(EnumNode(values=(1, True, 1, 0, False, "1")))
    assert get_args(annotation) == (1, True, 0, False, "1")

    adapter = TypeAdapter(annotation)
    assert adapter.validate_python(True) is True
    assert adapter.validate_python(1) == 1
    assert adapter.validate_python("1") == "1"
