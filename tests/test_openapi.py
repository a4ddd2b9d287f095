import json
import re

import pytest

from openapi_mcp_adapter.openapi import (
    DocumentError,
    OpenAPILoader,
    extract_operations,
    sanitize_operation_id,
    unique_operation_id,
)


def _by_id(operations):
    return {operation.id: operation for operation in operations}


def test_extract_operations_in_document_order(petstore):
    operations = extract_operations(petstore)
    assert [operation.id for operation in operations] == [
        "listpets",
        "createpet",
        "getpet",
        "deletepet",
        "get_items_id_sub_sub",
        "savenode",
    ]
    assert [operation.method for operation in operations][:4] == ["GET", "POST", "GET", "DELETE"]


def test_extract_operations_is_deterministic(petstore):
    first = [(op.id, op.label) for op in extract_operations(petstore)]
    second = [(op.id, op.label) for op in extract_operations(petstore)]
    assert first == second


def test_non_method_keys_are_ignored(petstore):
    labels = [operation.label for operation in extract_operations(petstore)]
    assert not any("X-INTERNAL" in label for label in labels)


def test_path_level_parameters_are_shared(petstore):
    operations = _by_id(extract_operations(petstore))
    for name in ("getpet", "deletepet"):
        path = operations[name].parameters.path
        assert [parameter.name for parameter in path] == ["petId"]
        assert path[0].required
    assert [parameter.name for parameter in operations["deletepet"].parameters.header] == ["X-Reason"]


def test_parameters_are_grouped_by_location(petstore):
    operations = _by_id(extract_operations(petstore))
    list_pets = operations["listpets"]
    assert [parameter.name for parameter in list_pets.parameters.query] == ["limit", "status"]
    assert list_pets.parameters.path == ()

    items = operations["get_items_id_sub_sub"]
    assert [parameter.name for parameter in items.parameters.path] == ["id", "sub"]


def test_unknown_parameter_location_defaults_to_query():
    document = {
        "paths": {
            "/search": {
                "get": {
                    "operationId": "search",
                    "parameters": [{"name": "q"}, {"name": "mode", "in": "matrix"}],
                }
            }
        }
    }
    (operation,) = extract_operations(document)
    assert [parameter.name for parameter in operation.parameters.query] == ["q", "mode"]


def test_security_requirements(petstore):
    operations = _by_id(extract_operations(petstore))
    assert not operations["listpets"].requires_auth
    assert operations["createpet"].requires_auth
    assert operations["getpet"].requires_auth

    del petstore["security"]
    operations = _by_id(extract_operations(petstore))
    assert not operations["createpet"].requires_auth


def test_request_body_from_reference(petstore):
    operations = _by_id(extract_operations(petstore))
    body = operations["createpet"].request_body
    assert body is not None
    assert body.required
    assert body.content_types == ("application/json",)
    assert body.schema == {"$ref": "#/components/schemas/Pet"}


def test_request_body_prefers_json(petstore):
    body = _by_id(extract_operations(petstore))["savenode"].request_body
    assert body.content_types == ("application/json", "text/plain")
    assert body.default_content_type == "application/json"
    assert not body.required
    assert body.schema == {"$ref": "#/components/schemas/Node"}


def test_operations_without_body():
    document = {"paths": {"/ping": {"get": {"operationId": "ping"}}}}
    (operation,) = extract_operations(document)
    assert operation.request_body is None


def test_colliding_identifiers_get_suffixes():
    document = {
        "paths": {
            "/users": {"get": {"operationId": "get users"}},
            "/people": {"get": {"operationId": "get-users"}},
            "/folks": {"get": {"operationId": "get_users_2"}},
        }
    }
    ids = [operation.id for operation in extract_operations(document)]
    assert ids[:2] == ["get_users", "get_users_2"]
    assert len(set(ids)) == 3


def test_malformed_entries_are_skipped():
    document = {
        "paths": {
            "/broken": "nope",
            "/half": {"get": "nope", "post": {"operationId": "ok"}},
        }
    }
    assert [operation.id for operation in extract_operations(document)] == ["ok"]


def test_swagger_2_body_parameter():
    document = {
        "swagger": "2.0",
        "consumes": ["application/xml", "application/json"],
        "paths": {
            "/orders": {
                "post": {
                    "operationId": "placeOrder",
                    "parameters": [
                        {"name": "dryRun", "in": "query", "type": "boolean"},
                        {"name": "order", "in": "body", "required": True, "schema": {"type": "object"}},
                    ],
                }
            }
        },
    }
    (operation,) = extract_operations(document)
    assert [parameter.name for parameter in operation.parameters.query] == ["dryRun"]
    assert operation.parameters.query[0].schema == {"type": "boolean"}
    assert operation.request_body.required
    assert operation.request_body.content_types == ("application/json", "application/xml")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("listPets", "listpets"),
        ("get /users/{id}", "get_users_id"),
        ("__weird--name__", "weird_name"),
        ("!!!", "operation"),
        ("получитьПета", "operation"),
        ("café list", "caf_list"),
        ("ünïcode_Name2", "n_code_name2"),
    ],
)
def test_sanitize_operation_id(raw, expected):
    assert sanitize_operation_id(raw) == expected


def test_non_ascii_operation_ids_become_valid_tool_names():
    document = {
        "paths": {
            "/pets": {"get": {"operationId": "получитьПета"}, "post": {"operationId": "créer"}},
            "/cafés": {"get": {}},
        }
    }
    ids = [operation.id for operation in extract_operations(document)]
    assert ids == ["operation", "cr_er", "get_caf_s"]
    assert all(re.fullmatch(r"[A-Za-z0-9_.-]+", name) for name in ids)


def test_unique_operation_id_skips_taken_suffixes():
    seen = {}
    assert unique_operation_id("a_2", seen) == "a_2"
    assert unique_operation_id("a", seen) == "a"
    assert unique_operation_id("a", seen) == "a_3"


@pytest.mark.asyncio
async def test_loader_reads_file(petstore_path):
    document, operations = await OpenAPILoader().load_operations(str(petstore_path))
    assert document["info"]["title"] == "Pet Store"
    assert len(operations) == 6


@pytest.mark.asyncio
async def test_loader_rejects_missing_file(tmp_path):
    with pytest.raises(DocumentError):
        await OpenAPILoader().load_document(str(tmp_path / "missing.json"))


@pytest.mark.asyncio
async def test_loader_rejects_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(DocumentError, match="not valid JSON"):
        await OpenAPILoader().load_document(str(path))


@pytest.mark.asyncio
async def test_loader_rejects_document_without_operations(tmp_path):
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"openapi": "3.0.0", "paths": {}}), encoding="utf-8")
    with pytest.raises(DocumentError, match="No operations"):
        await OpenAPILoader().load_operations(str(path))
