"""Shared fixtures: small OpenAPI documents exercising the interesting cases."""

import copy
import json
from pathlib import Path
from typing import Any, Dict

import pytest


PETSTORE: Dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Pet Store", "version": "1.0.0", "description": "Sample pets API."},
    "security": [{"authtoken": []}],
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List pets",
                "security": [],
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer", "minimum": 1, "maximum": 100}},
                    {"name": "status", "in": "query", "schema": {"$ref": "#/components/schemas/Status"}},
                ],
            },
            "post": {
                "operationId": "createPet",
                "summary": "Create a pet",
                "requestBody": {"$ref": "#/components/requestBodies/PetBody"},
            },
        },
        "/pets/{petId}": {
            "parameters": [{"$ref": "#/components/parameters/PetId"}],
            "get": {"operationId": "getPet", "description": "Fetch one pet"},
            "delete": {
                "operationId": "deletePet",
                "parameters": [{"name": "X-Reason", "in": "header", "schema": {"type": "string"}}],
            },
            "x-internal": {"note": "not an operation"},
        },
        "/items/{id}/sub/{sub}": {
            "get": {
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
                    {"name": "sub", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
            }
        },
        "/nodes": {
            "put": {
                "operationId": "saveNode",
                "requestBody": {
                    "required": False,
                    "content": {
                        "text/plain": {"schema": {"type": "string"}},
                        "application/json": {"schema": {"$ref": "#/components/schemas/Node"}},
                    },
                },
            }
        },
    },
    "components": {
        "parameters": {
            "PetId": {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
        },
        "requestBodies": {
            "PetBody": {
                "required": True,
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
            }
        },
        "schemas": {
            "Status": {"type": "string", "enum": ["available", "pending", "sold"]},
            "Pet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "age": {"type": "integer", "minimum": 0},
                    "status": {"$ref": "#/components/schemas/Status"},
                    "tags": {"type": "array", "items": {"type": "string"}, "maxItems": 3},
                    "owner": {"type": "string", "nullable": True},
                },
            },
            "Node": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "parent": {"$ref": "#/components/schemas/Node"},
                    "children": {"type": "array", "items": {"$ref": "#/components/schemas/Node"}},
                },
            },
        },
    },
}


@pytest.fixture
def petstore() -> Dict[str, Any]:
    return copy.deepcopy(PETSTORE)


@pytest.fixture
def petstore_path(tmp_path: Path, petstore: Dict[str, Any]) -> Path:
    path = tmp_path / "swagger.json"
    path.write_text(json.dumps(petstore), encoding="utf-8")
    return path
