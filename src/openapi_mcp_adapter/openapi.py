"""OpenAPI document loader and operation parser."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .models import PARAMETER_LOCATIONS, Operation, Parameter, ParameterGroups, RequestBody
from .schema import resolve_reference


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "options", "head")


class DocumentError(Exception):
    """The OpenAPI document cannot be used to serve tools."""


class OpenAPILoader:
    def __init__(self, timeout_seconds: float = 30) -> None:
        self.timeout_seconds = timeout_seconds

    async def load_document(self, location: str) -> Dict[str, Any]:
        if location.startswith(("http://", "https://")):
            raw = await self._fetch(location)
        else:
            raw = self._read(location)

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DocumentError(f"OpenAPI document is not valid JSON: {location} ({exc})") from exc
        if not isinstance(document, dict):
            raise DocumentError(f"OpenAPI document must be a JSON object: {location}")
        return document

    async def load_operations(self, location: str) -> tuple[Dict[str, Any], List[Operation]]:
        document = await self.load_document(location)
        operations = extract_operations(document)
        if not operations:
            raise DocumentError(f"No operations discovered in OpenAPI document: {location}")
        logger.info("Loaded %s operations from %s", len(operations), location)
        return document, operations

    async def _fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DocumentError(f"Failed to fetch OpenAPI document: {url} ({exc})") from exc
        return response.text

    def _read(self, location: str) -> str:
        path = Path(location).expanduser().resolve()
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DocumentError(f"Failed to read OpenAPI document: {path} ({exc})") from exc


def extract_operations(document: Dict[str, Any]) -> List[Operation]:
    """Flatten the document's path table into uniquely named operations."""
    operations: List[Operation] = []
    seen: Dict[str, int] = {}
    paths = document.get("paths") or {}
    if not isinstance(paths, dict):
        logger.warning("OpenAPI document has a non-object 'paths' entry; ignoring it")
        return operations

    global_security = document.get("security")

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            logger.warning("Skipping malformed path item: %s", path)
            continue
        shared_parameters = normalize_parameters(path_item.get("parameters"), document)

        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS:
                continue
            if not isinstance(operation, dict):
                logger.warning("Skipping malformed operation: %s %s", method, path)
                continue

            parameters = [*shared_parameters, *normalize_parameters(operation.get("parameters"), document)]
            base_name = sanitize_operation_id(operation.get("operationId") or f"{method}_{path}")
            security = operation["security"] if "security" in operation else global_security

            operations.append(
                Operation(
                    id=unique_operation_id(base_name, seen),
                    method=method.upper(),
                    path=path,
                    summary=_text(operation.get("summary")),
                    description=_text(operation.get("description")),
                    parameters=ParameterGroups.from_list(parameters),
                    request_body=(
                        normalize_request_body(operation.get("requestBody"), document)
                        or swagger_body_parameter(operation, path_item, document)
                    ),
                    requires_auth=bool(security) and isinstance(security, list),
                )
            )

    return operations


def normalize_parameters(parameters: Any, document: Dict[str, Any]) -> List[Parameter]:
    if not isinstance(parameters, list):
        return []

    normalized: List[Parameter] = []
    for raw in parameters:
        parameter = resolve_reference(raw, document)
        if not isinstance(parameter, dict) or not parameter.get("name"):
            continue
        location = parameter.get("in")
        if location == "body":
            continue
        if location not in PARAMETER_LOCATIONS:
            location = "query"
        schema = parameter.get("schema")
        if schema is None and "type" in parameter:
            # Swagger 2.0 keeps the schema keywords on the parameter itself.
            schema = {k: v for k, v in parameter.items() if k not in {"name", "in", "required", "description"}}
        normalized.append(
            Parameter(
                name=str(parameter["name"]),
                location=location,
                required=bool(parameter.get("required")),
                schema=schema if isinstance(schema, dict) else None,
                description=_text(parameter.get("description")),
            )
        )
    return normalized


def normalize_request_body(request_body: Any, document: Dict[str, Any]) -> Optional[RequestBody]:
    if not request_body:
        return None
    resolved = resolve_reference(request_body, document)
    if not isinstance(resolved, dict):
        return None

    content = resolved.get("content")
    content_types = [str(key) for key in content] if isinstance(content, dict) else []
    preferred = next((ct for ct in content_types if "json" in ct), content_types[0] if content_types else None)
    if preferred is not None:
        content_types.remove(preferred)
        content_types.insert(0, preferred)

    schema = None
    if preferred is not None and isinstance(content[preferred], dict):
        schema = content[preferred].get("schema")

    return RequestBody(
        required=bool(resolved.get("required")),
        content_types=tuple(content_types),
        schema=schema if isinstance(schema, dict) else None,
    )


def sanitize_operation_id(operation_id: str) -> str:
    sanitized = re.sub(r"[^\w\s]", "_", str(operation_id), flags=re.ASCII)
    sanitized = re.sub(r"\s+", "_", sanitized, flags=re.ASCII)
    sanitized = re.sub(r"_+", "_", sanitized)
    return sanitized.strip("_").lower() or "operation"


def swagger_body_parameter(
    operation: Dict[str, Any], path_item: Dict[str, Any], document: Dict[str, Any]
) -> Optional[RequestBody]:
    """Build a request body from a Swagger 2.0 ``in: body`` parameter."""
    candidates: List[Any] = []
    for source in (path_item.get("parameters"), operation.get("parameters")):
        if isinstance(source, list):
            candidates.extend(source)
    body = None
    for raw in candidates:
        parameter = resolve_reference(raw, document)
        if isinstance(parameter, dict) and parameter.get("in") == "body":
            body = parameter
    if body is None:
        return None

    consumes = operation.get("consumes") or document.get("consumes")
    if not isinstance(consumes, list) or not consumes:
        consumes = ["application/json"]
    content_types = [str(ct) for ct in consumes]
    preferred = next((ct for ct in content_types if "json" in ct), content_types[0])
    content_types.remove(preferred)
    content_types.insert(0, preferred)
    schema = body.get("schema")
    return RequestBody(
        required=bool(body.get("required")),
        content_types=tuple(content_types),
        schema=schema if isinstance(schema, dict) else None,
    )


def unique_operation_id(base_name: str, seen: Dict[str, int]) -> str:
    """Return ``base_name`` or its first free ``_N`` variant, recording the result."""
    count = seen.get(base_name, 0) + 1
    seen[base_name] = count
    candidate = base_name if count == 1 else f"{base_name}_{count}"
    while candidate != base_name and candidate in seen:
        count += 1
        seen[base_name] = count
        candidate = f"{base_name}_{count}"
    seen.setdefault(candidate, 1)
    return candidate


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""
