"""Tool registry: one validated tool definition per OpenAPI operation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, create_model

from .contract import (
    ContractModel,
    OpenContractModel,
    Primitive,
    ToolInput,
    build_type,
    field_name_for,
    model_name,
    type_adapter,
)
from .models import Operation, Parameter, ToolDefinition
from .schema import compile_schema


logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(
        self,
        document: Dict[str, Any],
        operations: List[Operation],
        token_header: str = "authtoken",
    ) -> None:
        self.document = document
        self.operations = operations
        self.token_header = token_header
        self._tools: Dict[str, ToolDefinition] = {}

    def load(self) -> List[ToolDefinition]:
        if self._tools:
            return list(self._tools.values())

        for operation in self.operations:
            input_model = build_input_contract(operation, self.document)
            self._tools[operation.id] = ToolDefinition(
                name=operation.id,
                title=operation.label,
                description=describe(operation, self.token_header),
                operation=operation,
                input_model=input_model,
                input_schema=input_model.model_json_schema(),
            )
            logger.debug("Built tool: %s (%s)", operation.id, operation.label)

        logger.info("Tool registry ready with %s tools", len(self._tools))
        return list(self._tools.values())

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def summary(self) -> str:
        return summarize(self.operations)


def build_input_contract(operation: Operation, document: Dict[str, Any]) -> type[BaseModel]:
    """Build the pydantic model a tool's arguments are validated against."""
    hint = _hint(operation.id)
    fields: Dict[str, Tuple[Any, Any]] = {}
    groups = operation.parameters

    if groups.path:
        path_model = _parameters_model(groups.path, document, "path", f"{hint}PathParams")
        any_required = any(parameter.required for parameter in groups.path)
        fields["pathParams"] = (
            path_model,
            Field(
                ... if any_required else None,
                description=f"Path parameters for {operation.label}.",
            ),
        )

    if groups.query:
        query_model = _parameters_model(
            groups.query, document, "query", f"{hint}Query", open_extras=True
        )
        fields["query"] = (
            query_model,
            Field(None, description=f"Query string parameters for {operation.label}."),
        )

    body = operation.request_body
    if body is not None:
        body_type = build_type(compile_schema(body.schema, document), f"{hint}Body")
        fields["body"] = (
            body_type,
            Field(... if body.required else None, description=_body_description(operation)),
        )
        fields["contentType"] = (
            Optional[str],
            Field(None, description=f"Content-Type override. Defaults to {body.default_content_type}."),
        )

    return create_model(f"{hint}Input", __base__=ToolInput, **fields)  # type: ignore[call-overload]


def _parameters_model(
    parameters: Iterable[Parameter],
    document: Dict[str, Any],
    location: str,
    name_hint: str,
    open_extras: bool = False,
) -> type[BaseModel]:
    fields: Dict[str, Tuple[Any, Any]] = {}
    taken: set[str] = set()
    for parameter in parameters:
        annotation = build_type(compile_schema(parameter.schema, document), f"{name_hint}_{parameter.name}")
        field_name = field_name_for(parameter.name, taken)
        taken.add(field_name)
        kwargs: Dict[str, Any] = {"description": _parameter_description(parameter, location)}
        if field_name != parameter.name:
            kwargs["alias"] = parameter.name
        fields[field_name] = (annotation, Field(... if parameter.required else None, **kwargs))

    if not open_extras:
        return create_model(model_name(name_hint), __base__=ContractModel, **fields)  # type: ignore[call-overload]

    # Undeclared keys are accepted when their values are primitive.
    model = create_model(model_name(name_hint), __base__=OpenContractModel, **fields)  # type: ignore[call-overload]
    model.extra_adapter = type_adapter(Primitive)
    return model


def describe(operation: Operation, token_header: str = "authtoken") -> str:
    parts = [operation.summary or operation.description or operation.label]
    if operation.requires_auth:
        parts.append(
            f"Requires `{token_header}` header. Defaults to the configured API token or the `token` input."
        )
    return " ".join(parts)


def summarize(operations: Iterable[Operation]) -> str:
    return "\n".join(
        f"{op.id}: [{op.method}] {op.path} - {op.summary or 'No summary provided'}" for op in operations
    )


def _parameter_description(parameter: Parameter, location: str) -> str:
    segments = [f"[{location}]", parameter.name, "(required)" if parameter.required else "(optional)"]
    if parameter.description:
        segments.append(f"- {parameter.description}")
    return " ".join(segments)


def _body_description(operation: Operation) -> str:
    body = operation.request_body
    parts = [f"Request body for {operation.label}."]
    if body and body.content_types:
        parts.append(f"Supported content types: {', '.join(body.content_types)}.")
    parts.append("This body is required." if body and body.required else "This body is optional.")
    return " ".join(parts)


def _hint(operation_id: str) -> str:
    return "".join(part.capitalize() for part in operation_id.split("_") if part) or "Operation"
