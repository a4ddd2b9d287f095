"""Internal models for operations, tools and call results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel


PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str
    required: bool = False
    schema: Optional[Dict[str, Any]] = None
    description: str = ""


@dataclass(frozen=True)
class ParameterGroups:
    path: Tuple[Parameter, ...] = ()
    query: Tuple[Parameter, ...] = ()
    header: Tuple[Parameter, ...] = ()
    cookie: Tuple[Parameter, ...] = ()

    @classmethod
    def from_list(cls, parameters: List[Parameter]) -> "ParameterGroups":
        grouped: Dict[str, List[Parameter]] = {location: [] for location in PARAMETER_LOCATIONS}
        for parameter in parameters:
            grouped[parameter.location].append(parameter)
        return cls(**{location: tuple(items) for location, items in grouped.items()})


@dataclass(frozen=True)
class RequestBody:
    required: bool = False
    content_types: Tuple[str, ...] = ()
    # Kept as written; a top-level $ref is followed when the schema is compiled.
    schema: Optional[Dict[str, Any]] = None

    @property
    def default_content_type(self) -> str:
        return self.content_types[0] if self.content_types else "application/json"


@dataclass(frozen=True)
class Operation:
    id: str
    method: str
    path: str
    summary: str = ""
    description: str = ""
    parameters: ParameterGroups = field(default_factory=ParameterGroups)
    request_body: Optional[RequestBody] = None
    requires_auth: bool = False

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    title: str
    description: str
    operation: Operation
    input_model: Type[BaseModel]
    input_schema: Dict[str, Any]


@dataclass(frozen=True)
class OperationResult:
    """Uniform outcome of one tool call."""

    text: str
    structured: Optional[Dict[str, Any]] = None
    is_error: bool = False

    @classmethod
    def failure(cls, message: str, structured: Optional[Dict[str, Any]] = None) -> "OperationResult":
        return cls(text=message, structured=structured, is_error=True)
