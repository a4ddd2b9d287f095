"""Render compiled schema nodes as pydantic types."""

from __future__ import annotations

import itertools
import keyword
import logging
import re
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
    field_validator,
    model_validator,
)

from .schema import (
    AnyNode,
    ArrayNode,
    BooleanNode,
    EnumNode,
    NullableNode,
    NumberNode,
    ObjectNode,
    SchemaNode,
    StringNode,
)


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_RESERVED = set(dir(BaseModel))
_model_counter = itertools.count(1)

Primitive = Union[StrictStr, StrictInt, StrictFloat, StrictBool]


class ContractModel(BaseModel):
    """Base for every generated model; extra keys are rejected unless opened."""

    model_config = ConfigDict(extra="forbid", regex_engine="python-re")


class OpenContractModel(ContractModel):
    """Object that keeps unknown keys, optionally validating their values."""

    model_config = ConfigDict(extra="allow")

    extra_adapter: ClassVar[Optional[TypeAdapter]] = None

    @model_validator(mode="after")
    def validate_extra(self) -> "OpenContractModel":
        adapter = type(self).extra_adapter
        extra = self.__pydantic_extra__
        if adapter is None or not extra:
            return self
        for key, value in list(extra.items()):
            try:
                extra[key] = adapter.validate_python(value)
            except ValidationError as exc:
                raise ValueError(f"{key}: {format_validation_error(exc)}") from exc
        return self


def build_type(node: SchemaNode, name_hint: str = "Object") -> Any:
    """Return a pydantic-compatible annotation for ``node``. Never raises."""
    try:
        return _build(node, name_hint)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Falling back to Any for %s: %s", name_hint, exc)
        return Any


def _build(node: SchemaNode, name_hint: str) -> Any:
    if isinstance(node, NullableNode):
        return Optional[_build(node.inner, name_hint)]
    if isinstance(node, EnumNode):
        return _enum_type(node.values)
    if isinstance(node, StringNode):
        return Annotated[
            StrictStr,
            Field(min_length=node.min_length, max_length=node.max_length, pattern=node.pattern),
        ]
    if isinstance(node, NumberNode):
        bounds = Field(
            ge=node.minimum,
            le=node.maximum,
            gt=node.exclusive_minimum,
            lt=node.exclusive_maximum,
        )
        if node.integer:
            return Annotated[StrictInt, bounds]
        # Keep ints as ints instead of coercing them to float.
        return Union[Annotated[StrictInt, bounds], Annotated[StrictFloat, bounds]]
    if isinstance(node, BooleanNode):
        return StrictBool
    if isinstance(node, ArrayNode):
        item = _build(node.items, f"{name_hint}Item")
        return Annotated[List[item], Field(min_length=node.min_items, max_length=node.max_items)]
    if isinstance(node, ObjectNode):
        return build_object_model(node, name_hint)
    return Any


def _enum_type(values: Tuple[Any, ...]) -> Any:
    unique: List[Any] = []
    seen: set = set()
    try:
        for value in values:
            # 1 == True, so the type is part of the key.
            key = (type(value), value)
            if key not in seen:
                seen.add(key)
                unique.append(value)
    except TypeError:
        logger.debug("Enum with unhashable values accepted as Any: %r", values)
        return Any
    return Literal[tuple(unique)]


def build_object_model(node: ObjectNode, name_hint: str) -> type[BaseModel]:
    fields: Dict[str, Tuple[Any, Any]] = {}
    taken: set[str] = set()
    for prop_name, prop_node in node.properties:
        annotation = _build(prop_node, f"{name_hint}_{prop_name}")
        required = prop_name in node.required
        field_name = field_name_for(prop_name, taken)
        taken.add(field_name)
        kwargs: Dict[str, Any] = {"description": prop_node.description}
        if field_name != prop_name:
            kwargs["alias"] = prop_name
        default = Field(... if required else None, **kwargs)
        fields[field_name] = (annotation, default)

    if node.additional is None:
        base: type[BaseModel] = ContractModel
    else:
        base = OpenContractModel

    model = create_model(  # type: ignore[call-overload]
        model_name(name_hint),
        __base__=base,
        __doc__=node.description,
        **fields,
    )
    if node.additional is not None and not isinstance(node.additional, AnyNode):
        model.extra_adapter = type_adapter(_build(node.additional, f"{name_hint}Extra"))
    return model


def type_adapter(annotation: Any) -> TypeAdapter:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return TypeAdapter(annotation)
    return TypeAdapter(annotation, config=ConfigDict(regex_engine="python-re"))


def field_name_for(name: str, taken: set[str]) -> str:
    """Map a document property name to a safe pydantic field name."""
    if (
        _IDENTIFIER.match(name)
        and not keyword.iskeyword(name)
        and name not in _RESERVED
        and not name.startswith("model_")
        and name not in taken
    ):
        return name
    sanitized = re.sub(r"[^A-Za-z0-9_]", "_", name).strip("_") or "field"
    candidate = f"f_{sanitized}"
    suffix = 2
    while candidate in taken:
        candidate = f"f_{sanitized}_{suffix}"
        suffix += 1
    return candidate


def model_name(hint: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in hint).strip("_") or "Object"
    return f"{cleaned}_{next(_model_counter)}"


class ToolInput(ContractModel):
    """Fields every tool accepts regardless of the operation."""

    baseUrl: Optional[StrictStr] = Field(
        None, description="Optional override for the API base URL (defaults to the configured base URL)."
    )
    token: Optional[StrictStr] = Field(
        None, description="Override the credential sent with this call (defaults to the configured token)."
    )
    headers: Optional[Dict[str, StrictStr]] = Field(
        None, description="Additional HTTP headers to send with the request."
    )
    accept: Optional[StrictStr] = Field(
        None, description="Accept header for the response. Defaults to application/json."
    )

    @field_validator("baseUrl")
    @classmethod
    def check_base_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            url = _URL_ADAPTER.validate_python(value)
        except ValidationError as exc:
            raise ValueError("must be an absolute URL") from exc
        if not url.host:
            raise ValueError("must be an absolute URL")
        return value


_URL_ADAPTER = TypeAdapter(AnyUrl)


def format_validation_error(exc: ValidationError) -> str:
    parts: List[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "input"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)
