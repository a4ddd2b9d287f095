"""Reference resolution and schema compilation for OpenAPI documents.

`compile_schema` turns one OpenAPI schema object into a small tree of
`SchemaNode` values. The tree does not depend on any validation library;
`contract.build_type` renders it onto pydantic.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple


logger = logging.getLogger(__name__)

_DATE_FORMATS = {"date", "date-time"}


def resolve_reference(
    node: Any, document: Dict[str, Any], visited: Optional[Set[str]] = None
) -> Optional[Any]:
    """Follow ``$ref`` pointers until a concrete node is reached.

    Returns ``None`` when the reference is missing, non-local or cyclic.
    """
    if node is None:
        return None
    if not isinstance(node, dict) or "$ref" not in node:
        return node

    ref = node["$ref"]
    visited = set() if visited is None else visited
    if not isinstance(ref, str) or ref in visited:
        return None
    visited.add(ref)

    target = _lookup_pointer(ref, document)
    if target is None:
        return None
    if isinstance(target, dict) and "$ref" in target:
        return resolve_reference(target, document, visited)
    return target


def _lookup_pointer(ref: str, document: Dict[str, Any]) -> Optional[Any]:
    if not ref.startswith("#"):
        logger.debug("Ignoring non-local reference: %s", ref)
        return None

    current: Any = document
    for raw in ref[1:].lstrip("/").split("/"):
        if raw == "":
            continue
        segment = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            return None
    return current


@dataclass(frozen=True)
class SchemaNode:
    description: Optional[str] = field(default=None, kw_only=True)


@dataclass(frozen=True)
class AnyNode(SchemaNode):
    pass


@dataclass(frozen=True)
class StringNode(SchemaNode):
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    format: Optional[str] = None


@dataclass(frozen=True)
class NumberNode(SchemaNode):
    integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None


@dataclass(frozen=True)
class BooleanNode(SchemaNode):
    pass


@dataclass(frozen=True)
class ArrayNode(SchemaNode):
    items: SchemaNode = field(default_factory=AnyNode)
    min_items: Optional[int] = None
    max_items: Optional[int] = None


@dataclass(frozen=True)
class ObjectNode(SchemaNode):
    properties: Tuple[Tuple[str, SchemaNode], ...] = ()
    required: frozenset = frozenset()
    # None: closed object. AnyNode: open object. Anything else: typed extras.
    additional: Optional[SchemaNode] = None


@dataclass(frozen=True)
class EnumNode(SchemaNode):
    values: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class NullableNode(SchemaNode):
    inner: SchemaNode = field(default_factory=AnyNode)


def compile_schema(
    schema: Any, document: Dict[str, Any], visited: Optional[Set[str]] = None
) -> SchemaNode:
    """Compile an OpenAPI schema object into a `SchemaNode` tree.

    ``visited`` holds the references on the current compilation chain only, so
    a reference shared by sibling properties compiles normally while a true
    cycle degrades to `AnyNode` where it closes.
    """
    visited = set() if visited is None else visited
    if not isinstance(schema, dict):
        return AnyNode()

    if "$ref" in schema:
        ref = schema["$ref"]
        if not isinstance(ref, str) or ref in visited:
            return AnyNode()
        resolved = resolve_reference(schema, document)
        if resolved is None:
            logger.debug("Unresolvable schema reference: %s", ref)
            return AnyNode()
        visited.add(ref)
        try:
            return compile_schema(resolved, document, visited)
        finally:
            visited.discard(ref)

    description = _description(schema)

    enum = schema.get("enum")
    if isinstance(enum, list) and enum:
        node: SchemaNode = EnumNode(values=tuple(enum), description=description)
        if schema.get("nullable") is True and None not in enum:
            node = NullableNode(inner=node, description=description)
        return node

    raw_type = schema.get("type")
    nullable = schema.get("nullable") is True or raw_type == "null"
    if isinstance(raw_type, list):
        nullable = nullable or "null" in raw_type
        raw_type = next((t for t in raw_type if t != "null"), None)
    if not raw_type:
        if "properties" in schema:
            raw_type = "object"
        elif "items" in schema:
            raw_type = "array"

    if raw_type == "string":
        node = _compile_string(schema, description)
    elif raw_type in ("integer", "number"):
        node = _compile_number(schema, raw_type == "integer", description)
    elif raw_type == "boolean":
        node = BooleanNode(description=description)
    elif raw_type == "array":
        node = _compile_array(schema, document, visited, description)
    elif raw_type == "object":
        node = _compile_object(schema, document, visited, description)
    else:
        node = AnyNode(description=description)

    if nullable:
        node = NullableNode(inner=node, description=description)
    return node


def _description(schema: Dict[str, Any]) -> Optional[str]:
    text = schema.get("description")
    fmt = schema.get("format")
    if fmt in _DATE_FORMATS:
        note = f"Expected format: {fmt}"
        text = f"{text} ({note})" if text else note
    return text if isinstance(text, str) and text else None


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _compile_string(schema: Dict[str, Any], description: Optional[str]) -> StringNode:
    pattern = schema.get("pattern")
    if pattern is not None:
        try:
            re.compile(pattern)
        except (re.error, TypeError):
            logger.warning("Dropping invalid pattern constraint: %r", pattern)
            pattern = None
    fmt = schema.get("format")
    return StringNode(
        min_length=_int_or_none(schema.get("minLength")),
        max_length=_int_or_none(schema.get("maxLength")),
        pattern=pattern,
        format=fmt if fmt in _DATE_FORMATS else None,
        description=description,
    )


def _compile_number(
    schema: Dict[str, Any], integer: bool, description: Optional[str]
) -> NumberNode:
    minimum = _number_or_none(schema.get("minimum"))
    maximum = _number_or_none(schema.get("maximum"))
    exclusive_minimum = _number_or_none(schema.get("exclusiveMinimum"))
    exclusive_maximum = _number_or_none(schema.get("exclusiveMaximum"))

    # OpenAPI 3.0 spells exclusivity as a boolean next to minimum/maximum.
    if schema.get("exclusiveMinimum") is True and minimum is not None:
        exclusive_minimum, minimum = minimum, None
    if schema.get("exclusiveMaximum") is True and maximum is not None:
        exclusive_maximum, maximum = maximum, None

    return NumberNode(
        integer=integer,
        minimum=minimum,
        maximum=maximum,
        exclusive_minimum=exclusive_minimum,
        exclusive_maximum=exclusive_maximum,
        description=description,
    )


def _compile_array(
    schema: Dict[str, Any],
    document: Dict[str, Any],
    visited: Set[str],
    description: Optional[str],
) -> ArrayNode:
    items = schema.get("items")
    item_node = compile_schema(items, document, visited) if items else AnyNode()
    return ArrayNode(
        items=item_node,
        min_items=_int_or_none(schema.get("minItems")),
        max_items=_int_or_none(schema.get("maxItems")),
        description=description,
    )


def _compile_object(
    schema: Dict[str, Any],
    document: Dict[str, Any],
    visited: Set[str],
    description: Optional[str],
) -> ObjectNode:
    raw_properties = schema.get("properties")
    properties: List[Tuple[str, SchemaNode]] = []
    if isinstance(raw_properties, dict):
        for name, value in raw_properties.items():
            properties.append((str(name), compile_schema(value, document, visited)))

    raw_required = schema.get("required")
    required = frozenset(
        name for name in (raw_required if isinstance(raw_required, list) else []) if isinstance(name, str)
    )

    additional_raw = schema.get("additionalProperties")
    additional: Optional[SchemaNode]
    if additional_raw is True:
        additional = AnyNode()
    elif isinstance(additional_raw, dict):
        additional = compile_schema(additional_raw, document, visited) if additional_raw else AnyNode()
    else:
        additional = None

    return ObjectNode(
        properties=tuple(properties),
        required=required,
        additional=additional,
        description=description,
    )
