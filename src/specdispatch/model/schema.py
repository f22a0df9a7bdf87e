"""Classify raw JSON-Schema mappings into the kinds the compiler understands.

A schema's kind is decided the same way for every consumer (namer,
compiler, planner):

1. An explicit ``type`` wins. OpenAPI 3.1 type arrays such as
   ``["string", "null"]`` are accepted when exactly one non-null type is
   listed; the ``null`` marks the schema nullable.
2. Otherwise the first of ``oneOf``, ``allOf``, ``anyOf`` and ``not``.
3. Otherwise ``properties`` or ``additionalProperties`` imply an object.
4. Anything else is an *any* schema, which is *trivial* when it carries
   nothing but annotations (description, example, ...).
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from specdispatch.exceptions import UnsupportedSchemaError


class SchemaKind(str, enum.Enum):
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ONE_OF = "oneOf"
    ALL_OF = "allOf"
    ANY_OF = "anyOf"
    NOT = "not"
    ANY = "any"


_TYPED_KINDS = {
    "object": SchemaKind.OBJECT,
    "array": SchemaKind.ARRAY,
    "string": SchemaKind.STRING,
    "number": SchemaKind.NUMBER,
    "integer": SchemaKind.INTEGER,
    "boolean": SchemaKind.BOOLEAN,
}

_COMPOSITE_KINDS = (
    ("oneOf", SchemaKind.ONE_OF),
    ("allOf", SchemaKind.ALL_OF),
    ("anyOf", SchemaKind.ANY_OF),
    ("not", SchemaKind.NOT),
)

# Keywords that annotate a schema without constraining it.
_ANNOTATION_KEYWORDS = frozenset({
    "$comment",
    "$id",
    "$schema",
    "default",
    "deprecated",
    "description",
    "example",
    "examples",
    "externalDocs",
    "nullable",
    "readOnly",
    "title",
    "writeOnly",
    "xml",
})

_SCALAR_KINDS = frozenset({
    SchemaKind.STRING,
    SchemaKind.NUMBER,
    SchemaKind.INTEGER,
    SchemaKind.BOOLEAN,
})


def declared_type(schema: dict[str, Any]) -> Optional[str]:
    """Return the single non-null ``type`` of *schema*, or ``None`` if untyped.

    Raises:
        UnsupportedSchemaError: For multi-type arrays or unknown type names.
    """
    type_value = schema.get("type")
    if type_value is None:
        return None
    if isinstance(type_value, list):
        non_null = [t for t in type_value if t != "null"]
        if len(non_null) != 1:
            raise UnsupportedSchemaError(
                f"schema type {type_value!r} must name exactly one non-null type"
            )
        type_value = non_null[0]
    if type_value not in _TYPED_KINDS:
        raise UnsupportedSchemaError(f"unsupported schema type {type_value!r}")
    return type_value


def schema_kind(schema: dict[str, Any]) -> SchemaKind:
    """Return the :class:`SchemaKind` of *schema*."""
    type_value = declared_type(schema)
    if type_value is not None:
        return _TYPED_KINDS[type_value]
    for keyword, kind in _COMPOSITE_KINDS:
        if keyword in schema:
            return kind
    if "properties" in schema or "additionalProperties" in schema:
        return SchemaKind.OBJECT
    return SchemaKind.ANY


def is_nullable(schema: dict[str, Any]) -> bool:
    type_value = schema.get("type")
    if isinstance(type_value, list) and "null" in type_value:
        return True
    return bool(schema.get("nullable", False))


def is_trivial_any(schema: dict[str, Any]) -> bool:
    """Return True if *schema* carries only annotations and extensions."""
    return all(key in _ANNOTATION_KEYWORDS or key.startswith("x-") for key in schema)


def is_scalar(kind: SchemaKind) -> bool:
    return kind in _SCALAR_KINDS


def enum_values(schema: dict[str, Any]) -> list[Any]:
    values = schema.get("enum")
    if isinstance(values, list):
        return values
    if "const" in schema:
        return [schema["const"]]
    return []


def describe_schema(schema: dict[str, Any], limit: int = 120) -> str:
    """Short one-line rendering of *schema* for error messages."""
    text = repr(schema)
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text
