"""Assign deterministic names to anonymous schemas that need a named type.

Some schemas can only be represented by a named type: objects with
properties (or with nothing at all), enumerations, and every ``oneOf`` /
``anyOf`` / ``allOf`` composition. When such a schema appears inline, the
namer moves it into ``components.schemas`` under a name derived from where
it appears, and replaces it with a ``#/components/schemas/<Name>``
reference.

Names are built compositionally from the syntactic position:

========================================  ==========================================
Position                                  Naming context
========================================  ==========================================
operation                                 ``Pascal(operationId)``
parameter                                 ``ctx + Pascal(name) + "Param"``
request body media type                   ``ctx + Mime + "RequestBody"``
response                                  ``ctx + Pascal(status) + "Response"`` or
                                          ``ctx + "DefaultResponse"``
response header / response media type     ``ctx + Pascal(header) + "Header"`` /
                                          ``ctx + Mime + "ResponseBody"``
object property                           ``ctx + Pascal(property)``
additionalProperties value                ``ctx + "Value"``
array items                               ``ctx + "Item"``
``oneOf`` / ``anyOf`` branch              ``ctx + "OneOf"`` / ``ctx + "AnyOf"``
========================================  ==========================================

Component parameters and path-level parameters use an empty context, so a
shared ``color`` parameter becomes ``ColorParam``. Inline ``allOf`` branches
are visited with the enclosing context but are never named themselves; they
are folded into the composed struct. When a name is taken, the smallest
integer suffix from 2 upwards that is free is appended.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from specdispatch.exceptions import UnsupportedSchemaError
from specdispatch.model.casing import to_pascal, unique_name
from specdispatch.model.schema import (
    SchemaKind,
    describe_schema,
    enum_values,
    is_scalar,
    is_trivial_any,
    schema_kind,
)
from specdispatch.models import HTTPMethod
from specdispatch.parser.reference import is_reference, schema_reference


logger = logging.getLogger(__name__)

Container = Union[dict[str, Any], list[Any]]

_MIME_NAMES: dict[str, str] = {
    "application/json": "Json",
    "application/octet-stream": "Binary",
    "application/xml": "Xml",
    "text/xml": "Xml",
    "image/gif": "Gif",
    "image/jpeg": "Jpeg",
    "image/png": "Png",
    "image/svg+xml": "Svg",
    "image/webp": "Webp",
    "text/csv": "Csv",
    "text/html": "Html",
    "text/plain": "PlainText",
}


def mime_essence(mime_type: str) -> str:
    """Strip parameters and lowercase: ``Application/JSON; charset=utf-8`` -> ``application/json``."""
    return mime_type.split(";", 1)[0].strip().lower()


def mime_type_name(mime_type: str) -> str:
    """Return the PascalCase naming fragment for *mime_type*, or ``""`` if unrecognized."""
    essence = mime_essence(mime_type)
    if essence.count("/") != 1 or "*" in essence:
        logger.warning("invalid or unsupported MIME type `%s`", mime_type)
        return ""
    name = _MIME_NAMES.get(essence)
    if name is None:
        logger.warning("ignoring unrecognized MIME type `%s`", mime_type)
        return ""
    return name


def name_schemas(document: dict[str, Any]) -> list[str]:
    """Name every anonymous schema in *document* that needs a named type.

    The document is modified in place: named schemas are added to
    ``components.schemas`` and their original positions become references.

    Args:
        document: An inlined OpenAPI document (see
            :func:`~specdispatch.parser.inline.inline_references`).

    Returns:
        The synthesized schema names, in the order they were created.

    Raises:
        UnsupportedSchemaError: For ``not`` schemas and non-trivial *any*
            schemas, which have no representation.

    Example::

        names = name_schemas(document)
        # ['ListFooColorParam', 'ListFoo200ResponseJsonResponseBody', ...]
    """
    return SchemaNamer(document).run()


class SchemaNamer:
    """Stateful walker behind :func:`name_schemas`."""

    def __init__(self, document: dict[str, Any]) -> None:
        self._document = document
        self._created: list[str] = []

    @property
    def _schemas(self) -> dict[str, Any]:
        components = self._document.setdefault("components", {})
        return components.setdefault("schemas", {})

    def run(self) -> list[str]:
        components = self._document.get("components")
        if isinstance(components, dict):
            self._visit_components(components)

        for path_item in (self._document.get("paths") or {}).values():
            # Referenced path items are reached through their target.
            if isinstance(path_item, dict) and not is_reference(path_item):
                self._visit_path_item(path_item)
        return self._created

    # ------------------------------------------------------------------ #
    # Document structure
    # ------------------------------------------------------------------ #

    def _visit_components(self, components: dict[str, Any]) -> None:
        for name, response in _items(components.get("responses")):
            self._visit_response(response, f"{to_pascal(name)}Response")

        for _, parameter in _items(components.get("parameters")):
            self._visit_parameter(parameter, "")

        for name, body in _items(components.get("requestBodies")):
            self._visit_request_body(body, to_pascal(name))

        for name, header in _items(components.get("headers")):
            self._visit_header(header, f"{to_pascal(name)}Header")

        for name, schema in list(_items(components.get("schemas"))):
            self._visit_schema(schema, to_pascal(name))

    def _visit_path_item(self, path_item: dict[str, Any]) -> None:
        for method in HTTPMethod:
            operation = path_item.get(method.value)
            if isinstance(operation, dict):
                self._visit_operation(operation)

        for parameter in path_item.get("parameters", []):
            if isinstance(parameter, dict) and not is_reference(parameter):
                self._visit_parameter(parameter, "")

    def _visit_operation(self, operation: dict[str, Any]) -> None:
        operation_id = operation.get("operationId")
        if not operation_id:
            # Operations without an id are never dispatched; mapping one is a fatal error later.
            return
        context = to_pascal(operation_id)

        for parameter in operation.get("parameters", []):
            if isinstance(parameter, dict) and not is_reference(parameter):
                self._visit_parameter(parameter, context)

        request_body = operation.get("requestBody")
        if isinstance(request_body, dict) and not is_reference(request_body):
            self._visit_request_body(request_body, context)

        responses = operation.get("responses") or {}
        default = responses.get("default")
        if isinstance(default, dict) and not is_reference(default):
            self._visit_response(default, f"{context}DefaultResponse")
        for status, response in responses.items():
            if status == "default" or not isinstance(response, dict) or is_reference(response):
                continue
            self._visit_response(response, f"{context}{to_pascal(str(status))}Response")

    def _visit_parameter(self, parameter: dict[str, Any], context: str) -> None:
        self._visit_schema_or_content(
            parameter, f"{context}{to_pascal(str(parameter.get('name', '')))}Param"
        )

    def _visit_header(self, header: dict[str, Any], context: str) -> None:
        self._visit_schema_or_content(header, context)

    def _visit_schema_or_content(self, owner: dict[str, Any], context: str) -> None:
        if isinstance(owner.get("schema"), dict):
            self._visit_unnamed_schema(owner, "schema", context)
        # A parameter's content map holds a single entry, so the MIME type is left out.
        for _, media_type in _items(owner.get("content")):
            self._visit_media_type(media_type, context)

    def _visit_request_body(self, body: dict[str, Any], context: str) -> None:
        for mime_type, media_type in _items(body.get("content")):
            self._visit_media_type(
                media_type, f"{context}{mime_type_name(mime_type)}RequestBody"
            )

    def _visit_response(self, response: dict[str, Any], context: str) -> None:
        for header_name, header in _items(response.get("headers")):
            if not is_reference(header):
                self._visit_header(header, f"{context}{to_pascal(header_name)}Header")
        for mime_type, media_type in _items(response.get("content")):
            self._visit_media_type(
                media_type, f"{context}{mime_type_name(mime_type)}ResponseBody"
            )

    def _visit_media_type(self, media_type: dict[str, Any], context: str) -> None:
        if isinstance(media_type.get("schema"), dict):
            self._visit_unnamed_schema(media_type, "schema", context)

    # ------------------------------------------------------------------ #
    # Schemas
    # ------------------------------------------------------------------ #

    def _visit_schema(self, schema: dict[str, Any], context: str) -> bool:
        """Visit the children of *schema*; return True if *schema* needs a name."""
        if is_reference(schema):
            return False

        kind = schema_kind(schema)
        if kind == SchemaKind.OBJECT:
            properties = schema.get("properties") or {}
            for prop_name in list(properties):
                self._visit_unnamed_schema(properties, prop_name, f"{context}{to_pascal(prop_name)}")

            additional = schema.get("additionalProperties")
            if isinstance(additional, dict):
                self._visit_unnamed_schema(schema, "additionalProperties", f"{context}Value")

            # Only a pure map (additionalProperties and no named properties) stays anonymous.
            return bool(properties) or additional in (None, False)

        if kind == SchemaKind.ARRAY:
            if isinstance(schema.get("items"), dict):
                self._visit_unnamed_schema(schema, "items", f"{context}Item")
            return False

        if is_scalar(kind):
            return bool(enum_values(schema))

        if kind in (SchemaKind.ONE_OF, SchemaKind.ANY_OF):
            suffix = "OneOf" if kind == SchemaKind.ONE_OF else "AnyOf"
            branches = schema.get(kind.value) or []
            for index in range(len(branches)):
                self._visit_unnamed_schema(branches, index, f"{context}{suffix}")
            return True

        if kind == SchemaKind.ALL_OF:
            for branch in schema.get("allOf") or []:
                if isinstance(branch, dict) and not is_reference(branch):
                    # allOf branches fold into the composed struct rather than being named.
                    self._visit_schema(branch, context)
            return True

        if kind == SchemaKind.NOT:
            raise UnsupportedSchemaError(
                f"`not` schemas are not supported (in {context or 'document'}): "
                f"{describe_schema(schema)}"
            )

        if not is_trivial_any(schema):
            raise UnsupportedSchemaError(
                f"free-form schema without a `type` in {context or 'document'} "
                f"is not supported: {describe_schema(schema)}"
            )
        return False

    def _visit_unnamed_schema(self, container: Container, key: Any, context: str) -> None:
        schema = container[key]
        if not isinstance(schema, dict) or is_reference(schema):
            return
        if not self._visit_schema(schema, context):
            return

        name = unique_name(context, self._schemas)
        logger.debug("Named anonymous schema `%s`", name)
        self._schemas[name] = schema
        self._created.append(name)
        container[key] = schema_reference(name)


def _items(mapping: Any) -> list[tuple[str, Any]]:
    if not isinstance(mapping, dict):
        return []
    return [(str(key), value) for key, value in mapping.items() if isinstance(value, dict)]
