"""Body decode/encode plans, shared by request bodies and responses.

The strategy depends on the MIME essence and, for JSON, on the schema:

============================  ================================  ==================
MIME type                     Schema                            Strategy
============================  ================================  ==================
``application/json``          none                              ``JSON_VALUE``
``application/json``          string, ``format: binary``        ``JSON_BYTES``
``application/json``          any other string                  ``JSON_STRING``
``application/json``          anything else                     ``JSON_TYPED``
``application/octet-stream``  ignored                           ``BYTES``
``text/*``                    ignored                           ``TEXT``
anything else                 ignored                           ``BYTES``
============================  ================================  ==================

A string schema on a JSON body means the handler wants the raw JSON text
(for example to verify a payload signature), so it is not decoded further.
"""

from __future__ import annotations

from typing import Any, Optional

from specdispatch.exceptions import GenerationError, UnsupportedSchemaError
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.model.naming import mime_essence
from specdispatch.model.schema import SchemaKind, describe_schema, enum_values, schema_kind
from specdispatch.models import BodyPlan, BodyStrategy, RequestBodyPlan


JSON_MIME_TYPE = "application/json"


def body_plan(
    mime_type: str,
    schema: Optional[dict[str, Any]],
    compiler: TypeModelCompiler,
) -> BodyPlan:
    """Return the :class:`BodyPlan` for one (MIME type, schema) pair.

    Raises:
        UnsupportedSchemaError: For a JSON body whose schema is a string enumeration.
    """
    essence = mime_essence(mime_type)

    if essence == JSON_MIME_TYPE:
        if schema is None:
            return BodyPlan(mime_type=mime_type, strategy=BodyStrategy.JSON_VALUE)
        resolved = compiler.resolve(schema)
        if schema_kind(resolved) == SchemaKind.STRING:
            if enum_values(resolved):
                raise UnsupportedSchemaError(
                    f"unexpected enum JSON request or response body: {describe_schema(resolved)}"
                )
            if resolved.get("format") == "binary":
                return BodyPlan(mime_type=mime_type, strategy=BodyStrategy.JSON_BYTES)
            return BodyPlan(mime_type=mime_type, strategy=BodyStrategy.JSON_STRING)
        return BodyPlan(
            mime_type=mime_type,
            strategy=BodyStrategy.JSON_TYPED,
            type=compiler.inline_type(schema),
        )

    if essence.startswith("text/"):
        return BodyPlan(mime_type=mime_type, strategy=BodyStrategy.TEXT)
    return BodyPlan(mime_type=mime_type, strategy=BodyStrategy.BYTES)


def single_media_type(
    content: Optional[dict[str, Any]], what: str
) -> Optional[tuple[str, dict[str, Any]]]:
    """Return the only ``(mime_type, media_type)`` entry of *content*, if any.

    Raises:
        GenerationError: If more than one MIME type is declared.
    """
    if not content:
        return None
    if len(content) > 1:
        raise GenerationError(
            f"multiple MIME types for {what} are not supported: {', '.join(content)}"
        )
    mime_type, media_type = next(iter(content.items()))
    return str(mime_type), media_type if isinstance(media_type, dict) else {}


def request_body_plan(
    request_body: dict[str, Any],
    compiler: TypeModelCompiler,
    label: str,
) -> Optional[RequestBodyPlan]:
    """Plan the request body of the operation *label*; ``None`` when it declares no content."""
    entry = single_media_type(request_body.get("content"), f"the request body of {label}")
    if entry is None:
        return None
    mime_type, media_type = entry
    return RequestBodyPlan(
        body=body_plan(mime_type, media_type.get("schema"), compiler),
        required=bool(request_body.get("required", False)),
        description=request_body.get("description"),
    )
