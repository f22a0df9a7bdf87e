"""Decode request parameters and bodies, encode response bodies.

Each function applies one plan from :mod:`specdispatch.models` to raw
request data and raises the matching
:class:`~specdispatch.runtime.errors.EventError` on failure.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Optional, Union
from urllib.parse import unquote

import httpx
from pydantic import ValidationError

from specdispatch.model.base import ClosedEnum
from specdispatch.model.naming import mime_essence
from specdispatch.model.realize import ModelNamespace
from specdispatch.models import (
    BodyPlan,
    BodyStrategy,
    ParameterLocation,
    ParameterPlan,
    RequestBodyPlan,
    TypeRef,
    TypeRefKind,
)
from specdispatch.runtime.errors import (
    InvalidBodyBase64,
    InvalidBodyJson,
    InvalidBodyUtf8,
    InvalidHeaderEncoding,
    InvalidRequestPathParam,
    InvalidRequestQueryParam,
    MissingRequestBody,
    MissingRequestHeader,
    MissingRequestParam,
    ResponseSerializationError,
    UnexpectedContentType,
)
from specdispatch.runtime.events import ProxyRequest


CONTENT_TYPE = "content-type"


# ------------------------------------------------------------------ #
# Headers
# ------------------------------------------------------------------ #


def request_headers(request: ProxyRequest) -> httpx.Headers:
    """Build the header multimap of *request*.

    Raises:
        InvalidHeaderEncoding: If a header cannot be encoded (names must be
            ASCII, values UTF-8).
    """
    raw: list[tuple[bytes, bytes]] = []
    for name, value in request.header_items():
        try:
            raw.append((name.encode("ascii"), value.encode("utf-8")))
        except UnicodeEncodeError as exc:
            raise InvalidHeaderEncoding(name) from exc
    return httpx.Headers(raw)


# ------------------------------------------------------------------ #
# Parameters
# ------------------------------------------------------------------ #


def extract_parameters(
    plans: list[ParameterPlan],
    request: ProxyRequest,
    headers: httpx.Headers,
    namespace: ModelNamespace,
) -> dict[str, Any]:
    """Return the handler's parameter arguments, keyed by Python name.

    Optional parameters that are absent are passed as ``None``.
    """
    return {
        plan.python_name: extract_parameter(plan, request, headers, namespace)
        for plan in plans
    }


def extract_parameter(
    plan: ParameterPlan,
    request: ProxyRequest,
    headers: httpx.Headers,
    namespace: ModelNamespace,
) -> Any:
    """Extract and parse one parameter.

    Path parameters are percent-decoded first; the gateway passes path
    segments through undecoded but decodes query strings itself.

    Raises:
        MissingRequestParam: If a required parameter is absent.
        InvalidRequestPathParam: If a path parameter fails to decode or parse.
        InvalidRequestQueryParam: If a query parameter fails to parse.
    """
    if plan.location == ParameterLocation.PATH:
        raw = request.path_parameters.get(plan.name)
        if raw is not None:
            try:
                raw = unquote(raw, errors="strict")
            except UnicodeDecodeError as exc:
                raise InvalidRequestPathParam(plan.name, str(exc)) from exc
        value = _parse_optional(plan, raw, namespace, InvalidRequestPathParam)
    elif plan.location == ParameterLocation.QUERY:
        if plan.is_array:
            raw_values = request.query_values(plan.name)
            value = None
            if raw_values is not None:
                value = [
                    _parse(plan, item, namespace, InvalidRequestQueryParam)
                    for item in raw_values
                ]
        else:
            value = _parse_optional(
                plan, request.query_value(plan.name), namespace, InvalidRequestQueryParam
            )
    else:
        # Header parameters are always plain strings.
        value = headers.get(plan.name)

    if value is None and plan.required:
        raise MissingRequestParam(plan.name)
    return value


def _parse_optional(
    plan: ParameterPlan, raw: Optional[str], namespace: ModelNamespace, error: type
) -> Any:
    if raw is None:
        return None
    return _parse(plan, raw, namespace, error)


def _parse(plan: ParameterPlan, raw: str, namespace: ModelNamespace, error: type) -> Any:
    if not plan.parse:
        return raw
    value_type = plan.type.item if plan.is_array and plan.type.item else plan.type
    try:
        return parse_scalar(value_type, raw, namespace)
    except (ValidationError, ValueError) as exc:
        raise error(plan.name, str(exc)) from exc


def parse_scalar(value_type: TypeRef, raw: str, namespace: ModelNamespace) -> Any:
    """Parse the string *raw* into *value_type*.

    Enumerations match their rendered literals exactly; other scalars use
    pydantic's string-input rules (``"true"``, ``"42"``, ISO dates).

    Raises:
        InvalidEnumVariant: For an enumeration literal that is not a member.
        ValidationError: For any other malformed value.
    """
    if value_type.kind == TypeRefKind.NAMED:
        cls = getattr(namespace, value_type.name or "")
        if isinstance(cls, type) and issubclass(cls, ClosedEnum):
            return cls.parse(raw)
    return namespace.adapter(value_type).validate_strings(raw)


# ------------------------------------------------------------------ #
# Request bodies
# ------------------------------------------------------------------ #


def decode_request_body(
    plan: RequestBodyPlan,
    request: ProxyRequest,
    headers: httpx.Headers,
    namespace: ModelNamespace,
) -> Any:
    """Check the Content-Type, then decode the request body.

    The Content-Type check runs even when no body is sent: only simple
    content types may be submitted cross-origin without a preflight, so
    rejecting anything but the declared type closes that path.

    Raises:
        MissingRequestHeader: If there is no Content-Type header.
        UnexpectedContentType: If its MIME essence differs from the declared one.
        InvalidBodyBase64: If a base64-flagged body does not decode.
        MissingRequestBody: If a required body is absent.
        InvalidBodyJson: If a JSON body does not decode.
        InvalidBodyUtf8: If a text body is not UTF-8.
    """
    content_type = headers.get(CONTENT_TYPE)
    if content_type is None:
        raise MissingRequestHeader(CONTENT_TYPE)
    if mime_essence(content_type) != mime_essence(plan.body.mime_type):
        raise UnexpectedContentType(content_type)

    raw = raw_request_body(request)
    if raw is None:
        if plan.required:
            raise MissingRequestBody()
        return None
    return decode_body(plan.body, raw, namespace)


def raw_request_body(request: ProxyRequest) -> Optional[bytes]:
    """Return the raw body bytes of *request*, undoing the gateway's base64 encoding."""
    if request.body is None:
        return None
    if request.is_base64_encoded:
        try:
            return base64.b64decode(request.body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidBodyBase64(f"invalid base64 request body: {exc}") from exc
    return request.body.encode("utf-8")


def decode_body(plan: BodyPlan, raw: bytes, namespace: ModelNamespace) -> Any:
    """Decode *raw* according to *plan*."""
    strategy = plan.strategy
    if strategy == BodyStrategy.JSON_TYPED:
        assert plan.type is not None
        try:
            return namespace.adapter(plan.type).validate_json(raw, strict=True)
        except ValidationError as exc:
            first = exc.errors(include_url=False)[0]
            raise InvalidBodyJson(first["msg"], error_path(first["loc"])) from exc
    if strategy == BodyStrategy.JSON_VALUE:
        text = _utf8(raw)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidBodyJson(str(exc)) from exc
    if strategy in (BodyStrategy.JSON_STRING, BodyStrategy.TEXT):
        return _utf8(raw)
    return raw


def error_path(loc: tuple[Union[int, str], ...]) -> str:
    """Render a pydantic error location: ``("tags", 0, "name")`` -> ``tags[0].name``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path


def _utf8(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidBodyUtf8(str(exc)) from exc


# ------------------------------------------------------------------ #
# Response bodies
# ------------------------------------------------------------------ #


def encode_body(plan: BodyPlan, value: Any, namespace: ModelNamespace) -> Union[str, bytes]:
    """Encode a response body according to *plan*.

    JSON and text bodies become ``str``; binary bodies stay ``bytes``.

    Raises:
        ResponseSerializationError: If *value* does not fit the plan.
    """
    strategy = plan.strategy
    if strategy == BodyStrategy.JSON_TYPED:
        assert plan.type is not None
        adapter = namespace.adapter(plan.type)
        # Model serializers accept any model instance, so check the shape first.
        try:
            value = adapter.validate_python(value, strict=True)
        except ValidationError as exc:
            raise ResponseSerializationError(
                f"response body is not a {plan.type.describe()}: {exc}"
            ) from exc
        try:
            encoded = adapter.dump_json(value, by_alias=True, warnings="error")
        except Exception as exc:
            raise ResponseSerializationError(
                f"failed to serialize {plan.type.describe()} response body: {exc}"
            ) from exc
        return encoded.decode("utf-8")
    if strategy == BodyStrategy.JSON_VALUE:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise ResponseSerializationError(
                f"failed to serialize JSON response body: {exc}"
            ) from exc
    if strategy in (BodyStrategy.JSON_STRING, BodyStrategy.TEXT):
        if not isinstance(value, str):
            raise ResponseSerializationError(
                f"expected a str response body, got {type(value).__name__}"
            )
        return value
    if not isinstance(value, (bytes, bytearray)):
        raise ResponseSerializationError(
            f"expected a bytes response body, got {type(value).__name__}"
        )
    return bytes(value)
