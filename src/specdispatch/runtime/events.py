"""Proxy request/response envelope exchanged with the API gateway.

The field names follow the REST API Lambda proxy integration event, so a
raw event mapping can be validated directly::

    request = ProxyRequest.model_validate(event)
    response: ProxyResponse = await dispatcher.dispatch(request, context)
    return response.to_event()

Inside the dispatcher responses are built as :class:`HttpResponse` values
and only converted to the envelope at the boundary.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProxyRequestContext(BaseModel):
    """Request metadata added by the gateway.

    ``operation_name`` carries the operationId of the matched operation
    and is what the dispatcher routes on. Unknown fields are kept.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    operation_name: Optional[str] = Field(default=None, alias="operationName")
    request_id: Optional[str] = Field(default=None, alias="requestId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    api_id: Optional[str] = Field(default=None, alias="apiId")
    stage: Optional[str] = None
    resource_path: Optional[str] = Field(default=None, alias="resourcePath")
    http_method: Optional[str] = Field(default=None, alias="httpMethod")
    identity: dict[str, Any] = Field(default_factory=dict)
    authorizer: Optional[dict[str, Any]] = None


class ProxyRequest(BaseModel):
    """An incoming request with pre-split path and query parameters.

    ``body`` is the raw body text; when ``is_base64_encoded`` is set it
    holds the base64 encoding of the raw bytes instead.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    resource: Optional[str] = None
    path: Optional[str] = None
    http_method: Optional[str] = Field(default=None, alias="httpMethod")
    headers: dict[str, str] = Field(default_factory=dict)
    multi_value_headers: dict[str, list[str]] = Field(
        default_factory=dict, alias="multiValueHeaders"
    )
    query_string_parameters: dict[str, str] = Field(
        default_factory=dict, alias="queryStringParameters"
    )
    multi_value_query_string_parameters: dict[str, list[str]] = Field(
        default_factory=dict, alias="multiValueQueryStringParameters"
    )
    path_parameters: dict[str, str] = Field(default_factory=dict, alias="pathParameters")
    stage_variables: dict[str, str] = Field(default_factory=dict, alias="stageVariables")
    request_context: ProxyRequestContext = Field(
        default_factory=ProxyRequestContext, alias="requestContext"
    )
    body: Optional[str] = None
    is_base64_encoded: bool = Field(default=False, alias="isBase64Encoded")

    @field_validator(
        "headers",
        "multi_value_headers",
        "query_string_parameters",
        "multi_value_query_string_parameters",
        "path_parameters",
        "stage_variables",
        mode="before",
    )
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # The gateway sends ``null`` rather than ``{}`` for empty maps.
        return {} if value is None else value

    @field_validator("request_context", mode="before")
    @classmethod
    def _null_context(cls, value: Any) -> Any:
        return {} if value is None else value

    def header_items(self) -> list[tuple[str, str]]:
        """Return every header as a ``(name, value)`` pair, repeated headers included."""
        if self.multi_value_headers:
            return [
                (name, value)
                for name, values in self.multi_value_headers.items()
                for value in values
            ]
        return list(self.headers.items())

    def query_value(self, name: str) -> Optional[str]:
        """Return the single value of query parameter *name*, if present."""
        if name in self.query_string_parameters:
            return self.query_string_parameters[name]
        values = self.multi_value_query_string_parameters.get(name)
        return values[0] if values else None

    def query_values(self, name: str) -> Optional[list[str]]:
        """Return every value of the repeated query parameter *name*, if present."""
        if name in self.multi_value_query_string_parameters:
            return list(self.multi_value_query_string_parameters[name])
        if name in self.query_string_parameters:
            return [self.query_string_parameters[name]]
        return None


class ProxyResponse(BaseModel):
    """The response envelope handed back to the gateway."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    headers: dict[str, str] = Field(default_factory=dict)
    multi_value_headers: dict[str, list[str]] = Field(
        default_factory=dict, alias="multiValueHeaders"
    )
    body: Optional[str] = None
    is_base64_encoded: bool = Field(default=False, alias="isBase64Encoded")

    def to_event(self) -> dict[str, Any]:
        """Serialize with the gateway's field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class HttpResponse:
    """A response as produced by handlers, middleware and error mappings.

    ``body`` is text, raw bytes, or ``None`` for an empty body.
    """

    status_code: int = 200
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Union[str, bytes, None] = None

    def to_proxy_response(self) -> ProxyResponse:
        """Convert to the gateway envelope; binary bodies are base64-encoded."""
        multi_value_headers: dict[str, list[str]] = {}
        for name, value in httpx.Headers(self.headers).multi_items():
            multi_value_headers.setdefault(name, []).append(value)

        if isinstance(self.body, (bytes, bytearray)):
            body: Optional[str] = base64.b64encode(bytes(self.body)).decode("ascii")
            is_base64_encoded = True
        else:
            body = self.body
            is_base64_encoded = False

        return ProxyResponse(
            status_code=self.status_code,
            multi_value_headers=multi_value_headers,
            body=body,
            is_base64_encoded=is_base64_encoded,
        )
