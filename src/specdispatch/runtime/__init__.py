"""Request-time support for compiled APIs.

The pieces a deployable unit works with directly:

* :class:`ProxyRequest` / :class:`ProxyResponse` -- the gateway envelope.
* :class:`HttpResponse` -- what handlers, middleware and error mappings return.
* :class:`Middleware` -- authentication and wrap hooks.
* :class:`ApiHandler` and :class:`HandlerError` -- the implementation base.
* :class:`Dispatcher` -- routes a request to its operation.
* :class:`EventError` and its subclasses -- request-time failures.
"""

from specdispatch.runtime.dispatcher import Dispatcher, OperationWrapper
from specdispatch.runtime.errors import (
    EventError,
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
    UnexpectedOperationId,
    UnhandledFault,
    format_error,
)
from specdispatch.runtime.events import (
    HttpResponse,
    ProxyRequest,
    ProxyRequestContext,
    ProxyResponse,
)
from specdispatch.runtime.handler import ApiHandler, HandlerError
from specdispatch.runtime.middleware import (
    AuthenticationRejected,
    Middleware,
    UnauthenticatedMiddleware,
)
from specdispatch.runtime.responses import ApiResponse, build_response_type

__all__ = [
    "ApiHandler",
    "ApiResponse",
    "AuthenticationRejected",
    "Dispatcher",
    "EventError",
    "HandlerError",
    "HttpResponse",
    "InvalidBodyBase64",
    "InvalidBodyJson",
    "InvalidBodyUtf8",
    "InvalidHeaderEncoding",
    "InvalidRequestPathParam",
    "InvalidRequestQueryParam",
    "Middleware",
    "MissingRequestBody",
    "MissingRequestHeader",
    "MissingRequestParam",
    "OperationWrapper",
    "ProxyRequest",
    "ProxyRequestContext",
    "ProxyResponse",
    "ResponseSerializationError",
    "UnauthenticatedMiddleware",
    "UnexpectedContentType",
    "UnexpectedOperationId",
    "UnhandledFault",
    "build_response_type",
    "format_error",
]
