"""Authentication and request-wrapping hooks.

A :class:`Middleware` is injected into the dispatcher. It authenticates
requests to operations that require it and may wrap every handler call,
e.g. to add telemetry or response headers.
"""

from __future__ import annotations

import abc
from typing import Any, Awaitable, Callable

import httpx

from specdispatch.runtime.events import HttpResponse, ProxyRequestContext


AuthenticatedHandler = Callable[
    [httpx.Headers, ProxyRequestContext, Any, Any], Awaitable[HttpResponse]
]
UnauthenticatedHandler = Callable[
    [httpx.Headers, ProxyRequestContext, Any], Awaitable[HttpResponse]
]


class AuthenticationRejected(Exception):
    """Raised by :meth:`Middleware.authenticate` to refuse a request.

    Args:
        response: Returned to the client as is (typically a 401).
    """

    def __init__(self, response: HttpResponse):
        super().__init__(f"authentication rejected with status {response.status_code}")
        self.response = response


class Middleware(abc.ABC):
    """Hooks around each request.

    The dispatcher only calls :meth:`authenticate`, :meth:`wrap_authenticated`
    and :meth:`wrap_unauthenticated`, so any object with those three
    coroutines can be passed in. Subclassing adds the pass-through wrap
    defaults and an abstract-method check at construction.

    Example::

        class BearerMiddleware(Middleware):
            async def authenticate(self, operation_id, headers, request_context, context):
                token = headers.get("authorization", "").removeprefix("Bearer ")
                user = await sessions.lookup(token)
                if user is None:
                    raise AuthenticationRejected(HttpResponse(status_code=401))
                return user
    """

    @abc.abstractmethod
    async def authenticate(
        self,
        operation_id: str,
        headers: httpx.Headers,
        request_context: ProxyRequestContext,
        context: Any,
    ) -> Any:
        """Authenticate the current request.

        Only called for operations that require authentication.

        Args:
            operation_id: The operation being requested.
            headers: Request headers.
            request_context: Gateway request metadata.
            context: The host's execution context.

        Returns:
            The authenticated identity, passed to the handler as ``auth_ok``.

        Raises:
            AuthenticationRejected: To answer the request without calling
                the handler.
        """

    async def wrap_authenticated(
        self,
        handler: AuthenticatedHandler,
        operation_id: str,
        headers: httpx.Headers,
        request_context: ProxyRequestContext,
        context: Any,
        auth_ok: Any,
    ) -> HttpResponse:
        """Run *handler* for an authenticated request.

        Overrides must await ``handler(headers, request_context, context, auth_ok)``
        and return (or adjust) its response.
        """
        return await handler(headers, request_context, context, auth_ok)

    async def wrap_unauthenticated(
        self,
        handler: UnauthenticatedHandler,
        operation_id: str,
        headers: httpx.Headers,
        request_context: ProxyRequestContext,
        context: Any,
    ) -> HttpResponse:
        """Run *handler* for a request to an operation without authentication.

        Overrides must await ``handler(headers, request_context, context)``.
        """
        return await handler(headers, request_context, context)


class UnauthenticatedMiddleware(Middleware):
    """Middleware for APIs that perform no authentication; ``auth_ok`` is always ``None``."""

    async def authenticate(
        self,
        operation_id: str,
        headers: httpx.Headers,
        request_context: ProxyRequestContext,
        context: Any,
    ) -> None:
        return None
