"""Route proxy requests to operation handlers.

:class:`Dispatcher` owns one :class:`OperationWrapper` per operation of a
compiled API. A wrapper runs the request through a fixed sequence and
stops at the first failure:

1. extract and parse parameters, check the Content-Type and decode the body;
2. authenticate, for operations that require it;
3. call the handler inside the middleware's wrap hook;
4. map a :class:`~specdispatch.runtime.handler.HandlerError` through
   ``respond_to_handler_error``;
5. serialize the returned response variant and merge its extra headers.

Request-time errors from steps 1 and 5 go through
``respond_to_event_error``. Any other exception, from any step or from
the user's code, is caught in :meth:`Dispatcher.dispatch` and answered
with a bodyless 500, so a single request can never take down the host.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Union

import httpx

from specdispatch.models import OperationPlan
from specdispatch.runtime.codec import decode_request_body, extract_parameters, request_headers
from specdispatch.runtime.errors import (
    EventError,
    ResponseSerializationError,
    UnexpectedOperationId,
    UnhandledFault,
)
from specdispatch.runtime.events import (
    HttpResponse,
    ProxyRequest,
    ProxyRequestContext,
    ProxyResponse,
)
from specdispatch.runtime.handler import ApiHandler, HandlerError
from specdispatch.runtime.middleware import AuthenticationRejected, Middleware
from specdispatch.runtime.responses import ApiResponse

if TYPE_CHECKING:
    from specdispatch.codegen.generator import CompiledApi


logger = logging.getLogger(__name__)


class Dispatcher:
    """Dispatch proxy requests for one compiled API.

    Args:
        api: The compiled API (operation plans, models and response types).
        handler: The implementation of the API's operations.
        middleware: Authentication and wrapping hooks.

    Example::

        dispatcher = Dispatcher(api, PetApiHandler(), PetMiddleware())
        response = await dispatcher.dispatch(event, context)
        return response.to_event()
    """

    def __init__(self, api: CompiledApi, handler: ApiHandler, middleware: Middleware) -> None:
        self.api = api
        self.handler = handler
        self.middleware = middleware
        self._wrappers = {
            plan.operation_id: OperationWrapper(plan, api, handler, middleware)
            for plan in api.operations
        }

    @property
    def operation_ids(self) -> list[str]:
        return list(self._wrappers)

    async def dispatch(
        self, request: Union[ProxyRequest, dict[str, Any]], context: Any = None
    ) -> ProxyResponse:
        """Handle one request. Never raises :class:`Exception`.

        Args:
            request: The proxy request, or the raw event mapping.
            context: The host's execution context, passed through to the
                middleware and handlers.

        Returns:
            The response envelope.
        """
        try:
            if not isinstance(request, ProxyRequest):
                request = ProxyRequest.model_validate(request)
            response = await self._route(request, context)
            return response.to_proxy_response()
        except Exception as exc:
            return await self._respond_to_fault(exc)

    async def _route(self, request: ProxyRequest, context: Any) -> HttpResponse:
        logger.debug("Request: %r", request)
        operation_id = request.request_context.operation_name
        if not operation_id:
            return await self.handler.respond_to_event_error(
                UnexpectedOperationId("<no operationName in request context>")
            )
        wrapper = self._wrappers.get(operation_id)
        if wrapper is None:
            return await self.handler.respond_to_event_error(UnexpectedOperationId(operation_id))
        return await wrapper(request, context)

    async def _respond_to_fault(self, exc: Exception) -> ProxyResponse:
        fault = UnhandledFault(f"unhandled {type(exc).__name__}: {exc}")
        fault.__cause__ = exc
        try:
            response = await self.handler.respond_to_event_error(fault)
            return response.to_proxy_response()
        except Exception:
            logger.exception("respond_to_event_error failed while handling an unhandled fault")
            return fault.to_response().to_proxy_response()


class OperationWrapper:
    """Runs one operation's request pipeline (see the module docstring)."""

    def __init__(
        self,
        plan: OperationPlan,
        api: CompiledApi,
        handler: ApiHandler,
        middleware: Middleware,
    ) -> None:
        self.plan = plan
        self.models = api.models
        self.response_type: type[ApiResponse] = api.responses[plan.operation_id]
        self.handler = handler
        self.middleware = middleware

    async def __call__(self, request: ProxyRequest, context: Any) -> HttpResponse:
        plan = self.plan
        logger.info(
            "Handling HTTP %s %s (%s)",
            plan.method.value.upper(),
            request.path,
            plan.operation_id,
        )

        try:
            headers = request_headers(request)
            arguments = extract_parameters(plan.parameters, request, headers, self.models)
            if plan.request_body is not None:
                arguments["request_body"] = decode_request_body(
                    plan.request_body, request, headers, self.models
                )
        except EventError as err:
            return await self.handler.respond_to_event_error(err)

        for name, value in arguments.items():
            logger.debug("Request argument `%s`: %r", name, value)

        if not plan.authenticated:

            async def call_unauthenticated(
                headers: httpx.Headers, request_context: ProxyRequestContext, context: Any
            ) -> HttpResponse:
                return await self._call_handler(
                    arguments,
                    headers=headers,
                    request_context=request_context,
                    context=context,
                )

            return await self.middleware.wrap_unauthenticated(
                call_unauthenticated,
                plan.operation_id,
                headers,
                request.request_context,
                context,
            )

        try:
            auth_ok = await self.middleware.authenticate(
                plan.operation_id, headers, request.request_context, context
            )
        except AuthenticationRejected as rejected:
            return rejected.response

        async def call_authenticated(
            headers: httpx.Headers,
            request_context: ProxyRequestContext,
            context: Any,
            auth_ok: Any,
        ) -> HttpResponse:
            return await self._call_handler(
                arguments,
                headers=headers,
                request_context=request_context,
                context=context,
                auth_ok=auth_ok,
            )

        return await self.middleware.wrap_authenticated(
            call_authenticated,
            plan.operation_id,
            headers,
            request.request_context,
            context,
            auth_ok,
        )

    async def _call_handler(self, arguments: dict[str, Any], **extra: Any) -> HttpResponse:
        method = getattr(self.handler, self.plan.handler_name)
        try:
            result = await method(**arguments, **extra)
        except HandlerError as err:
            return await self.handler.respond_to_handler_error(err)

        if isinstance(result, tuple) and len(result) == 2:
            response, response_headers = result
        else:
            response, response_headers = result, None
        logger.debug("Response: %r", response)

        try:
            if not isinstance(response, self.response_type):
                raise ResponseSerializationError(
                    f"handler `{self.plan.handler_name}` returned {type(response).__name__}, "
                    f"expected a variant of {self.response_type.__name__}"
                )
            return response.into_http_response(response_headers)
        except EventError as err:
            return await self.handler.respond_to_event_error(err)
