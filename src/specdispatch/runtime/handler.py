"""Base class for API implementations.

Each compiled API exposes an abstract ``Api`` subclass of
:class:`ApiHandler` with one coroutine method per operation. An
implementation subclasses it, fills in the operations and maps its own
failures to responses::

    class PetApiHandler(api.Api):
        async def respond_to_handler_error(self, err):
            return HttpResponse(status_code=500)

        async def add_pet(self, *, request_body, headers, request_context, context, auth_ok):
            return api.responses["addPet"].Ok(request_body)
"""

from __future__ import annotations

import abc
import logging
from typing import Any, ClassVar

from specdispatch.runtime.errors import EventError, format_error
from specdispatch.runtime.events import HttpResponse, ProxyRequest, ProxyResponse
from specdispatch.runtime.middleware import Middleware


logger = logging.getLogger(__name__)


class HandlerError(Exception):
    """Base of the errors operation handlers raise to report a failure.

    The dispatcher passes these to :meth:`ApiHandler.respond_to_handler_error`.
    Any other exception escaping a handler is treated as an internal fault.
    """


class ApiHandler(abc.ABC):
    """Abstract API implementation."""

    # Set on the generated ``Api`` class of each compiled API.
    __compiled_api__: ClassVar[Any] = None

    @abc.abstractmethod
    async def respond_to_handler_error(self, err: HandlerError) -> HttpResponse:
        """Map a failure raised by one of the operation handlers to a response."""

    async def respond_to_event_error(self, err: EventError) -> HttpResponse:
        """Map a request-time error to a response.

        The default logs the error with its causes and returns
        :meth:`EventError.to_response`.
        """
        message = format_error(
            err, f"EventError.{err.name}", include_traceback=err.status_code >= 500
        )
        if err.status_code >= 500:
            logger.error("%s", message)
        else:
            logger.warning("%s", message)
        return err.to_response()

    async def dispatch(
        self,
        request: ProxyRequest | dict[str, Any],
        context: Any = None,
        middleware: Middleware | None = None,
    ) -> ProxyResponse:
        """Dispatch *request* to this handler through the compiled API it implements.

        Args:
            request: The proxy request (or its raw event mapping).
            context: The host's execution context, passed through to handlers.
            middleware: Defaults to no authentication.
        """
        from specdispatch.runtime.dispatcher import Dispatcher
        from specdispatch.runtime.middleware import UnauthenticatedMiddleware

        compiled_api = type(self).__compiled_api__
        if compiled_api is None:
            raise TypeError(
                f"{type(self).__name__} does not implement a compiled API; "
                "subclass the `Api` class of a compiled API"
            )
        dispatcher = Dispatcher(compiled_api, self, middleware or UnauthenticatedMiddleware())
        return await dispatcher.dispatch(request, context)
