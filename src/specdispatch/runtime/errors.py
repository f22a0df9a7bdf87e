"""Request-time error model.

Every failure the dispatcher itself detects is an :class:`EventError`
subclass. Each class fixes its status code: client problems (bad
parameters, bodies, content types) are 400s and carry a plain-text message
for the client, everything else is a 500 with an empty body so internals
never leak.

Subclass hierarchy::

    EventError
    +-- InvalidBodyBase64           (500)
    +-- InvalidBodyJson             (400)
    +-- InvalidBodyUtf8             (400)
    +-- InvalidHeaderEncoding       (400)
    +-- InvalidRequestPathParam     (400)
    +-- InvalidRequestQueryParam    (400)
    +-- MissingRequestBody          (400)
    +-- MissingRequestHeader        (400)
    +-- MissingRequestParam         (400)
    +-- UnexpectedContentType       (400)
    +-- UnexpectedOperationId       (500)
    +-- UnhandledFault              (500)
    +-- ResponseSerializationError  (500)
"""

from __future__ import annotations

import logging
import traceback
from typing import Optional

import httpx

from specdispatch.runtime.events import HttpResponse


logger = logging.getLogger(__name__)

TEXT_PLAIN = "text/plain"


class EventError(Exception):
    """Base of every error the dispatcher turns into an HTTP response.

    Args:
        message: Internal description, used in logs.
    """

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message or type(self).__name__)

    @property
    def name(self) -> str:
        return type(self).__name__

    def client_message(self) -> Optional[str]:
        """Return the text shown to the client, or ``None`` for an empty body."""
        return None

    def to_response(self) -> HttpResponse:
        """Build the client-facing response for this error."""
        body = self.client_message()
        headers = httpx.Headers()
        if body is None:
            logger.warning("Responding with error status %s", self.status_code)
        else:
            logger.warning("Responding with error status %s: %s", self.status_code, body)
            headers["content-type"] = TEXT_PLAIN
        return HttpResponse(status_code=self.status_code, headers=headers, body=body)


class _ClientError(EventError):
    status_code = 400
    _client_text = ""

    def client_message(self) -> Optional[str]:
        return self._client_text


# --- Body ---


class InvalidBodyBase64(EventError):
    """The gateway marked the body as base64 but it does not decode."""


class InvalidBodyJson(_ClientError):
    """The body is not valid JSON or does not match the declared schema.

    Args:
        message: The decoder's description of the first problem.
        path: Location of the problem inside the body (``tags[0].name``),
            empty for the document root.
    """

    def __init__(self, message: str, path: str = ""):
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)

    def client_message(self) -> Optional[str]:
        if not self.path:
            return f"Invalid request body: {self.message}"
        return f"Invalid request body (path: `{self.path}`): {self.message}"


class InvalidBodyUtf8(_ClientError):
    """A text body is not valid UTF-8."""

    _client_text = "Request body must be UTF-8 encoded"


class MissingRequestBody(_ClientError):
    """A required request body is absent."""

    _client_text = "Missing request body"


class UnexpectedContentType(_ClientError):
    """The ``Content-Type`` header does not match the declared body MIME type."""

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"unexpected content type `{content_type}`")

    def client_message(self) -> Optional[str]:
        return f"Unexpected content type `{self.content_type}`"


# --- Headers and parameters ---


class InvalidHeaderEncoding(_ClientError):
    """A header value cannot be represented as UTF-8."""

    def __init__(self, header: str):
        self.header = header
        super().__init__(f"header `{header}` is not UTF-8 encoded")

    def client_message(self) -> Optional[str]:
        return f"Invalid value for header `{self.header}`: must be UTF-8 encoded"


class MissingRequestHeader(_ClientError):
    def __init__(self, header: str):
        self.header = header
        super().__init__(f"missing request header `{header}`")

    def client_message(self) -> Optional[str]:
        return f"Missing request header `{self.header}`"


class InvalidRequestPathParam(_ClientError):
    def __init__(self, param_name: str, message: str = ""):
        self.param_name = param_name
        super().__init__(f"invalid path parameter `{param_name}`: {message}")

    def client_message(self) -> Optional[str]:
        return f"Invalid `{self.param_name}` request path parameter"


class InvalidRequestQueryParam(_ClientError):
    def __init__(self, param_name: str, message: str = ""):
        self.param_name = param_name
        super().__init__(f"invalid query parameter `{param_name}`: {message}")

    def client_message(self) -> Optional[str]:
        return f"Invalid `{self.param_name}` query parameter"


class MissingRequestParam(_ClientError):
    def __init__(self, param_name: str):
        self.param_name = param_name
        super().__init__(f"missing required parameter `{param_name}`")

    def client_message(self) -> Optional[str]:
        return f"Missing required parameter `{self.param_name}`"


# --- Internal ---


class UnexpectedOperationId(EventError):
    """The request names an operation this dispatcher does not serve."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"unexpected operation `{operation_id}`")


class UnhandledFault(EventError):
    """An exception escaped a handler, the middleware or the dispatcher itself."""


class ResponseSerializationError(EventError):
    """The handler's response could not be encoded."""


def format_error(
    err: BaseException, name: Optional[str] = None, include_traceback: bool = False
) -> str:
    """Render *err* and its chain of causes for a log line.

    Args:
        err: The error to render.
        name: Label printed before the message (``EventError.MissingRequestBody``).
        include_traceback: Append the stack trace of *err* itself.

    Returns:
        A multi-line string: the error, optionally its stack trace, then
        one ``caused by:`` line per chained exception.

    Example::

        >>> try:
        ...     raise InvalidBodyBase64("bad body") from ValueError("Incorrect padding")
        ... except EventError as err:
        ...     print(format_error(err, "EventError.InvalidBodyBase64"))
        EventError.InvalidBodyBase64: bad body
          caused by: Incorrect padding
    """
    line = f"{name}: {err}" if name else str(err)
    if include_traceback and err.__traceback__ is not None:
        stack = "".join(traceback.format_tb(err.__traceback__)).rstrip()
        line += "\n  stack trace:\n" + "\n".join(
            f"    {frame}" for frame in stack.splitlines()
        )

    causes = []
    seen = {id(err)}
    cause = _next_cause(err)
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        causes.append(f"  caused by: {cause}")
        cause = _next_cause(cause)

    return "\n".join([line, *causes])


def _next_cause(err: BaseException) -> Optional[BaseException]:
    if err.__cause__ is not None:
        return err.__cause__
    if err.__suppress_context__:
        return None
    return err.__context__
