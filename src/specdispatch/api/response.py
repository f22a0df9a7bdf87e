"""Response variant plans: one case per declared status code plus ``Default``."""

from __future__ import annotations

from typing import Any

from specdispatch.api.body import body_plan, single_media_type
from specdispatch.exceptions import GenerationError, UnsupportedSchemaError
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.models import ResponseVariant


DEFAULT_VARIANT = "Default"

STATUS_VARIANT_NAMES: dict[int, str] = {
    100: "Continue",
    101: "SwitchingProtocols",
    102: "Processing",
    200: "Ok",
    201: "Created",
    202: "Accepted",
    203: "NonAuthoritativeInformation",
    204: "NoContent",
    205: "ResetContent",
    206: "PartialContent",
    207: "MultiStatus",
    208: "AlreadyReported",
    226: "ImUsed",
    300: "MultipleChoices",
    301: "MovedPermanently",
    302: "Found",
    303: "SeeOther",
    304: "NotModified",
    305: "UseProxy",
    307: "TemporaryRedirect",
    308: "PermanentRedirect",
    400: "BadRequest",
    # 401 is named for what it means rather than for its standard reason phrase.
    401: "Unauthenticated",
    402: "PaymentRequired",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    406: "NotAcceptable",
    407: "ProxyAuthenticationRequired",
    408: "RequestTimeout",
    409: "Conflict",
    410: "Gone",
    411: "LengthRequired",
    412: "PreconditionFailed",
    413: "PayloadTooLarge",
    414: "UriTooLong",
    415: "UnsupportedMediaType",
    416: "RangeNotSatisfiable",
    417: "ExpectationFailed",
    418: "ImATeapot",
    421: "MisdirectedRequest",
    422: "UnprocessableEntity",
    423: "Locked",
    424: "FailedDependency",
    426: "UpgradeRequired",
    428: "PreconditionRequired",
    429: "TooManyRequests",
    431: "RequestHeaderFieldsTooLarge",
    451: "UnavailableForLegalReasons",
    500: "InternalServerError",
    501: "NotImplemented",
    502: "BadGateway",
    503: "ServiceUnavailable",
    504: "GatewayTimeout",
    505: "HttpVersionNotSupported",
    506: "VariantAlsoNegotiates",
    507: "InsufficientStorage",
    508: "LoopDetected",
    510: "NotExtended",
    511: "NetworkAuthenticationRequired",
}


def status_variant_name(status_code: int) -> str:
    """``200`` -> ``Ok``, ``299`` -> ``HttpStatus299``."""
    return STATUS_VARIANT_NAMES.get(status_code, f"HttpStatus{status_code}")


def parse_status_code(key: str, label: str) -> int:
    """Parse a ``responses`` key into a status code.

    Raises:
        UnsupportedSchemaError: For status ranges such as ``2XX``.
        GenerationError: For keys that are not valid HTTP status codes.
    """
    if len(key) == 3 and key[0] in "12345" and key[1:].upper() == "XX":
        raise UnsupportedSchemaError(
            f"response status code ranges are not supported ({key} in {label})"
        )
    if not key.isdigit() or not 100 <= int(key) <= 599:
        raise GenerationError(f"invalid HTTP status code `{key}` in {label}")
    return int(key)


def response_variants(
    responses: dict[str, Any],
    compiler: TypeModelCompiler,
    label: str,
) -> list[ResponseVariant]:
    """Plan the response enum of operation *label*.

    Status codes keep their declaration order; ``default`` comes last.
    """
    variants: list[ResponseVariant] = []
    default = None
    for key, response in responses.items():
        if key == "default":
            default = response
            continue
        status_code = parse_status_code(str(key), label)
        variants.append(
            _variant(status_variant_name(status_code), status_code, response, compiler, label)
        )
    if default is not None:
        variants.append(_variant(DEFAULT_VARIANT, None, default, compiler, label))
    return variants


def _variant(
    name: str,
    status_code: int | None,
    response: dict[str, Any],
    compiler: TypeModelCompiler,
    label: str,
) -> ResponseVariant:
    entry = single_media_type(response.get("content"), f"the `{name}` response of {label}")
    body = None
    if entry is not None:
        mime_type, media_type = entry
        body = body_plan(mime_type, media_type.get("schema"), compiler)
    return ResponseVariant(
        name=name,
        status_code=status_code,
        body=body,
        description=response.get("description"),
    )
