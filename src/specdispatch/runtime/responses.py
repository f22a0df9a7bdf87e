"""Per-operation response types.

Each operation gets one response class named ``{OperationId}Response``
whose variants are nested subclasses, one per declared status code plus
``Default``::

    AddPetResponse.Ok(pet)                     # 200, JSON body
    AddPetResponse.NotFound()                  # 404, no body
    AddPetResponse.Default(503, "try later")   # status chosen at runtime

A handler returns a variant instance; the dispatcher serializes it with
:meth:`ApiResponse.into_http_response`.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

import httpx

from specdispatch.model.realize import ModelNamespace
from specdispatch.models import OperationPlan, ResponseVariant
from specdispatch.runtime.codec import encode_body
from specdispatch.runtime.events import HttpResponse


class ApiResponse:
    """Base of every response class and its variants."""

    __operation_id__: ClassVar[str] = ""
    __variants__: ClassVar[dict[str, type[ApiResponse]]] = {}
    __namespace__: ClassVar[Optional[ModelNamespace]] = None
    variant: ClassVar[Optional[ResponseVariant]] = None

    status_code: int
    body: Any

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        raise TypeError(
            f"{type(self).__name__} cannot be instantiated; use one of its variants "
            f"({', '.join(self.__variants__)})"
        )

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.status_code == other.status_code and self.body == other.body

    def __hash__(self) -> int:
        return hash((type(self), self.status_code))

    def __repr__(self) -> str:
        name = type(self).__qualname__
        if self.variant is not None and self.variant.is_default:
            args = [repr(self.status_code)]
        else:
            args = []
        if self.variant is not None and self.variant.body is not None:
            args.append(repr(self.body))
        return f"{name}({', '.join(args)})"

    def into_http_response(self, headers: Any = None) -> HttpResponse:
        """Serialize to an :class:`HttpResponse`.

        The ``Content-Type`` of the declared body is set first; *headers*
        (anything :class:`httpx.Headers` accepts) are appended after it.

        Raises:
            ResponseSerializationError: If the body cannot be encoded.
        """
        variant = self.variant
        assert variant is not None and self.__namespace__ is not None
        items: list[tuple[str, str]] = []
        body = None
        if variant.body is not None:
            items.append(("content-type", variant.body.mime_type))
            body = encode_body(variant.body, self.body, self.__namespace__)
        if headers is not None:
            items.extend(httpx.Headers(headers).multi_items())
        return HttpResponse(status_code=self.status_code, headers=httpx.Headers(items), body=body)


class _Fixed(ApiResponse):
    def __init__(self) -> None:
        self.status_code = self.variant.status_code
        self.body = None


class _FixedWithBody(ApiResponse):
    def __init__(self, body: Any) -> None:
        self.status_code = self.variant.status_code
        self.body = body


class _Dynamic(ApiResponse):
    def __init__(self, status_code: int) -> None:
        self.status_code = _check_status(status_code)
        self.body = None


class _DynamicWithBody(ApiResponse):
    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = _check_status(status_code)
        self.body = body


def _check_status(status_code: int) -> int:
    if isinstance(status_code, bool) or not isinstance(status_code, int):
        raise TypeError(f"status code must be an int, not {type(status_code).__name__}")
    if not 100 <= status_code <= 599:
        raise ValueError(f"invalid HTTP status code {status_code}")
    return status_code


def build_response_type(
    plan: OperationPlan, namespace: ModelNamespace, module: str = __name__
) -> type[ApiResponse]:
    """Create the response class of *plan* with one nested class per variant."""
    response_cls = type(
        plan.response_type_name,
        (ApiResponse,),
        {
            "__module__": module,
            "__doc__": f"Responses of `{plan.operation_id}` ({plan.method.value.upper()} {plan.path}).",
            "__operation_id__": plan.operation_id,
            "__namespace__": namespace,
        },
    )
    variants: dict[str, type[ApiResponse]] = {}
    for variant in plan.responses:
        if variant.is_default:
            base = _DynamicWithBody if variant.body is not None else _Dynamic
        else:
            base = _FixedWithBody if variant.body is not None else _Fixed
        variant_cls = type(
            variant.name,
            (base, response_cls),
            {
                "__module__": module,
                "__qualname__": f"{plan.response_type_name}.{variant.name}",
                "__doc__": variant.description,
                "variant": variant,
            },
        )
        variants[variant.name] = variant_cls
        setattr(response_cls, variant.name, variant_cls)
    response_cls.__variants__ = variants
    return response_cls
