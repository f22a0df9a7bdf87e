"""Base classes for runtime-realized types.

Every struct and union variant produced by
:func:`~specdispatch.model.realize.realize_types` derives from
:class:`CompiledModel`; every closed enumeration from :class:`ClosedEnum`.
The bases carry the wire conventions shared by all generated types:

* fields are populated by wire name (alias) or Python name;
* optional fields that are absent (``None``) are omitted on output, while
  required fields are always written;
* tagged-union variants consume their discriminator on input and write it
  back first on output;
* enumerations decode only their exact original literals and render back
  to the same literal.
"""

from __future__ import annotations

import enum
from typing import Any, ClassVar, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    GetCoreSchemaHandler,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
    model_validator,
)
from pydantic_core import core_schema


class CompiledModel(BaseModel):
    """Base of every realized struct and union variant."""

    model_config = ConfigDict(
        populate_by_name=True,
        protected_namespaces=(),
        extra="ignore",
    )

    __required_fields__: ClassVar[frozenset[str]] = frozenset()
    __discriminator_field__: ClassVar[Optional[str]] = None
    __discriminator_value__: ClassVar[Optional[str]] = None

    @model_validator(mode="before")
    @classmethod
    def _consume_discriminator(cls, data: Any) -> Any:
        field = cls.__discriminator_field__
        if field is not None and isinstance(data, dict) and field in data:
            return {key: value for key, value in data.items() if key != field}
        return data

    @model_serializer(mode="wrap")
    def _serialize(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> dict[str, Any]:
        data = handler(self)
        cls = type(self)
        for name, field in cls.model_fields.items():
            if name in cls.__required_fields__ or getattr(self, name) is not None:
                continue
            key = field.alias if info.by_alias and field.alias else name
            data.pop(key, None)
        if cls.__discriminator_field__ is not None:
            data = {cls.__discriminator_field__: cls.__discriminator_value__, **data}
        return data


class CompiledUnion(CompiledModel):
    """Base of a union's variants.

    The union class itself carries no fields; each variant is a subclass
    reachable as an attribute (``Shape.Circle``), so ``isinstance(value,
    Shape)`` holds for every decoded variant.
    """

    __variants__: ClassVar[dict[str, type[CompiledModel]]] = {}


class EmptyModel(CompiledModel):
    """The single type shared by every property-less, closed object schema."""


class InvalidEnumVariant(ValueError):
    """Raised when a value is not one of an enumeration's literals."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"invalid enum variant `{render_literal(value)}`")


def render_literal(value: Any) -> str:
    """Render an enumeration literal the way it appears in a URL or header."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _same_literal(expected: Any, value: Any) -> bool:
    if isinstance(expected, bool) or isinstance(value, bool):
        return isinstance(expected, bool) and isinstance(value, bool) and expected == value
    if isinstance(expected, (int, float)) and isinstance(value, (int, float)):
        return expected == value
    return type(expected) is type(value) and expected == value


class ClosedEnum(enum.Enum):
    """Base of every realized enumeration.

    Members are named with generated identifiers but keep the original
    literal as their value, which is what is decoded, rendered and parsed.

    Example::

        Color = ClosedEnum("Color", [("Red", "red"), ("EmptyString", "")])
        Color.parse("red") is Color.Red   # True
        str(Color.EmptyString)            # ''
        Color.parse("purple")             # raises InvalidEnumVariant
    """

    @classmethod
    def parse(cls, raw: str) -> ClosedEnum:
        """Return the member whose rendered literal equals *raw*.

        Raises:
            InvalidEnumVariant: If no member matches.
        """
        for member in cls:
            if render_literal(member.value) == raw:
                return member
        raise InvalidEnumVariant(raw)

    @classmethod
    def from_literal(cls, value: Any) -> ClosedEnum:
        """Return the member whose literal equals *value* (no type coercion)."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if _same_literal(member.value, value):
                return member
        raise InvalidEnumVariant(value)

    def __str__(self) -> str:
        return render_literal(self.value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.from_literal,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda member: member.value
            ),
        )
