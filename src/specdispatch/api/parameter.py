"""Parameter extraction plans.

Parameters always arrive as strings. A parameter is passed to the handler
unparsed when its schema is an inline plain string (no enumeration, no
format other than ``byte``/``password``) or an inline array of plain
strings; anything else, including every reference to a named schema, is
parsed. Query parameters whose schema is an array read the repeated-value
form of the query string.
"""

from __future__ import annotations

from typing import Any

from specdispatch.exceptions import UnsupportedSchemaError
from specdispatch.model.casing import python_identifier, unique_name
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.model.schema import SchemaKind, enum_values, schema_kind
from specdispatch.models import CompiledKind, ParameterLocation, ParameterPlan, TypeRef, TypeRefKind
from specdispatch.parser.reference import is_reference


# Keyword arguments the dispatcher passes to every handler besides its parameters.
HANDLER_ARGUMENTS = frozenset({
    "self",
    "request_body",
    "headers",
    "request_context",
    "context",
    "auth_ok",
})

_PLAIN_STRING_FORMATS = (None, "byte", "password")


def is_plain_string_schema(schema: Any) -> bool:
    """Return True for an inline string schema that needs no parsing."""
    if not isinstance(schema, dict) or is_reference(schema):
        return False
    return (
        schema_kind(schema) == SchemaKind.STRING
        and not enum_values(schema)
        and schema.get("format") in _PLAIN_STRING_FORMATS
    )


def parameter_plans(
    parameters: list[dict[str, Any]],
    compiler: TypeModelCompiler,
    label: str,
) -> list[ParameterPlan]:
    """Plan every parameter of one operation, giving each a unique Python name."""
    taken = set(HANDLER_ARGUMENTS)
    plans = []
    for parameter in parameters:
        plan = parameter_plan(parameter, compiler, label)
        python_name = unique_name(plan.python_name, taken)
        taken.add(python_name)
        plans.append(plan.model_copy(update={"python_name": python_name}))
    return plans


def parameter_plan(
    parameter: dict[str, Any],
    compiler: TypeModelCompiler,
    label: str,
) -> ParameterPlan:
    """Plan the extraction of one parameter.

    Args:
        parameter: The (dereferenced) parameter object.
        compiler: The compiler holding the document's named types.
        label: Operation label used in error messages.

    Returns:
        A :class:`~specdispatch.models.ParameterPlan`.

    Raises:
        UnsupportedSchemaError: For cookie parameters, ``content``
            parameters, header parameters that are not plain strings,
            non-query array parameters, and parameters of object or
            union type.
    """
    name = str(parameter.get("name", ""))
    raw_location = parameter.get("in")
    try:
        location = ParameterLocation(raw_location)
    except ValueError:
        raise UnsupportedSchemaError(
            f"parameter `{name}` of {label} has invalid location {raw_location!r}"
        ) from None

    if location == ParameterLocation.COOKIE:
        raise UnsupportedSchemaError(f"cookie parameter `{name}` of {label} is not supported")
    if "content" in parameter:
        raise UnsupportedSchemaError(f"content parameter `{name}` of {label} is not supported")
    schema = parameter.get("schema")
    if not isinstance(schema, dict):
        raise UnsupportedSchemaError(f"parameter `{name}` of {label} has no schema")

    value_type = compiler.inline_type(schema)
    is_array = value_type.kind == TypeRefKind.ARRAY

    if is_array:
        if location != ParameterLocation.QUERY:
            raise UnsupportedSchemaError(
                f"array parameter `{name}` of {label} must be a query parameter"
            )
        items = compiler.resolve(schema).get("items")
        parse = not is_plain_string_schema(items)
        _check_parseable(value_type.item or TypeRef(kind=TypeRefKind.STRING), compiler, name, label)
    else:
        parse = not is_plain_string_schema(schema)
        _check_parseable(value_type, compiler, name, label)

    if location == ParameterLocation.HEADER and parse:
        raise UnsupportedSchemaError(
            f"header parameter `{name}` of {label} must be a plain string"
        )

    return ParameterPlan(
        name=name,
        python_name=python_identifier(name, reserved=HANDLER_ARGUMENTS),
        location=location,
        required=bool(parameter.get("required", False)) or location == ParameterLocation.PATH,
        type=value_type,
        parse=parse,
        is_array=is_array,
        description=parameter.get("description"),
    )


def _check_parseable(
    value_type: TypeRef, compiler: TypeModelCompiler, name: str, label: str
) -> None:
    if value_type.kind in (TypeRefKind.ARRAY, TypeRefKind.MAP, TypeRefKind.EMPTY, TypeRefKind.ANY):
        raise UnsupportedSchemaError(
            f"parameter `{name}` of {label} must be a scalar or an enumeration"
        )
    if value_type.kind == TypeRefKind.NAMED:
        compiled = compiler.types.get(value_type.name or "")
        if compiled is None or compiled.kind != CompiledKind.ENUM:
            raise UnsupportedSchemaError(
                f"parameter `{name}` of {label} must be a scalar or an enumeration, "
                f"not `{value_type.name}`"
            )
