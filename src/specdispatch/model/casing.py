"""Identifier casing helpers shared by the namer, the type compiler and the planner.

Words are split on non-alphanumeric characters, lower-to-upper transitions,
acronym boundaries (``HTTPStatus`` -> ``HTTP``, ``Status``) and letter/digit
boundaries (``integer32`` -> ``integer``, ``32``).
"""

from __future__ import annotations

import keyword
import re

from pydantic import BaseModel


_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")

_MODEL_ATTRIBUTES = frozenset(dir(BaseModel))


def split_words(text: str) -> list[str]:
    """Split *text* into words.

    Example::

        >>> split_words("listFoo-200_response")
        ['list', 'Foo', '200', 'response']
    """
    return _WORD_RE.findall(text)


def to_pascal(text: str) -> str:
    """``sort-by`` -> ``SortBy``, ``HTTPStatus`` -> ``HttpStatus``."""
    return "".join(word[:1].upper() + word[1:].lower() for word in split_words(text))


def to_snake(text: str) -> str:
    """``listFoo`` -> ``list_foo``, ``integer32`` -> ``integer_32``."""
    return "_".join(word.lower() for word in split_words(text))


def python_identifier(text: str, reserved: frozenset[str] | set[str] = frozenset()) -> str:
    """Convert *text* into a snake_case Python identifier.

    Keywords and *reserved* names get a trailing underscore; names that
    would start with a digit get a ``n_`` prefix; text without any
    alphanumeric characters becomes ``value``.

    Args:
        text: The original (wire) name.
        reserved: Additional names that must not be produced verbatim.

    Returns:
        A valid identifier that is not a keyword.
    """
    name = to_snake(text) or "value"
    if name[0].isdigit():
        name = f"n_{name}"
    if keyword.iskeyword(name) or name in reserved:
        name = f"{name}_"
    return name


def field_identifier(text: str) -> str:
    """Like :func:`python_identifier`, also avoiding ``BaseModel`` attribute names.

    Example::

        >>> field_identifier("type"), field_identifier("json"), field_identifier("modelName")
        ('type', 'json_', 'model_name_')
    """
    name = python_identifier(text, reserved=_MODEL_ATTRIBUTES)
    if name.startswith("model_") and not name.endswith("_"):
        name = f"{name}_"
    return name


def type_identifier(text: str) -> str:
    """Convert a schema name into a PascalCase class name."""
    name = to_pascal(text) or "Model"
    if name[0].isdigit():
        name = f"Model{name}"
    return name


def enum_member_identifier(value: object) -> str:
    """Generate the member identifier for one enumeration literal.

    The empty string maps to ``EmptyString``; literals that cannot start an
    identifier get a ``Value`` prefix; negative numbers a ``Minus`` marker.

    Example::

        >>> [enum_member_identifier(v) for v in ("option_a", "", "1", -2, "none")]
        ['OptionA', 'EmptyString', 'Value1', 'ValueMinus2', 'None_']
    """
    if value == "" and isinstance(value, str):
        return "EmptyString"
    text = str(value).lower() if isinstance(value, bool) else str(value)
    minus = "Minus" if not isinstance(value, str) and text.startswith("-") else ""
    name = to_pascal(text)
    if not name or not name[0].isalpha():
        name = f"Value{minus}{name}"
    if keyword.iskeyword(name):
        name = f"{name}_"
    return name


def unique_name(name: str, taken: set[str] | dict[str, object]) -> str:
    """Return *name*, or *name* with the smallest integer suffix >= 2 not in *taken*."""
    if name not in taken:
        return name
    index = 2
    while f"{name}{index}" in taken:
        index += 1
    return f"{name}{index}"
