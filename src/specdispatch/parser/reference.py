"""Resolve ``$ref`` JSON Reference pointers, locally or across documents.

A reference has the form ``[relative/path.yaml]#/json/pointer``. The part
before ``#`` names a document relative to the referring document (empty
means the referrer itself) and the fragment is an RFC 6901 JSON Pointer.
Documents are loaded lazily through a
:class:`~specdispatch.parser.loader.DocumentCache`, at most once per path.

Resolution is deliberately strict:

* the fragment must start with ``/`` and every segment must exist and be
  a mapping (arrays are not traversed);
* a target that is itself a ``{"$ref": ...}`` (a *reference chain*) raises
  :class:`~specdispatch.exceptions.ReferenceChainError`.

The resolved target is returned as a deep copy so callers may rewrite it
without touching the cached document.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from specdispatch.exceptions import InvalidReferenceError, ReferenceChainError
from specdispatch.parser.loader import DocumentCache


SCHEMA_REF_PREFIX = "#/components/schemas/"


@dataclass(frozen=True)
class ResolvedReference:
    """The outcome of resolving one reference.

    Attributes:
        doc_path: Canonical path of the document holding the target, or
            ``None`` for purely local resolution.
        root_rel_ref: The fragment without its leading ``/``
            (e.g. ``components/schemas/Pet``), used to rebuild a local
            reference once the target document is the root.
        target: Deep copy of the referenced mapping.
        target_name: The last fragment segment (e.g. ``Pet``).
    """

    doc_path: Path | None
    root_rel_ref: str
    target: dict[str, Any]
    target_name: str


def is_reference(value: Any) -> bool:
    """Return True if *value* is a ``{"$ref": ...}`` mapping."""
    return isinstance(value, dict) and isinstance(value.get("$ref"), str)


def split_reference(reference: str) -> tuple[str, str]:
    """Split *reference* into its document part and JSON-pointer fragment.

    Raises:
        InvalidReferenceError: If the reference has no ``#``, more than one
            ``#``, or a fragment that does not start with ``/``.
    """
    parts = reference.split("#")
    if len(parts) != 2:
        raise InvalidReferenceError(
            f"Invalid reference `{reference}`: expected exactly one `#`"
        )
    rel_path, fragment = parts
    if not fragment.startswith("/"):
        raise InvalidReferenceError(
            f"Invalid reference `{reference}`: fragment must start with `/`"
        )
    return rel_path, fragment


def _unescape(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def _walk(reference: str, document: dict[str, Any], fragment: str) -> tuple[dict[str, Any], str]:
    current: Any = document
    segment = ""
    walked: list[str] = []
    for raw_segment in fragment[1:].split("/"):
        segment = _unescape(raw_segment)
        if not isinstance(current, dict):
            raise InvalidReferenceError(
                f"Cannot resolve $ref '{reference}': "
                f"value at `/{'/'.join(walked)}` is not a mapping"
            )
        if segment not in current:
            raise InvalidReferenceError(
                f"Cannot resolve $ref '{reference}': "
                f"key '{segment}' not found at `/{'/'.join(walked)}`"
            )
        current = current[segment]
        walked.append(raw_segment)

    if not isinstance(current, dict):
        raise InvalidReferenceError(
            f"Cannot resolve $ref '{reference}': target is a "
            f"{type(current).__name__}, not a mapping"
        )
    if is_reference(current):
        raise ReferenceChainError(
            f"Reference `{reference}` points at another reference "
            f"(`{current['$ref']}`); reference chains are not supported"
        )
    return copy.deepcopy(current), segment


def resolve_reference(
    reference: str,
    referrer: Path,
    cache: DocumentCache,
) -> ResolvedReference:
    """Resolve *reference* relative to the document at *referrer*.

    Args:
        reference: The ``$ref`` string.
        referrer: Canonical path of the document containing the reference.
        cache: Per-run document cache used to load the target document.

    Returns:
        A :class:`ResolvedReference` whose ``doc_path`` is the canonical
        path of the target document.

    Raises:
        InvalidReferenceError: If the reference is malformed or a segment
            is missing or not a mapping.
        ReferenceChainError: If the target is itself a reference.
        SpecParseError: If the target document cannot be loaded.

    Example::

        resolved = resolve_reference("bar.yaml#/path", root_path, cache)
        resolved.doc_path      # /abs/spec/bar.yaml
        resolved.target_name   # "path"
    """
    rel_path, fragment = split_reference(reference)
    if rel_path:
        doc_path = cache.canonical(referrer.parent / rel_path)
    else:
        doc_path = cache.canonical(referrer)
    document = cache.get(doc_path)
    target, target_name = _walk(reference, document, fragment)
    return ResolvedReference(
        doc_path=doc_path,
        root_rel_ref=fragment[1:],
        target=target,
        target_name=target_name,
    )


def resolve_local_reference(reference: str, document: dict[str, Any]) -> ResolvedReference:
    """Resolve a ``#/...`` reference against *document* itself.

    Raises:
        InvalidReferenceError: If the reference names another document or
            cannot be resolved.
        ReferenceChainError: If the target is itself a reference.
    """
    rel_path, fragment = split_reference(reference)
    if rel_path:
        raise InvalidReferenceError(
            f"Expected a local reference but found `{reference}`; "
            "foreign references must be inlined first"
        )
    target, target_name = _walk(reference, document, fragment)
    return ResolvedReference(
        doc_path=None,
        root_rel_ref=fragment[1:],
        target=target,
        target_name=target_name,
    )


def reference_schema_name(reference: str) -> str:
    """Return ``Pet`` for ``#/components/schemas/Pet``.

    Raises:
        InvalidReferenceError: If *reference* does not point into
            ``#/components/schemas/``.
    """
    if not reference.startswith(SCHEMA_REF_PREFIX):
        raise InvalidReferenceError(
            f"Schema reference `{reference}` must start with `{SCHEMA_REF_PREFIX}`"
        )
    name = reference[len(SCHEMA_REF_PREFIX):]
    if not name or "/" in name:
        raise InvalidReferenceError(f"Schema reference `{reference}` does not name a schema")
    return _unescape(name)


def schema_reference(name: str) -> dict[str, str]:
    """Build the ``{"$ref": "#/components/schemas/<name>"}`` mapping for *name*."""
    escaped = name.replace("~", "~0").replace("/", "~1")
    return {"$ref": f"{SCHEMA_REF_PREFIX}{escaped}"}
