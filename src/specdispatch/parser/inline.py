"""Inline foreign ``$ref`` pointers so the root document is self-contained.

After :func:`inline_references` runs, every reference left in the document
is local (``#/...``) and points into the root document itself. The rules
for a reference whose target lives in another document are:

* **Schemas** are merged into the root's ``components.schemas`` table under
  their origin name (the last pointer segment) so the name survives. If
  that name is already taken by a structurally identical schema, the
  reference is simply rewritten to it. If it is taken by a *different*
  schema, the foreign schema is inlined anonymously instead (the namer
  gives it a name later).
* **Everything else** (parameters, responses, headers, request bodies,
  security schemes, examples, links, callbacks, path items) is inlined by
  value; its name is not preserved.
* A reference inside a foreign document that points back at the root is
  rewritten to a local ``#/...`` reference.

Targets are inlined recursively relative to the document they came from,
so relative paths in nested references keep working. A foreign target that
re-enters itself while being inlined raises
:class:`~specdispatch.exceptions.CyclicReferenceError`.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

from specdispatch.exceptions import CyclicReferenceError, UnsupportedSchemaError
from specdispatch.models import HTTPMethod
from specdispatch.parser.loader import DocumentCache
from specdispatch.parser.reference import (
    is_reference,
    resolve_reference,
    schema_reference,
)


logger = logging.getLogger(__name__)

Container = Union[dict[str, Any], list[Any]]
Visitor = Callable[[dict[str, Any], Path], None]

_SCHEMA_LIST_KEYWORDS = ("allOf", "oneOf", "anyOf")


def inline_references(
    document: dict[str, Any],
    root_path: str | Path,
    cache: Optional[DocumentCache] = None,
) -> dict[str, Any]:
    """Return a copy of *document* with every foreign reference inlined.

    Args:
        document: The root OpenAPI document as loaded from *root_path*.
        root_path: Location of the root document; relative references are
            resolved against its directory.
        cache: Per-run document cache. A fresh cache is created (and seeded
            with *document*) when omitted.

    Returns:
        A new document whose references are all local.

    Raises:
        InvalidReferenceError: If any reference cannot be resolved.
        ReferenceChainError: If a reference points at another reference.
        CyclicReferenceError: If a foreign target references itself.
        UnsupportedSchemaError: If a discriminator mapping would have to
            point at an anonymously inlined schema.

    Example::

        raw = load_spec("spec/openapi.yaml")
        inlined = inline_references(raw, "spec/openapi.yaml")
    """
    if cache is None:
        cache = DocumentCache()
    root = copy.deepcopy(document)
    canonical_root = cache.add(root_path, document)
    return ReferenceInliner(root, canonical_root, cache).run()


class ReferenceInliner:
    """Stateful walker behind :func:`inline_references`.

    Args:
        document: The root document, mutated in place.
        root_path: Canonical path of the root document.
        cache: Per-run document cache.
    """

    def __init__(self, document: dict[str, Any], root_path: Path, cache: DocumentCache) -> None:
        self._document = document
        self._root_path = root_path
        self._cache = cache
        self._added_schemas: dict[str, Any] = {}
        self._in_progress: list[tuple[Path, str]] = []

    def run(self) -> dict[str, Any]:
        components = self._document.get("components")
        if isinstance(components, dict):
            self._inline_components(components, self._root_path)

        paths = self._document.get("paths")
        if isinstance(paths, dict):
            for path in list(paths):
                self._inline_ref_or_item(paths, path, self._root_path, self._inline_path_item)

        if self._added_schemas:
            components = self._document.setdefault("components", {})
            schemas = components.setdefault("schemas", {})
            for name, schema in self._added_schemas.items():
                schemas.setdefault(name, schema)
        return self._document

    # ------------------------------------------------------------------ #
    # Generic reference handling
    # ------------------------------------------------------------------ #

    def _enter(self, key: tuple[Path, str]) -> None:
        if key in self._in_progress:
            chain = " -> ".join(f"{p.name}#/{ref}" for p, ref in [*self._in_progress, key])
            raise CyclicReferenceError(f"Cyclic reference while inlining: {chain}")
        self._in_progress.append(key)

    def _inline_ref_or_item(
        self,
        container: Container,
        key: Any,
        doc_path: Path,
        visit: Optional[Visitor] = None,
    ) -> None:
        """Inline ``container[key]`` by value if it references a foreign document."""
        value = container[key]
        if is_reference(value):
            resolved = resolve_reference(value["$ref"], doc_path, self._cache)
            if resolved.doc_path == self._root_path:
                container[key] = {"$ref": f"#/{resolved.root_rel_ref}"}
                return
            marker = (resolved.doc_path, resolved.root_rel_ref)
            self._enter(marker)
            try:
                if visit is not None:
                    visit(resolved.target, resolved.doc_path)
            finally:
                self._in_progress.pop()
            logger.debug("Inlined %s from %s", value["$ref"], doc_path)
            container[key] = resolved.target
        elif isinstance(value, dict) and visit is not None:
            visit(value, doc_path)

    def _inline_map(
        self,
        owner: dict[str, Any],
        field: str,
        doc_path: Path,
        visit: Optional[Visitor] = None,
    ) -> None:
        entries = owner.get(field)
        if isinstance(entries, dict):
            for key in list(entries):
                self._inline_ref_or_item(entries, key, doc_path, visit)

    # ------------------------------------------------------------------ #
    # Schemas
    # ------------------------------------------------------------------ #

    def _lookup_schema(self, name: str) -> Any:
        if name in self._added_schemas:
            return self._added_schemas[name]
        schemas = self._document.get("components", {}).get("schemas")
        if isinstance(schemas, dict):
            return schemas.get(name)
        return None

    def _inline_schema_ref(self, container: Container, key: Any, doc_path: Path) -> None:
        value = container[key]
        if not is_reference(value):
            if isinstance(value, dict):
                self._inline_schema(value, doc_path)
            return

        resolved = resolve_reference(value["$ref"], doc_path, self._cache)
        if resolved.doc_path == self._root_path:
            container[key] = {"$ref": f"#/{resolved.root_rel_ref}"}
            return

        marker = (resolved.doc_path, resolved.root_rel_ref)
        self._enter(marker)
        try:
            target = resolved.target
            self._inline_schema(target, resolved.doc_path)
        finally:
            self._in_progress.pop()

        name = resolved.target_name
        existing = self._lookup_schema(name)
        if existing is None:
            logger.debug("Merged foreign schema %s as `%s`", value["$ref"], name)
            self._added_schemas[name] = target
            container[key] = schema_reference(name)
        elif existing == target:
            container[key] = schema_reference(name)
        else:
            logger.debug(
                "Schema name `%s` is taken by a different schema; inlining %s anonymously",
                name,
                value["$ref"],
            )
            container[key] = target

    def _inline_schema(self, schema: dict[str, Any], doc_path: Path) -> None:
        properties = schema.get("properties")
        if isinstance(properties, dict):
            for prop_name in list(properties):
                self._inline_schema_ref(properties, prop_name, doc_path)

        for keyword in ("additionalProperties", "items", "not"):
            if isinstance(schema.get(keyword), dict):
                self._inline_schema_ref(schema, keyword, doc_path)

        for keyword in _SCHEMA_LIST_KEYWORDS:
            branches = schema.get(keyword)
            if isinstance(branches, list):
                for index in range(len(branches)):
                    self._inline_schema_ref(branches, index, doc_path)

        discriminator = schema.get("discriminator")
        if isinstance(discriminator, dict) and isinstance(discriminator.get("mapping"), dict):
            mapping = discriminator["mapping"]
            for tag, target in list(mapping.items()):
                if not isinstance(target, str) or "#" not in target:
                    # Bare schema names are resolved against components.schemas later.
                    continue
                holder = [{"$ref": target}]
                self._inline_schema_ref(holder, 0, doc_path)
                if not is_reference(holder[0]):
                    raise UnsupportedSchemaError(
                        f"Discriminator mapping `{tag}` -> `{target}` targets a schema whose "
                        "name is already taken by a different schema; rename one of them"
                    )
                mapping[tag] = holder[0]["$ref"]

    # ------------------------------------------------------------------ #
    # Components
    # ------------------------------------------------------------------ #

    def _inline_components(self, components: dict[str, Any], doc_path: Path) -> None:
        self._inline_map(components, "securitySchemes", doc_path)
        self._inline_map(components, "responses", doc_path, self._inline_response)
        self._inline_map(components, "parameters", doc_path, self._inline_parameter)
        self._inline_map(components, "examples", doc_path)
        self._inline_map(components, "requestBodies", doc_path, self._inline_request_body)
        self._inline_map(components, "headers", doc_path, self._inline_header)
        self._inline_map(components, "links", doc_path)
        self._inline_map(components, "callbacks", doc_path, self._inline_callback)

        schemas = components.get("schemas")
        if isinstance(schemas, dict):
            for name in list(schemas):
                self._inline_schema_ref(schemas, name, doc_path)

    # ------------------------------------------------------------------ #
    # Paths and operations
    # ------------------------------------------------------------------ #

    def _inline_path_item(self, path_item: dict[str, Any], doc_path: Path) -> None:
        parameters = path_item.get("parameters")
        if isinstance(parameters, list):
            for index in range(len(parameters)):
                self._inline_ref_or_item(parameters, index, doc_path, self._inline_parameter)

        for method in HTTPMethod:
            operation = path_item.get(method.value)
            if isinstance(operation, dict):
                self._inline_operation(operation, doc_path)

    def _inline_operation(self, operation: dict[str, Any], doc_path: Path) -> None:
        parameters = operation.get("parameters")
        if isinstance(parameters, list):
            for index in range(len(parameters)):
                self._inline_ref_or_item(parameters, index, doc_path, self._inline_parameter)

        if isinstance(operation.get("requestBody"), dict):
            self._inline_ref_or_item(
                operation, "requestBody", doc_path, self._inline_request_body
            )

        self._inline_map(operation, "responses", doc_path, self._inline_response)
        self._inline_map(operation, "callbacks", doc_path, self._inline_callback)

    def _inline_callback(self, callback: dict[str, Any], doc_path: Path) -> None:
        for expression in list(callback):
            self._inline_ref_or_item(callback, expression, doc_path, self._inline_path_item)

    def _inline_parameter(self, parameter: dict[str, Any], doc_path: Path) -> None:
        if isinstance(parameter.get("schema"), dict):
            self._inline_schema_ref(parameter, "schema", doc_path)
        self._inline_map(parameter, "content", doc_path, self._inline_media_type)
        self._inline_map(parameter, "examples", doc_path)

    def _inline_header(self, header: dict[str, Any], doc_path: Path) -> None:
        self._inline_parameter(header, doc_path)

    def _inline_request_body(self, body: dict[str, Any], doc_path: Path) -> None:
        self._inline_map(body, "content", doc_path, self._inline_media_type)

    def _inline_response(self, response: dict[str, Any], doc_path: Path) -> None:
        self._inline_map(response, "headers", doc_path, self._inline_header)
        self._inline_map(response, "content", doc_path, self._inline_media_type)
        self._inline_map(response, "links", doc_path)

    def _inline_media_type(self, media_type: dict[str, Any], doc_path: Path) -> None:
        if isinstance(media_type.get("schema"), dict):
            self._inline_schema_ref(media_type, "schema", doc_path)
        self._inline_map(media_type, "examples", doc_path)
        encodings = media_type.get("encoding")
        if isinstance(encodings, dict):
            for encoding in encodings.values():
                if isinstance(encoding, dict):
                    self._inline_map(encoding, "headers", doc_path, self._inline_header)
