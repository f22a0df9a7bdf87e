"""OpenAPI document parser -- load, resolve ``$ref`` pointers, inline, and collect operations.

This sub-package is the first stage of the specdispatch pipeline: turning a
root OpenAPI 3.x document (JSON or YAML, local file or remote URL) plus any
sibling documents it references into one self-contained document, and then
into a list of :class:`~specdispatch.models.OperationInfo`.

Typical usage::

    from specdispatch.parser import collect_operations, inline_references, load_spec

    raw = load_spec("spec/openapi.yaml")
    document = inline_references(raw, "spec/openapi.yaml")
    operations = collect_operations(document)

Sub-modules:

* :mod:`~specdispatch.parser.loader` -- I/O layer (URL, file, stdin), format
  detection, OpenAPI version validation, and the per-run document cache.
* :mod:`~specdispatch.parser.reference` -- Reference splitting and strict
  JSON-pointer resolution with reference-chain rejection.
* :mod:`~specdispatch.parser.inline` -- Inlines foreign references and
  merges foreign schemas into the root schema table.
* :mod:`~specdispatch.parser.extractor` -- Collects operations, merging
  path-level parameters and resolving local references.
"""

from specdispatch.parser.extractor import collect_operations, ensure_unique_operation_ids
from specdispatch.parser.inline import inline_references
from specdispatch.parser.loader import DocumentCache, load_spec, validate_openapi_version

__all__ = [
    "DocumentCache",
    "collect_operations",
    "ensure_unique_operation_ids",
    "inline_references",
    "load_spec",
    "validate_openapi_version",
]
