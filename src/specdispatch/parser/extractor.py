"""Collect the operations of an inlined OpenAPI document.

Walks ``paths`` in document order, visiting methods in the fixed
:class:`~specdispatch.models.HTTPMethod` order, and produces one
:class:`~specdispatch.models.OperationInfo` per operation. Local
(``#/...``) references to parameters, request bodies and responses are
resolved one level here; schema references are left in place because named
schemas map to named types.

The document must already have been processed by
:func:`~specdispatch.parser.inline.inline_references` so that every
remaining reference is local.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Optional

from specdispatch.exceptions import OperationIdError
from specdispatch.models import HTTPMethod, OperationInfo
from specdispatch.parser.reference import is_reference, resolve_local_reference


_METHOD_ORDER = {method: index for index, method in enumerate(HTTPMethod)}


def collect_operations(document: dict[str, Any]) -> list[OperationInfo]:
    """Return every operation in *document*, sorted by operationId.

    Operations without an operationId sort last, by path and method.

    Args:
        document: An inlined OpenAPI document.

    Returns:
        A list of :class:`~specdispatch.models.OperationInfo`.

    Raises:
        InvalidReferenceError: If a local reference cannot be resolved.
        ReferenceChainError: If a local reference points at another reference.
    """
    root_security = document.get("security")
    operations: list[OperationInfo] = []

    for path, path_item in (document.get("paths") or {}).items():
        path_item = _deref(path_item, document)
        if not isinstance(path_item, dict):
            continue

        path_params = [_deref(p, document) for p in path_item.get("parameters", [])]

        for method in HTTPMethod:
            operation = path_item.get(method.value)
            if not isinstance(operation, dict):
                continue

            op_params = [_deref(p, document) for p in operation.get("parameters", [])]
            parameters = _merge_parameters(path_params, op_params)
            for param in parameters:
                # Path parameters are always required per the OpenAPI spec.
                if param.get("in") == "path":
                    param["required"] = True

            request_body = operation.get("requestBody")
            if request_body is not None:
                request_body = _deref(request_body, document)

            responses = {
                str(status): _deref(response, document)
                for status, response in (operation.get("responses") or {}).items()
            }

            security = operation.get("security", root_security)

            operations.append(
                OperationInfo(
                    operation_id=operation.get("operationId"),
                    method=method,
                    path=path,
                    summary=operation.get("summary"),
                    description=operation.get("description"),
                    tags=list(operation.get("tags", [])),
                    deprecated=bool(operation.get("deprecated", False)),
                    parameters=parameters,
                    request_body=request_body,
                    responses=responses,
                    security=security,
                )
            )

    operations.sort(
        key=lambda op: (
            op.operation_id is None,
            op.operation_id or "",
            op.path,
            _METHOD_ORDER[op.method],
        )
    )
    return operations


def ensure_unique_operation_ids(operations: list[OperationInfo]) -> None:
    """Raise :class:`OperationIdError` if any operationId is used more than once."""
    counts = Counter(op.operation_id for op in operations if op.operation_id is not None)
    duplicates = sorted(op_id for op_id, count in counts.items() if count > 1)
    if duplicates:
        locations = ", ".join(
            op.label for op in operations if op.operation_id in duplicates
        )
        raise OperationIdError(
            f"duplicate operation_id {', '.join(repr(d) for d in duplicates)}: {locations}"
        )


def _deref(value: Any, document: dict[str, Any]) -> Any:
    if is_reference(value):
        return resolve_local_reference(value["$ref"], document).target
    return value


def _merge_parameters(
    path_params: list[dict[str, Any]],
    op_params: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Merge path-level and operation-level parameters.

    Operation-level parameters override path-level parameters with the same
    name and location (``in`` field), per the OpenAPI spec. Path-level
    parameters come first, in declaration order.

    Args:
        path_params: Parameters defined at the path level.
        op_params: Parameters defined at the operation level.

    Returns:
        A merged list of parameter dicts (shallow copies).
    """
    op_keys = {(p.get("name", ""), p.get("in", "")) for p in op_params}

    merged: list[dict[str, Any]] = []
    for param in path_params:
        key = (param.get("name", ""), param.get("in", ""))
        if key not in op_keys:
            merged.append(dict(param))

    merged.extend(dict(p) for p in op_params)
    return merged


def operation_is_unauthenticated(security: Optional[list[dict[str, Any]]]) -> bool:
    """Return True when *security* contains an explicit empty requirement.

    An absent ``security`` field (``None``) and an empty list both mean the
    operation is authenticated.
    """
    if security is None:
        return False
    return any(not requirement for requirement in security)
