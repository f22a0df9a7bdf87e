"""Compile one collected operation into an :class:`~specdispatch.models.OperationPlan`."""

from __future__ import annotations

import logging

from specdispatch.api.body import request_body_plan
from specdispatch.api.parameter import parameter_plans
from specdispatch.api.response import response_variants
from specdispatch.exceptions import OperationIdError
from specdispatch.model.casing import python_identifier, type_identifier
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.models import OperationInfo, OperationPlan
from specdispatch.parser.extractor import operation_is_unauthenticated


logger = logging.getLogger(__name__)

# Methods of the handler base class that an operation's handler must not shadow.
RESERVED_HANDLER_NAMES = frozenset({
    "dispatch",
    "respond_to_event_error",
    "respond_to_handler_error",
})


def compile_operation(info: OperationInfo, compiler: TypeModelCompiler) -> OperationPlan:
    """Build the dispatch plan for *info*.

    Args:
        info: The collected operation.
        compiler: The compiler that has already compiled the document's
            named types.

    Returns:
        The :class:`~specdispatch.models.OperationPlan`.

    Raises:
        OperationIdError: If the operation has no operationId.
        UnsupportedSchemaError: For parameter, body or response shapes that
            cannot be represented.
        GenerationError: For multiple MIME types on one body.
    """
    if not info.operation_id:
        raise OperationIdError(f"no operation_id for {info.label}")

    operation_id = info.operation_id
    label = info.label

    request_body = None
    if info.request_body is not None:
        request_body = request_body_plan(info.request_body, compiler, label)

    plan = OperationPlan(
        operation_id=operation_id,
        handler_name=python_identifier(operation_id, reserved=RESERVED_HANDLER_NAMES),
        response_type_name=f"{type_identifier(operation_id)}Response",
        method=info.method,
        path=info.path,
        summary=info.summary,
        description=info.description,
        tags=info.tags,
        parameters=parameter_plans(info.parameters, compiler, label),
        request_body=request_body,
        responses=response_variants(info.responses, compiler, label),
        authenticated=not operation_is_unauthenticated(info.security),
    )
    logger.debug(
        "Planned %s: %d parameter(s), %d response variant(s), %s",
        label,
        len(plan.parameters),
        len(plan.responses),
        "authenticated" if plan.authenticated else "unauthenticated",
    )
    return plan
