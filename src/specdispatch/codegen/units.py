"""Deployable units and the assignment of operations to them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from specdispatch.exceptions import GenerationError, OperationIdError
from specdispatch.gateway import LambdaArn
from specdispatch.models import DeployableUnitConfig, OperationInfo


OperationFilter = Callable[[OperationInfo], bool]


@dataclass
class ApiUnit:
    """A deployable unit: a module name, its integration target and the operations it serves.

    Args:
        name: Module name; the scaffold is written to ``<name>_handler.py``.
        arn: Integration target, required to produce the gateway spec.
        op_filter: Predicate selecting the unit's operations. ``None``
            selects every operation.

    Example::

        ApiUnit(
            "pet",
            LambdaArn.cloud_formation("PetApiFunction"),
            op_filter=lambda op: "pet" in op.tags,
        )
    """

    name: str
    arn: Optional[LambdaArn] = None
    op_filter: Optional[OperationFilter] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.name.isidentifier():
            raise GenerationError(f"API unit name `{self.name}` is not a valid identifier")

    def matches(self, operation: OperationInfo) -> bool:
        return self.op_filter is None or bool(self.op_filter(operation))

    @classmethod
    def from_config(cls, config: DeployableUnitConfig) -> ApiUnit:
        """Build a unit from its project configuration entry."""
        op_filter = None
        if config.operation_ids or config.tags or config.path_prefixes:
            op_filter = operation_filter(
                operation_ids=config.operation_ids,
                tags=config.tags,
                path_prefixes=config.path_prefixes,
            )
        return cls(config.name, LambdaArn.from_config(config.lambda_arn), op_filter)


def operation_filter(
    operation_ids: Iterable[str] = (),
    tags: Iterable[str] = (),
    path_prefixes: Iterable[str] = (),
) -> OperationFilter:
    """Return a predicate matching any of the given operationIds, tags or path prefixes.

    Example::

        pets = operation_filter(tags=["pet"], path_prefixes=["/pet"])
        pets(operation)
    """
    ids = frozenset(operation_ids)
    tag_set = frozenset(tags)
    prefixes = tuple(path_prefixes)

    def matches(operation: OperationInfo) -> bool:
        return (
            (operation.operation_id is not None and operation.operation_id in ids)
            or any(tag in tag_set for tag in operation.tags)
            or (bool(prefixes) and operation.path.startswith(prefixes))
        )

    return matches


def assign_operations(
    operations: list[OperationInfo], units: list[ApiUnit]
) -> dict[str, list[OperationInfo]]:
    """Group *operations* by the unit that serves them.

    Returns:
        Unit name to its operations, for every unit (possibly empty).

    Raises:
        GenerationError: If an operation matches more than one unit.
        OperationIdError: If a matched operation has no operationId.
    """
    assigned: dict[str, list[OperationInfo]] = {unit.name: [] for unit in units}
    for operation in operations:
        matching = [unit.name for unit in units if unit.matches(operation)]
        if not matching:
            continue
        if len(matching) > 1:
            raise GenerationError(
                f"endpoint {operation.label} is mapped to multiple APIs: {', '.join(matching)}"
            )
        if operation.operation_id is None:
            raise OperationIdError(f"no operation_id for {operation.label}")
        assigned[matching[0]].append(operation)
    return assigned
