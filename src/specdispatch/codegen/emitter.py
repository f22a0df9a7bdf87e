"""Render placeholder handler modules from the compiled operation plans.

The scaffold for a unit subclasses the unit's generated ``Api`` class and
declares every operation with its full signature and a
``NotImplementedError`` body. It is written once; later runs leave an
existing file alone unless forced.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from specdispatch.config import atomic_write
from specdispatch.model.casing import to_pascal
from specdispatch.models import BodyStrategy, OperationPlan, RequestBodyPlan, TypeRef, TypeRefKind


logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

_BODY_ANNOTATIONS: dict[BodyStrategy, str] = {
    BodyStrategy.JSON_VALUE: "Any",
    BodyStrategy.JSON_STRING: "str",
    BodyStrategy.JSON_BYTES: "bytes",
    BodyStrategy.BYTES: "bytes",
    BodyStrategy.TEXT: "str",
}


def handler_filename(unit_name: str) -> str:
    return f"{unit_name}_handler.py"


def handler_class_name(unit_name: str) -> str:
    """``pet`` -> ``PetApiHandler``."""
    return f"{to_pascal(unit_name)}ApiHandler"


def write_handler_scaffold(
    out_dir: Path,
    unit_name: str,
    spec_path: str,
    operations: list[OperationPlan],
    force: bool = False,
) -> Optional[Path]:
    """Write ``<unit>_handler.py`` into *out_dir*.

    Args:
        out_dir: Output directory.
        unit_name: The deployable unit's module name.
        spec_path: Spec location the scaffold compiles at import time.
        operations: The unit's operation plans.
        force: Overwrite an existing scaffold.

    Returns:
        The written path, or ``None`` if an existing file was kept.
    """
    path = out_dir / handler_filename(unit_name)
    if path.exists() and not force:
        logger.info("Keeping existing `%s` handler at %s", unit_name, path)
        return None
    logger.info("Writing `%s` handler to %s", unit_name, path)
    atomic_write(path, render_handler_scaffold(unit_name, spec_path, operations))
    return path


def render_handler_scaffold(
    unit_name: str, spec_path: str, operations: list[OperationPlan]
) -> str:
    """Render the scaffold module source for one unit."""
    env = _create_jinja_env()
    template = env.get_template("handler.py.j2")
    return template.render(**_build_context(unit_name, spec_path, operations))


def _create_jinja_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(disabled_extensions=("py.j2",)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["doc"] = _doc_text
    return env


def _build_context(
    unit_name: str, spec_path: str, operations: list[OperationPlan]
) -> dict[str, Any]:
    type_names: set[str] = set()
    uses_dates: set[str] = set()
    uses_empty = False
    rendered = []

    for plan in operations:
        refs: list[TypeRef] = [p.type for p in plan.parameters]
        if plan.request_body is not None and plan.request_body.body.type is not None:
            refs.append(plan.request_body.body.type)
        for ref in refs:
            type_names |= ref.referenced_names()
            for kind in _kinds(ref):
                if kind in (TypeRefKind.DATE, TypeRefKind.DATETIME):
                    uses_dates.add(kind.value)
                elif kind == TypeRefKind.EMPTY:
                    uses_empty = True

        rendered.append({
            "plan": plan,
            "parameters": [
                {
                    "name": p.python_name,
                    "annotation": _optional(p.type.describe(), p.required),
                    "description": " ".join((p.description or "").split()),
                    "wire_name": p.name,
                    "location": p.location.value,
                }
                for p in plan.parameters
            ],
            "request_body": _body_annotation(plan.request_body),
        })

    return {
        "unit_name": unit_name,
        "class_name": handler_class_name(unit_name),
        "spec_path": spec_path,
        "operations": rendered,
        "operation_ids": [plan.operation_id for plan in operations],
        "type_names": sorted(type_names),
        "response_types": [plan.response_type_name for plan in operations],
        "date_imports": sorted(uses_dates),
        "uses_empty": uses_empty,
    }


def _kinds(ref: TypeRef) -> list[TypeRefKind]:
    kinds = [ref.kind]
    if ref.item is not None:
        kinds.extend(_kinds(ref.item))
    return kinds


def _optional(annotation: str, required: bool) -> str:
    if required or annotation.startswith("Optional[") or annotation == "Any":
        return annotation
    return f"Optional[{annotation}]"


def _body_annotation(plan: Optional[RequestBodyPlan]) -> Optional[str]:
    if plan is None:
        return None
    body = plan.body
    if body.strategy == BodyStrategy.JSON_TYPED and body.type is not None:
        annotation = body.type.describe()
    else:
        annotation = _BODY_ANNOTATIONS[body.strategy]
    return _optional(annotation, plan.required)


def _doc_text(text: Optional[str]) -> str:
    """Make *text* safe inside a triple-quoted docstring."""
    if not text:
        return ""
    return text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').strip()
