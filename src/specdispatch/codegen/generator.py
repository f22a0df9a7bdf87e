"""The generation run and the compiled per-unit API.

A run goes through the pipeline in a fixed order::

    load -> inline -> name -> compile types -> collect operations
         -> assign units -> plan operations -> gateway transform

:meth:`CodeGenerator.compile` keeps everything in memory and returns a
:class:`GenerationResult`; :meth:`CodeGenerator.generate` also writes the
gateway spec and the handler scaffolds. At runtime a deployable unit calls
:func:`compile_api` to get its :class:`CompiledApi`: the realized models,
one response class per operation and the abstract ``Api`` handler class.

Example::

    generator = CodeGenerator("openapi.yaml")
    generator.add_api_unit(ApiUnit("pet", LambdaArn.cloud_formation("PetApiFunction")))
    generator.generate()
"""

from __future__ import annotations

import abc
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from specdispatch.api.operation import compile_operation
from specdispatch.codegen.emitter import write_handler_scaffold
from specdispatch.codegen.units import ApiUnit, assign_operations
from specdispatch.config import DEFAULT_OUT_DIR, atomic_write
from specdispatch.exceptions import GenerationError
from specdispatch.gateway import GATEWAY_SPEC_FILENAME, transform_openapi
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.model.naming import name_schemas
from specdispatch.model.realize import ModelNamespace, realize_types
from specdispatch.models import BodyStrategy, CompiledType, OperationPlan
from specdispatch.parser.extractor import collect_operations, ensure_unique_operation_ids
from specdispatch.parser.inline import inline_references
from specdispatch.parser.loader import DocumentCache, load_spec, validate_openapi_version
from specdispatch.runtime.dispatcher import Dispatcher
from specdispatch.runtime.handler import ApiHandler
from specdispatch.runtime.middleware import Middleware, UnauthenticatedMiddleware
from specdispatch.runtime.responses import ApiResponse, build_response_type


logger = logging.getLogger(__name__)

COMPILED_MODULE = "specdispatch.compiled"

_BODY_TYPES: dict[BodyStrategy, Any] = {
    BodyStrategy.JSON_VALUE: Any,
    BodyStrategy.JSON_STRING: str,
    BodyStrategy.JSON_BYTES: bytes,
    BodyStrategy.BYTES: bytes,
    BodyStrategy.TEXT: str,
}


# ------------------------------------------------------------------ #
# Compiled API
# ------------------------------------------------------------------ #


class CompiledApi:
    """Everything one deployable unit needs at runtime.

    Attributes:
        unit: The deployable unit.
        models: The realized named types, shared by every unit of a run.
        operations: The unit's operation plans, sorted by operationId.
        responses: Response class per operationId.
        Api: Abstract handler class with one coroutine per operation.

    Response classes are also attributes, by name::

        api = compile_api("openapi.yaml", ApiUnit("pet"))
        api.AddPetResponse.Ok(api.models.Pet(name="Rex"))
    """

    def __init__(
        self, unit: ApiUnit, models: ModelNamespace, operations: list[OperationPlan]
    ) -> None:
        self.unit = unit
        self.models = models
        self.operations = operations
        module = f"{COMPILED_MODULE}.{unit.name}"
        self.responses: dict[str, type[ApiResponse]] = {
            plan.operation_id: build_response_type(plan, models, module) for plan in operations
        }
        self._response_types = {cls.__name__: cls for cls in self.responses.values()}
        self.Api = _build_api_class(self, module)

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["_response_types"][name]
        except KeyError:
            raise AttributeError(f"compiled API has no response type `{name}`") from None

    def __repr__(self) -> str:
        return f"CompiledApi({self.unit.name!r}, operations={len(self.operations)})"

    @property
    def operation_ids(self) -> list[str]:
        return [plan.operation_id for plan in self.operations]

    def operation(self, operation_id: str) -> OperationPlan:
        """Return the plan of *operation_id*.

        Raises:
            KeyError: If the unit does not serve the operation.
        """
        for plan in self.operations:
            if plan.operation_id == operation_id:
                return plan
        raise KeyError(operation_id)

    def dispatcher(
        self, handler: ApiHandler, middleware: Optional[Middleware] = None
    ) -> Dispatcher:
        """Build the request dispatcher for *handler*."""
        return Dispatcher(self, handler, middleware or UnauthenticatedMiddleware())


def _build_api_class(api: CompiledApi, module: str) -> type[ApiHandler]:
    namespace: dict[str, Any] = {
        "__module__": module,
        "__qualname__": "Api",
        "__doc__": f"Handler interface of the `{api.unit.name}` API.",
        "__compiled_api__": api,
    }
    for plan in api.operations:
        if plan.handler_name in namespace:
            raise GenerationError(
                f"operations in API `{api.unit.name}` share the handler name `{plan.handler_name}`"
            )
        namespace[plan.handler_name] = _abstract_operation(api, plan)
    return abc.ABCMeta("Api", (ApiHandler,), namespace)


def _abstract_operation(api: CompiledApi, plan: OperationPlan) -> Any:
    async def operation(self: Any, **kwargs: Any) -> Any:
        raise NotImplementedError(f"`{plan.operation_id}` is not implemented")

    operation.__name__ = plan.handler_name
    operation.__qualname__ = f"Api.{plan.handler_name}"
    operation.__doc__ = _operation_doc(plan)
    operation.__signature__ = _operation_signature(api, plan)
    return abc.abstractmethod(operation)


def _operation_signature(api: CompiledApi, plan: OperationPlan) -> inspect.Signature:
    keyword = inspect.Parameter.KEYWORD_ONLY
    parameters = [inspect.Parameter("self", inspect.Parameter.POSITIONAL_OR_KEYWORD)]
    for param in plan.parameters:
        annotation = api.models.python_type(param.type)
        if not param.required:
            annotation = Optional[annotation]
        parameters.append(inspect.Parameter(param.python_name, keyword, annotation=annotation))

    body = plan.request_body
    if body is not None:
        if body.body.strategy == BodyStrategy.JSON_TYPED and body.body.type is not None:
            annotation = api.models.python_type(body.body.type)
        else:
            annotation = _BODY_TYPES[body.body.strategy]
        if not body.required:
            annotation = Optional[annotation]
        parameters.append(inspect.Parameter("request_body", keyword, annotation=annotation))

    for name in ("headers", "request_context", "context"):
        parameters.append(inspect.Parameter(name, keyword))
    if plan.authenticated:
        parameters.append(inspect.Parameter("auth_ok", keyword))
    return inspect.Signature(parameters, return_annotation=api.responses[plan.operation_id])


def _operation_doc(plan: OperationPlan) -> str:
    lines = [plan.summary or plan.label, ""]
    if plan.description:
        lines += [plan.description.strip(), ""]
    lines.append(f"Endpoint: `{plan.method.value.upper()} {plan.path}`")
    lines.append(f"Operation ID: `{plan.operation_id}`")
    return "\n".join(lines)


# ------------------------------------------------------------------ #
# Generation run
# ------------------------------------------------------------------ #


@dataclass
class GenerationResult:
    """The in-memory output of one generation run.

    Attributes:
        document: The inlined and named document.
        gateway_document: The gateway-facing document, if it was produced.
        types: Compiled named types in dependency order.
        synthesized: Names the namer created for anonymous schemas.
        units: The deployable units, in registration order.
        plans: Operation plans per unit name.
        written: Files written by :meth:`CodeGenerator.generate`.
    """

    document: dict[str, Any]
    gateway_document: Optional[dict[str, Any]]
    types: list[CompiledType]
    synthesized: list[str]
    units: list[ApiUnit]
    plans: dict[str, list[OperationPlan]]
    written: list[Path] = field(default_factory=list)
    _models: Optional[ModelNamespace] = field(default=None, init=False, repr=False)

    @property
    def models(self) -> ModelNamespace:
        """The realized types, created on first access."""
        if self._models is None:
            self._models = realize_types(self.types, COMPILED_MODULE)
        return self._models

    def api(self, name: str) -> CompiledApi:
        """Return the :class:`CompiledApi` of the unit called *name*."""
        for unit in self.units:
            if unit.name == name:
                return CompiledApi(unit, self.models, self.plans[name])
        raise KeyError(name)


class CodeGenerator:
    """Run the generation pipeline for one root document.

    Args:
        openapi_path: Path, URL or ``-`` (stdin) of the root document.
        out_dir: Directory the outputs are written to.
    """

    def __init__(self, openapi_path: str | Path, out_dir: str | Path = DEFAULT_OUT_DIR) -> None:
        self.openapi_path = str(openapi_path)
        self.out_dir = Path(out_dir)
        self.units: list[ApiUnit] = []

    def add_api_unit(self, unit: ApiUnit) -> CodeGenerator:
        """Register a deployable unit. Returns ``self`` for chaining.

        Raises:
            GenerationError: If a unit with the same name is already registered.
        """
        if any(existing.name == unit.name for existing in self.units):
            raise GenerationError(f"duplicate API unit name `{unit.name}`")
        self.units.append(unit)
        return self

    def compile(self, gateway: bool = True) -> GenerationResult:
        """Run the pipeline in memory.

        Args:
            gateway: Also produce the gateway document; every unit with
                operations then needs an integration target.

        Raises:
            SpecdispatchError: Any build-time error, see :mod:`specdispatch.exceptions`.
        """
        raw = load_spec(self.openapi_path)
        version = validate_openapi_version(raw)
        logger.debug("Loaded OpenAPI %s document from %s", version, self.openapi_path)

        document = inline_references(raw, self._root_path(), DocumentCache())
        synthesized = name_schemas(document)
        for name in synthesized:
            logger.debug("Synthesized schema name `%s`", name)

        schemas = (document.get("components") or {}).get("schemas") or {}
        compiler = TypeModelCompiler(schemas)
        types = compiler.compile_all()

        operations = collect_operations(document)
        ensure_unique_operation_ids(operations)
        assigned = assign_operations(operations, self.units)
        plans = {
            name: [compile_operation(info, compiler) for info in infos]
            for name, infos in assigned.items()
        }

        gateway_document = None
        if gateway:
            gateway_document = transform_openapi(document, self._targets(assigned))

        return GenerationResult(
            document=document,
            gateway_document=gateway_document,
            types=types,
            synthesized=synthesized,
            units=list(self.units),
            plans=plans,
        )

    def generate(self, force: bool = False) -> GenerationResult:
        """Run the pipeline and write the gateway spec and handler scaffolds.

        Args:
            force: Overwrite existing handler scaffolds.
        """
        result = self.compile(gateway=True)
        self.out_dir.mkdir(parents=True, exist_ok=True)

        gateway_path = self.out_dir / GATEWAY_SPEC_FILENAME
        logger.info("Writing gateway spec to %s", gateway_path)
        atomic_write(
            gateway_path,
            yaml.safe_dump(result.gateway_document, sort_keys=False, allow_unicode=True),
        )
        result.written.append(gateway_path)

        for unit in self.units:
            path = write_handler_scaffold(
                self.out_dir, unit.name, self.openapi_path, result.plans[unit.name], force=force
            )
            if path is not None:
                result.written.append(path)
        return result

    def _root_path(self) -> Path:
        # Relative references in a URL or stdin document resolve against the working directory.
        if self.openapi_path == "-" or self.openapi_path.startswith(("http://", "https://")):
            return Path.cwd() / "openapi.yaml"
        return Path(self.openapi_path)

    def _targets(self, assigned: dict[str, list[Any]]) -> dict[str, ApiUnit]:
        targets: dict[str, ApiUnit] = {}
        for unit in self.units:
            operations = assigned[unit.name]
            if operations and unit.arn is None:
                raise GenerationError(
                    f"API unit `{unit.name}` has no Lambda ARN; one is required for the gateway spec"
                )
            for info in operations:
                targets[info.operation_id] = unit
        return targets


def compile_api(spec_path: str | Path, unit: ApiUnit) -> CompiledApi:
    """Compile the API of a single deployable unit.

    Called at import time by a unit's handler module. The gateway document
    is not produced, so *unit* needs no integration target.

    Example::

        api = compile_api("openapi.yaml", ApiUnit("pet", op_filter=operation_filter(tags=["pet"])))

        class PetApiHandler(api.Api):
            ...
    """
    result = CodeGenerator(spec_path).add_api_unit(unit).compile(gateway=False)
    return result.api(unit.name)
