"""Canonical Pydantic models shared across all specdispatch modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- read from the project's ``specdispatch.json``:
    :class:`LambdaArnConfig`, :class:`DeployableUnitConfig`, and
    :class:`GeneratorConfig`.

**Parser output models** -- produced while walking the inlined document:
    :class:`HTTPMethod`, :class:`ParameterLocation`, and
    :class:`OperationInfo`.

**Compiled IR** -- the backend-agnostic output of the type and operation
compilers, consumed by the runtime realization and the source emitter:
    :class:`TypeRef`, :class:`CompiledType` (with :class:`FieldDef`,
    :class:`VariantDef`, :class:`EnumMember`), and :class:`OperationPlan`
    (with :class:`ParameterPlan`, :class:`BodyPlan`,
    :class:`RequestBodyPlan`, :class:`ResponseVariant`).

IR models are frozen so that a compiled type or plan can be shared by every
deployable unit produced in one generation run.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Configuration ---


class LambdaArnConfig(BaseModel):
    """Integration target for a deployable unit.

    Exactly one of two forms must be given: a CloudFormation logical ID
    (resolved at deploy time through ``Fn::Sub``), or the fully known
    coordinates of an existing function.

    Example::

        LambdaArnConfig(logical_id="PetApiFunction")
        LambdaArnConfig(
            apigw_region="us-east-1",
            account_id="123456789012",
            function_region="us-east-1",
            function_name="pet-api",
            alias="live",
        )
    """

    logical_id: Optional[str] = None
    apigw_region: Optional[str] = None
    account_id: Optional[str] = None
    function_region: Optional[str] = None
    function_name: Optional[str] = None
    alias: Optional[str] = None

    @model_validator(mode="after")
    def _check_form(self) -> LambdaArnConfig:
        known = (self.apigw_region, self.account_id, self.function_region, self.function_name)
        if self.logical_id is not None:
            if any(value is not None for value in known) or self.alias is not None:
                raise ValueError("logical_id cannot be combined with known ARN fields")
        elif any(value is None for value in known):
            raise ValueError(
                "either logical_id or all of apigw_region, account_id, "
                "function_region and function_name are required"
            )
        return self


class DeployableUnitConfig(BaseModel):
    """One deployable unit (e.g. a Lambda function) and the operations it serves.

    The predicate fields are OR-ed together. A unit whose predicate fields
    are all empty serves every operation.
    """

    name: str = Field(description="Module name of the unit; must be a valid identifier")
    lambda_arn: LambdaArnConfig
    operation_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    path_prefixes: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_name(self) -> DeployableUnitConfig:
        if not self.name.isidentifier():
            raise ValueError(f"unit name `{self.name}` is not a valid identifier")
        return self


class GeneratorConfig(BaseModel):
    """Project configuration stored in ``specdispatch.json``.

    Loaded by :func:`~specdispatch.config.load_project_config` and merged
    with CLI flags and environment variables by
    :func:`~specdispatch.config.resolve_config`.
    """

    model_config = ConfigDict(extra="allow")

    spec: Optional[str] = Field(
        default=None, description="Path or URL of the root OpenAPI document"
    )
    out_dir: str = Field(
        default=".specdispatch", description="Directory receiving generated files"
    )
    units: list[DeployableUnitConfig] = Field(default_factory=list)


# --- Parser output ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods recognised in an OpenAPI path item, in traversal order."""

    GET = "get"
    PUT = "put"
    POST = "post"
    DELETE = "delete"
    OPTIONS = "options"
    HEAD = "head"
    PATCH = "patch"
    TRACE = "trace"


class ParameterLocation(str, enum.Enum):
    """Where a parameter is carried in the HTTP request (OpenAPI ``in`` field)."""

    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


class OperationInfo(BaseModel):
    """A single operation as found in the inlined document.

    Parameters are the merged path-level and operation-level parameter
    objects (raw mappings, references already inlined). ``security`` is the
    effective requirement list: the operation's own, falling back to the
    document's top-level requirement, or ``None`` when neither is declared.
    """

    operation_id: Optional[str] = None
    method: HTTPMethod
    path: str
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    deprecated: bool = False
    parameters: list[dict[str, Any]] = Field(default_factory=list)
    request_body: Optional[dict[str, Any]] = None
    responses: dict[str, Any] = Field(default_factory=dict)
    security: Optional[list[dict[str, Any]]] = None

    @property
    def label(self) -> str:
        """``METHOD /path (operationId)`` string used in log and error messages."""
        return f"{self.method.value.upper()} {self.path} ({self.operation_id or '<no operationId>'})"


# --- Compiled type IR ---


class TypeRefKind(str, enum.Enum):
    """Kinds of inline type expressions."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    BYTES = "bytes"
    DATE = "date"
    DATETIME = "datetime"
    ANY = "any"
    ARRAY = "array"
    MAP = "map"
    NAMED = "named"
    EMPTY = "empty"


class TypeRef(BaseModel):
    """An inline type expression: a primitive, a container, or a named type.

    ``item`` holds the element type of an ``ARRAY`` and the value type of a
    ``MAP``. ``name`` is set only for ``NAMED`` references. ``format``
    preserves the schema's original ``format`` string, and ``unique`` the
    ``uniqueItems`` flag of arrays.
    """

    model_config = ConfigDict(frozen=True)

    kind: TypeRefKind
    format: Optional[str] = None
    item: Optional[TypeRef] = None
    unique: bool = False
    name: Optional[str] = None
    nullable: bool = False

    @classmethod
    def named(cls, name: str) -> TypeRef:
        return cls(kind=TypeRefKind.NAMED, name=name)

    @classmethod
    def array(cls, item: TypeRef, unique: bool = False) -> TypeRef:
        return cls(kind=TypeRefKind.ARRAY, item=item, unique=unique)

    @classmethod
    def map_of(cls, value: TypeRef) -> TypeRef:
        return cls(kind=TypeRefKind.MAP, item=value)

    def referenced_names(self) -> set[str]:
        """Return every named type this expression mentions."""
        if self.kind == TypeRefKind.NAMED and self.name is not None:
            return {self.name}
        if self.item is not None:
            return self.item.referenced_names()
        return set()

    def describe(self) -> str:
        """Render the expression as a Python annotation string.

        Example::

            >>> TypeRef.array(TypeRef.named("Pet")).describe()
            'list[Pet]'
        """
        if self.kind == TypeRefKind.NAMED:
            text = self.name or "Any"
        elif self.kind == TypeRefKind.ARRAY:
            text = f"list[{self.item.describe() if self.item else 'Any'}]"
        elif self.kind == TypeRefKind.MAP:
            text = f"dict[str, {self.item.describe() if self.item else 'Any'}]"
        else:
            text = _PRIMITIVE_ANNOTATIONS[self.kind]
        if self.nullable:
            return f"Optional[{text}]"
        return text


_PRIMITIVE_ANNOTATIONS: dict[TypeRefKind, str] = {
    TypeRefKind.STRING: "str",
    TypeRefKind.INTEGER: "int",
    TypeRefKind.NUMBER: "float",
    TypeRefKind.BOOLEAN: "bool",
    TypeRefKind.BYTES: "bytes",
    TypeRefKind.DATE: "date",
    TypeRefKind.DATETIME: "datetime",
    TypeRefKind.ANY: "Any",
    TypeRefKind.EMPTY: "EmptyModel",
}


class CompiledKind(str, enum.Enum):
    """Shape of a compiled named type."""

    STRUCT = "struct"
    TAGGED_UNION = "tagged_union"
    UNTAGGED_UNION = "untagged_union"
    ENUM = "enum"


class FieldDef(BaseModel):
    """A struct (or union variant) field.

    ``name`` is the Python attribute; ``json_name`` the property name on the
    wire. Non-required fields are optional and omitted from serialized
    output when absent.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    json_name: str
    type: TypeRef
    required: bool
    description: Optional[str] = None


class VariantDef(BaseModel):
    """One variant of a tagged or untagged union.

    ``tag`` is the discriminator value (``None`` for untagged unions) and
    ``schema_name`` the component schema the variant was built from.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    tag: Optional[str] = None
    schema_name: str
    fields: list[FieldDef] = Field(default_factory=list)
    extra: Optional[TypeRef] = None
    description: Optional[str] = None


class EnumMember(BaseModel):
    """One member of a closed enumeration: a generated identifier and its original literal."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: Any


class CompiledType(BaseModel):
    """The compiled form of a named schema.

    Which of ``fields``/``extra``, ``variants``/``discriminator`` or
    ``members`` is populated depends on ``kind``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: CompiledKind
    schema_name: str
    description: Optional[str] = None
    fields: list[FieldDef] = Field(default_factory=list)
    extra: Optional[TypeRef] = None
    discriminator: Optional[str] = None
    variants: list[VariantDef] = Field(default_factory=list)
    members: list[EnumMember] = Field(default_factory=list)

    def dependencies(self) -> set[str]:
        """Return the names of every named type this type's fields reference."""
        names: set[str] = set()
        refs = [f.type for f in self.fields]
        if self.extra is not None:
            refs.append(self.extra)
        for variant in self.variants:
            refs.extend(f.type for f in variant.fields)
            if variant.extra is not None:
                refs.append(variant.extra)
        for ref in refs:
            names |= ref.referenced_names()
        return names


# --- Operation plans ---


class BodyStrategy(str, enum.Enum):
    """How a body is decoded from (or encoded to) raw bytes.

    * ``JSON_VALUE`` -- JSON without a schema; any JSON value.
    * ``JSON_STRING`` -- JSON with a plain string schema; the raw text,
      not further decoded.
    * ``JSON_BYTES`` -- JSON with a ``format: binary`` string schema; raw bytes.
    * ``JSON_TYPED`` -- JSON with any other schema; strict typed decode.
    * ``BYTES`` -- ``application/octet-stream`` or unknown MIME types.
    * ``TEXT`` -- ``text/*``; a UTF-8 string.
    """

    JSON_VALUE = "json_value"
    JSON_STRING = "json_string"
    JSON_BYTES = "json_bytes"
    JSON_TYPED = "json_typed"
    BYTES = "bytes"
    TEXT = "text"


class BodyPlan(BaseModel):
    """Decode/encode rule for one (MIME type, optional schema) pair."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    strategy: BodyStrategy
    type: Optional[TypeRef] = None


class ParameterPlan(BaseModel):
    """Extraction rule for one request parameter.

    ``type`` is the value handed to the handler (an ``ARRAY`` for
    multi-value query parameters). When ``parse`` is false the raw string
    (or list of raw strings) is passed through untouched; otherwise each
    raw value is parsed into ``type`` (or ``type.item`` for arrays).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    python_name: str
    location: ParameterLocation
    required: bool
    type: TypeRef
    parse: bool
    is_array: bool = False
    description: Optional[str] = None


class RequestBodyPlan(BaseModel):
    """Request body rule: Content-Type check plus decode strategy."""

    model_config = ConfigDict(frozen=True)

    body: BodyPlan
    required: bool = False
    description: Optional[str] = None


class ResponseVariant(BaseModel):
    """One case of an operation's response enum.

    ``status_code`` is ``None`` for the ``Default`` case, whose status is
    supplied by the handler at runtime.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    status_code: Optional[int] = None
    body: Optional[BodyPlan] = None
    description: Optional[str] = None

    @property
    def is_default(self) -> bool:
        return self.status_code is None


class OperationPlan(BaseModel):
    """Everything the runtime needs to dispatch one operation."""

    model_config = ConfigDict(frozen=True)

    operation_id: str
    handler_name: str
    response_type_name: str
    method: HTTPMethod
    path: str
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    parameters: list[ParameterPlan] = Field(default_factory=list)
    request_body: Optional[RequestBodyPlan] = None
    responses: list[ResponseVariant] = Field(default_factory=list)
    authenticated: bool = True

    @property
    def label(self) -> str:
        return f"{self.method.value.upper()} {self.path} ({self.operation_id})"
