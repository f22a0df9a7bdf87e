"""Compile named schemas into the backend-agnostic type model.

Each entry of ``components.schemas`` compiles to at most one
:class:`~specdispatch.models.CompiledType`:

* object with properties, or ``allOf`` -> ``STRUCT``
* ``oneOf`` with a discriminator -> ``TAGGED_UNION``
* ``oneOf`` without one -> ``UNTAGGED_UNION``
* enumerated scalar -> ``ENUM``

Everything else (arrays, plain scalars, pure maps, empty objects, trivial
*any* schemas) is represented inline by a :class:`~specdispatch.models.TypeRef`
and produces no named type.

Compilation is recursive: compiling a struct compiles the named types its
fields reference first, so :meth:`TypeModelCompiler.compile_all` returns
types in dependency order. Names currently being compiled are tracked in an
ordered in-progress list; re-entering one of them raises
:class:`~specdispatch.exceptions.CyclicDependencyError`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from specdispatch.exceptions import (
    CyclicDependencyError,
    GenerationError,
    InvalidReferenceError,
    ReferenceChainError,
    UnsupportedSchemaError,
)
from specdispatch.model.casing import (
    enum_member_identifier,
    field_identifier,
    type_identifier,
    unique_name,
)
from specdispatch.model.schema import (
    SchemaKind,
    describe_schema,
    enum_values,
    is_nullable,
    is_scalar,
    is_trivial_any,
    schema_kind,
)
from specdispatch.models import (
    CompiledKind,
    CompiledType,
    EnumMember,
    FieldDef,
    TypeRef,
    TypeRefKind,
    VariantDef,
)
from specdispatch.parser.reference import (
    SCHEMA_REF_PREFIX,
    is_reference,
    reference_schema_name,
)


logger = logging.getLogger(__name__)

_STRING_FORMATS = {
    "date": TypeRefKind.DATE,
    "date-time": TypeRefKind.DATETIME,
    "binary": TypeRefKind.BYTES,
}


class TypeModelCompiler:
    """Compiles the schemas of one inlined, named document.

    Args:
        schemas: The document's ``components.schemas`` mapping, after
            :func:`~specdispatch.model.naming.name_schemas` has run.

    Example::

        compiler = TypeModelCompiler(document["components"]["schemas"])
        for compiled in compiler.compile_all():
            print(compiled.name, compiled.kind.value)
    """

    def __init__(self, schemas: dict[str, Any]) -> None:
        self._schemas = schemas
        self._compiled: dict[str, CompiledType] = {}
        self._in_progress: list[str] = []
        self._inline: dict[str, TypeRef] = {}
        self._inline_in_progress: list[str] = []
        self._owners: dict[str, str] = {}

    @property
    def types(self) -> dict[str, CompiledType]:
        """Compiled types by class name, in dependency order."""
        return dict(self._compiled)

    @staticmethod
    def type_name(schema_name: str) -> str:
        """Return the class name for *schema_name*."""
        return type_identifier(schema_name)

    def _claim(self, name: str, schema_name: str) -> None:
        owner = self._owners.setdefault(name, schema_name)
        if owner != schema_name:
            raise GenerationError(
                f"schemas `{owner}` and `{schema_name}` both map to type name `{name}`"
            )

    def compile_all(self) -> list[CompiledType]:
        """Compile every schema in the table and return the named types in dependency order."""
        for schema_name, schema in self._schemas.items():
            if is_reference(schema):
                # Unused: a referenced alias would have been rejected as a reference chain.
                continue
            self.compile(schema_name, schema)
        return list(self._compiled.values())

    def compile(self, schema_name: str, schema: dict[str, Any]) -> Optional[CompiledType]:
        """Compile one named schema.

        Returns:
            The compiled type, or ``None`` when the schema is represented inline.

        Raises:
            CyclicDependencyError: If *schema_name* is already being compiled.
            UnsupportedSchemaError: For ``anyOf``, ``not``, non-trivial *any*
                schemas, nullable enumerations and inline compositions.
            GenerationError: For conflicting ``additionalProperties`` or
                colliding type names.
        """
        name = self.type_name(schema_name)
        if name in self._compiled:
            self._claim(name, schema_name)
            return self._compiled[name]
        if schema_name in self._inline:
            return None
        if name in self._in_progress:
            raise CyclicDependencyError(self._in_progress, name)

        self._in_progress.append(name)
        try:
            compiled = self._compile_schema(name, schema_name, schema)
        finally:
            self._in_progress.pop()

        if compiled is None:
            return None
        self._claim(name, schema_name)
        logger.debug("Compiled %s `%s`", compiled.kind.value, name)
        self._compiled[name] = compiled
        return compiled

    def inline_type(self, ref_or_schema: dict[str, Any]) -> TypeRef:
        """Return the inline type expression for a schema or schema reference.

        References to schemas with a named type become ``NAMED`` references;
        references to other schemas are expanded in place.
        """
        if is_reference(ref_or_schema):
            return self._reference_type(ref_or_schema["$ref"])
        return self._inline_schema(ref_or_schema)

    def resolve(self, ref_or_schema: dict[str, Any]) -> dict[str, Any]:
        """Follow one schema reference, returning the target (or *ref_or_schema* itself)."""
        if not is_reference(ref_or_schema):
            return ref_or_schema
        return self._lookup(ref_or_schema["$ref"])[1]

    def description(self, ref_or_schema: dict[str, Any]) -> Optional[str]:
        return self.resolve(ref_or_schema).get("description")

    # ------------------------------------------------------------------ #
    # Named types
    # ------------------------------------------------------------------ #

    def _compile_schema(
        self, name: str, schema_name: str, schema: dict[str, Any]
    ) -> Optional[CompiledType]:
        kind = schema_kind(schema)
        description = schema.get("description")

        if kind == SchemaKind.OBJECT:
            if not schema.get("properties"):
                return None
            fields, extra = self._struct_body(name, [schema], exclude=None)
            return CompiledType(
                name=name,
                kind=CompiledKind.STRUCT,
                schema_name=schema_name,
                description=description,
                fields=fields,
                extra=extra,
            )

        if kind == SchemaKind.ARRAY:
            return None

        if is_scalar(kind):
            return self._compile_enum(name, schema_name, schema, kind)

        if kind == SchemaKind.ONE_OF:
            discriminator = schema.get("discriminator")
            if isinstance(discriminator, dict):
                return self._compile_tagged_union(name, schema_name, schema, discriminator)
            return self._compile_untagged_union(name, schema_name, schema)

        if kind == SchemaKind.ALL_OF:
            fields, extra = self._struct_body(name, self._flatten_all_of(name, schema), exclude=None)
            return CompiledType(
                name=name,
                kind=CompiledKind.STRUCT,
                schema_name=schema_name,
                description=description,
                fields=fields,
                extra=extra,
            )

        if kind == SchemaKind.ANY_OF:
            raise UnsupportedSchemaError(
                f"`anyOf` schema `{schema_name}` is not supported: {describe_schema(schema)}"
            )
        if kind == SchemaKind.NOT:
            raise UnsupportedSchemaError(
                f"`not` schema `{schema_name}` is not supported: {describe_schema(schema)}"
            )
        if not is_trivial_any(schema):
            raise UnsupportedSchemaError(
                f"`any` schema `{schema_name}` is not supported: {describe_schema(schema)}"
            )
        return None

    def _compile_enum(
        self, name: str, schema_name: str, schema: dict[str, Any], kind: SchemaKind
    ) -> Optional[CompiledType]:
        values = enum_values(schema)
        if not values:
            return None
        if any(value is None for value in values):
            raise UnsupportedSchemaError(f"nullable enum `{schema_name}`: {values!r}")

        members: list[EnumMember] = []
        taken: set[str] = set()
        for value in values:
            if kind == SchemaKind.STRING:
                value = str(value)
            member_name = unique_name(enum_member_identifier(value), taken)
            taken.add(member_name)
            members.append(EnumMember(name=member_name, value=value))

        return CompiledType(
            name=name,
            kind=CompiledKind.ENUM,
            schema_name=schema_name,
            description=schema.get("description"),
            members=members,
        )

    def _compile_tagged_union(
        self,
        name: str,
        schema_name: str,
        schema: dict[str, Any],
        discriminator: dict[str, Any],
    ) -> CompiledType:
        tag_field = discriminator.get("propertyName")
        if not tag_field:
            raise UnsupportedSchemaError(
                f"unexpected empty discriminator in `oneOf` schema `{schema_name}`"
            )

        branches = self._union_branches(name, schema)
        tagged: list[tuple[str, str]] = []
        mapped: set[str] = set()
        for tag, target in (discriminator.get("mapping") or {}).items():
            target_name = reference_schema_name(_mapping_reference(str(target)))
            if target_name not in branches:
                raise GenerationError(
                    f"`oneOf` type `{name}` maps discriminator value `{tag}` to unknown "
                    f"type `{target_name}`"
                )
            tagged.append((str(tag), target_name))
            mapped.add(target_name)
        # Branches without a mapping entry are tagged with their own schema name.
        tagged.extend((branch, branch) for branch in branches if branch not in mapped)

        variants: list[VariantDef] = []
        taken: set[str] = set()
        for tag, branch_name in tagged:
            variant = self._variant(name, branch_name, branches[branch_name], tag_field, taken)
            variants.append(variant.model_copy(update={"tag": tag}))

        return CompiledType(
            name=name,
            kind=CompiledKind.TAGGED_UNION,
            schema_name=schema_name,
            description=schema.get("description"),
            discriminator=tag_field,
            variants=variants,
        )

    def _compile_untagged_union(
        self, name: str, schema_name: str, schema: dict[str, Any]
    ) -> CompiledType:
        branches = self._union_branches(name, schema)
        taken: set[str] = set()
        variants = [
            self._variant(name, branch_name, branch, None, taken)
            for branch_name, branch in branches.items()
        ]
        _warn_overlapping_variants(name, variants)
        return CompiledType(
            name=name,
            kind=CompiledKind.UNTAGGED_UNION,
            schema_name=schema_name,
            description=schema.get("description"),
            variants=variants,
        )

    def _union_branches(self, name: str, schema: dict[str, Any]) -> dict[str, dict[str, Any]]:
        branches: dict[str, dict[str, Any]] = {}
        for branch in schema.get("oneOf") or []:
            if not is_reference(branch):
                raise UnsupportedSchemaError(
                    f"unexpected inline schema in `oneOf` schema `{name}`: enum variants must "
                    f"be references to named schemas: {describe_schema(branch)}"
                )
            branch_name, target = self._lookup(branch["$ref"])
            branches[branch_name] = target
        return branches

    def _variant(
        self,
        union_name: str,
        branch_name: str,
        branch: dict[str, Any],
        tag_field: Optional[str],
        taken: set[str],
    ) -> VariantDef:
        kind = schema_kind(branch)
        if kind == SchemaKind.OBJECT:
            objects = [branch]
        elif kind == SchemaKind.ALL_OF:
            objects = self._flatten_all_of(union_name, branch)
        else:
            raise UnsupportedSchemaError(
                f"variant `{branch_name}` of `oneOf` type `{union_name}` must be an object "
                f"type: {describe_schema(branch)}"
            )

        fields, extra = self._struct_body(union_name, objects, exclude=tag_field)
        variant_name = unique_name(type_identifier(branch_name), taken)
        taken.add(variant_name)
        return VariantDef(
            name=variant_name,
            schema_name=branch_name,
            fields=fields,
            extra=extra,
            description=branch.get("description"),
        )

    # ------------------------------------------------------------------ #
    # Struct bodies
    # ------------------------------------------------------------------ #

    def _flatten_all_of(
        self, name: str, schema: dict[str, Any], visiting: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        visiting = visiting if visiting is not None else []
        objects: list[dict[str, Any]] = []
        for component in schema.get("allOf") or []:
            if is_reference(component):
                target_name, target = self._lookup(component["$ref"])
                if target_name in visiting:
                    raise CyclicDependencyError([name, *visiting], target_name)
                visiting.append(target_name)
                objects.extend(self._flatten_component(name, target, visiting))
                visiting.pop()
            else:
                objects.extend(self._flatten_component(name, component, visiting))
        return objects

    def _flatten_component(
        self, name: str, component: dict[str, Any], visiting: list[str]
    ) -> Iterator[dict[str, Any]]:
        kind = schema_kind(component)
        if kind == SchemaKind.OBJECT:
            yield component
        elif kind == SchemaKind.ALL_OF:
            yield from self._flatten_all_of(name, component, visiting)
        else:
            raise UnsupportedSchemaError(
                f"unexpected `allOf` component type (must be object or nested `allOf`) in "
                f"`{name}`: {describe_schema(component)}"
            )

    def _struct_body(
        self,
        owner: str,
        objects: list[dict[str, Any]],
        exclude: Optional[str],
    ) -> tuple[list[FieldDef], Optional[TypeRef]]:
        properties: dict[str, dict[str, Any]] = {}
        required: set[str] = set()
        additional: Any = None

        for obj in objects:
            for prop_name, prop_schema in (obj.get("properties") or {}).items():
                existing = properties.get(prop_name)
                if existing is not None and existing != prop_schema:
                    raise GenerationError(
                        f"property `{prop_name}` of `{owner}` is defined more than once "
                        "with different schemas"
                    )
                properties[prop_name] = prop_schema
            required.update(obj.get("required") or [])

            obj_additional = obj.get("additionalProperties")
            if obj_additional is not None:
                if additional is not None:
                    raise GenerationError(
                        f"only one `additionalProperties` value is allowed in `allOf` "
                        f"schema `{owner}`"
                    )
                additional = obj_additional

        fields: list[FieldDef] = []
        taken: set[str] = set()
        for prop_name, prop_schema in properties.items():
            # The tag of a tagged union is consumed to select the variant.
            if prop_name == exclude:
                continue
            field_name = unique_name(field_identifier(prop_name), taken)
            taken.add(field_name)
            fields.append(
                FieldDef(
                    name=field_name,
                    json_name=prop_name,
                    type=self.inline_type(prop_schema),
                    required=prop_name in required,
                    description=self.description(prop_schema),
                )
            )

        return fields, self._additional_type(additional)

    def _additional_type(self, additional: Any) -> Optional[TypeRef]:
        if additional is None or additional is False:
            return None
        if additional is True:
            return TypeRef(kind=TypeRefKind.ANY)
        return self.inline_type(additional)

    # ------------------------------------------------------------------ #
    # Inline types
    # ------------------------------------------------------------------ #

    def _lookup(self, reference: str) -> tuple[str, dict[str, Any]]:
        schema_name = reference_schema_name(reference)
        target = self._schemas.get(schema_name)
        if target is None:
            raise InvalidReferenceError(
                f"invalid schema reference `{reference}`: target schema does not exist"
            )
        if is_reference(target):
            raise ReferenceChainError(
                f"reference chains (references to references) are not supported: "
                f"`{reference}` -> `{target['$ref']}`"
            )
        return schema_name, target

    def _reference_type(self, reference: str) -> TypeRef:
        schema_name, target = self._lookup(reference)
        if self.compile(schema_name, target) is not None:
            named = TypeRef.named(self.type_name(schema_name))
            if is_nullable(target):
                return named.model_copy(update={"nullable": True})
            return named

        if schema_name in self._inline:
            return self._inline[schema_name]
        if schema_name in self._inline_in_progress:
            raise CyclicDependencyError(self._inline_in_progress, schema_name)
        self._inline_in_progress.append(schema_name)
        try:
            inline = self._inline_schema(target)
        finally:
            self._inline_in_progress.pop()
        self._inline[schema_name] = inline
        return inline

    def _inline_schema(self, schema: dict[str, Any]) -> TypeRef:
        kind = schema_kind(schema)
        nullable = is_nullable(schema)

        if is_scalar(kind):
            if enum_values(schema):
                raise UnsupportedSchemaError(
                    "unexpected inline enum must use a reference to a named schema: "
                    f"{describe_schema(schema)}"
                )
            return _scalar_type(kind, schema.get("format"), nullable)

        if kind == SchemaKind.OBJECT:
            if schema.get("properties"):
                raise UnsupportedSchemaError(
                    "unexpected inline object schema must use a reference to a named schema: "
                    f"{describe_schema(schema)}"
                )
            value = self._additional_type(schema.get("additionalProperties"))
            if value is None:
                return TypeRef(kind=TypeRefKind.EMPTY, nullable=nullable)
            return TypeRef(kind=TypeRefKind.MAP, item=value, nullable=nullable)

        if kind == SchemaKind.ARRAY:
            items = schema.get("items")
            item = self.inline_type(items) if isinstance(items, dict) else TypeRef(kind=TypeRefKind.ANY)
            return TypeRef(
                kind=TypeRefKind.ARRAY,
                item=item,
                unique=bool(schema.get("uniqueItems", False)),
                nullable=nullable,
            )

        if kind == SchemaKind.ANY:
            if not is_trivial_any(schema):
                raise UnsupportedSchemaError(
                    f"unexpected inline `any` schema: {describe_schema(schema)}"
                )
            return TypeRef(kind=TypeRefKind.ANY)

        raise UnsupportedSchemaError(
            "unexpected inline schema must use a reference to a named schema: "
            f"{describe_schema(schema)}"
        )


def _scalar_type(kind: SchemaKind, fmt: Optional[str], nullable: bool) -> TypeRef:
    if kind == SchemaKind.STRING:
        ref_kind = _STRING_FORMATS.get(fmt or "", TypeRefKind.STRING)
    elif kind == SchemaKind.INTEGER:
        ref_kind = TypeRefKind.INTEGER
    elif kind == SchemaKind.NUMBER:
        ref_kind = TypeRefKind.NUMBER
    else:
        ref_kind = TypeRefKind.BOOLEAN
    return TypeRef(kind=ref_kind, format=fmt, nullable=nullable)


def _mapping_reference(target: str) -> str:
    # Bare schema names are shorthand for component schema references.
    if "#" not in target and "/" not in target:
        return f"{SCHEMA_REF_PREFIX}{target}"
    return target


def _warn_overlapping_variants(name: str, variants: list[VariantDef]) -> None:
    for index, earlier in enumerate(variants):
        earlier_required = {f.json_name for f in earlier.fields if f.required}
        for later in variants[index + 1:]:
            later_names = {f.json_name for f in later.fields}
            if earlier_required <= later_names:
                logger.warning(
                    "untagged union `%s`: variant `%s` may match payloads meant for later "
                    "variant `%s` (variants are tried in declaration order)",
                    name,
                    earlier.name,
                    later.name,
                )
