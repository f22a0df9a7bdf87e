"""Turn the compiled type model into live Python types.

Structs and union variants become pydantic models created with
:func:`pydantic.create_model`, enumerations become :class:`ClosedEnum`
subclasses, and unions become ``typing.Annotated`` union types:

* tagged unions use a callable :class:`pydantic.Discriminator` that reads
  the tag from the raw mapping (or from a variant instance) and one
  :class:`pydantic.Tag` per variant;
* untagged unions use ``union_mode="left_to_right"`` so the first variant
  that validates wins.

Types must be realized in dependency order, which is the order
:meth:`~specdispatch.model.compiler.TypeModelCompiler.compile_all` returns.
"""

from __future__ import annotations

import datetime
import types
from typing import Annotated, Any, Callable, Iterable, Optional, Union

from pydantic import ConfigDict, Discriminator, Field, Tag, TypeAdapter, create_model

from specdispatch.exceptions import GenerationError
from specdispatch.model.base import ClosedEnum, CompiledModel, CompiledUnion, EmptyModel
from specdispatch.models import CompiledKind, CompiledType, FieldDef, TypeRef, TypeRefKind


_PRIMITIVES: dict[TypeRefKind, Any] = {
    TypeRefKind.STRING: str,
    TypeRefKind.INTEGER: int,
    TypeRefKind.NUMBER: float,
    TypeRefKind.BOOLEAN: bool,
    TypeRefKind.BYTES: bytes,
    TypeRefKind.DATE: datetime.date,
    TypeRefKind.DATETIME: datetime.datetime,
    TypeRefKind.ANY: Any,
    TypeRefKind.EMPTY: EmptyModel,
}


class ModelNamespace:
    """The realized types of one compiled API, by class name.

    Attribute access returns the class (``models.Pet``); for unions that is
    the :class:`CompiledUnion` subclass whose attributes are the variant
    classes (``models.Shape.Circle``). :meth:`annotation` returns the type
    to validate against, which differs from the class only for unions.
    """

    def __init__(self, module: str = __name__) -> None:
        self.module = module
        self._classes: dict[str, Any] = {}
        self._annotations: dict[str, Any] = {}
        self._adapters: dict[Any, TypeAdapter[Any]] = {}
        self.compiled: dict[str, CompiledType] = {}

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["_classes"][name]
        except KeyError:
            raise AttributeError(f"no compiled type named `{name}`") from None

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def __iter__(self):
        return iter(self._classes)

    def __len__(self) -> int:
        return len(self._classes)

    def register(self, name: str, cls: Any, annotation: Any = None) -> None:
        if name in self._classes:
            raise GenerationError(f"type `{name}` is defined more than once")
        self._classes[name] = cls
        self._annotations[name] = annotation if annotation is not None else cls

    def annotation(self, name: str) -> Any:
        try:
            return self._annotations[name]
        except KeyError:
            raise GenerationError(f"reference to unknown type `{name}`") from None

    def python_type(self, ref: TypeRef) -> Any:
        """Return the Python annotation for an inline type expression.

        Example::

            models.python_type(TypeRef.array(TypeRef.named("Pet")))   # list[Pet]
        """
        if ref.kind == TypeRefKind.NAMED:
            tp = self.annotation(ref.name or "")
        elif ref.kind == TypeRefKind.ARRAY:
            tp = list[self.python_type(ref.item) if ref.item else Any]
        elif ref.kind == TypeRefKind.MAP:
            tp = dict[str, self.python_type(ref.item) if ref.item else Any]
        else:
            tp = _PRIMITIVES[ref.kind]
        if ref.nullable and tp is not Any:
            return Optional[tp]
        return tp

    def adapter(self, ref: TypeRef) -> TypeAdapter[Any]:
        """Return a cached :class:`TypeAdapter` for *ref*."""
        adapter = self._adapters.get(ref)
        if adapter is None:
            adapter = TypeAdapter(self.python_type(ref))
            self._adapters[ref] = adapter
        return adapter


def realize_types(
    compiled: Iterable[CompiledType], module: str = __name__
) -> ModelNamespace:
    """Create the Python types for *compiled*, in order.

    Args:
        compiled: Compiled types in dependency order.
        module: Value for the ``__module__`` of every created class.

    Returns:
        A :class:`ModelNamespace` holding every realized type.
    """
    namespace = ModelNamespace(module)
    for compiled_type in compiled:
        namespace.compiled[compiled_type.name] = compiled_type
        if compiled_type.kind == CompiledKind.ENUM:
            namespace.register(compiled_type.name, _realize_enum(compiled_type, module))
        elif compiled_type.kind == CompiledKind.STRUCT:
            cls = _realize_struct(
                namespace,
                compiled_type.name,
                compiled_type.fields,
                compiled_type.extra,
                bases=(CompiledModel,),
                doc=compiled_type.description,
            )
            namespace.register(compiled_type.name, cls)
        else:
            union_cls, annotation = _realize_union(namespace, compiled_type)
            namespace.register(compiled_type.name, union_cls, annotation)
    return namespace


# --- Enumerations ---


def _realize_enum(compiled_type: CompiledType, module: str) -> type[ClosedEnum]:
    members = [(member.name, member.value) for member in compiled_type.members]
    cls = ClosedEnum(compiled_type.name, members, module=module)
    cls.__doc__ = compiled_type.description
    return cls


# --- Structs ---


def _realize_struct(
    namespace: ModelNamespace,
    name: str,
    fields: list[FieldDef],
    extra: Optional[TypeRef],
    bases: tuple[type, ...],
    doc: Optional[str] = None,
    qualname: Optional[str] = None,
) -> type[CompiledModel]:
    if extra is not None:
        # The carrier comes last so its ``extra="allow"`` wins the config merge.
        carrier = _extras_carrier(namespace, name, extra)
        bases = (*(base for base in bases if base is not CompiledModel), carrier)

    definitions: dict[str, Any] = {}
    for field in fields:
        annotation = namespace.python_type(field.type)
        if field.required:
            info = Field(..., alias=field.json_name, description=field.description)
        else:
            annotation = Optional[annotation]
            info = Field(None, alias=field.json_name, description=field.description)
        definitions[field.name] = (annotation, info)

    cls = create_model(
        name,
        __base__=bases if len(bases) > 1 else bases[0],
        __module__=namespace.module,
        __doc__=doc,
        **definitions,
    )
    cls.__required_fields__ = frozenset(f.name for f in fields if f.required)
    if qualname is not None:
        cls.__qualname__ = qualname
    return cls


def _extras_carrier(namespace: ModelNamespace, name: str, extra: TypeRef) -> type:
    """Build a mixin base whose ``__pydantic_extra__`` annotation types the extra fields."""
    value_type = namespace.python_type(extra)
    body = {
        "__annotations__": {"__pydantic_extra__": dict[str, value_type]},
        "__module__": namespace.module,
        "model_config": ConfigDict(extra="allow"),
    }
    return types.new_class(f"{name}Extras", (CompiledModel,), {}, lambda ns: ns.update(body))


# --- Unions ---


def _realize_union(
    namespace: ModelNamespace, compiled_type: CompiledType
) -> tuple[type[CompiledUnion], Any]:
    union_cls = create_model(
        compiled_type.name,
        __base__=CompiledUnion,
        __module__=namespace.module,
        __doc__=compiled_type.description,
    )

    variants: dict[str, type[CompiledModel]] = {}
    members: list[Any] = []
    tagged = compiled_type.kind == CompiledKind.TAGGED_UNION
    for variant in compiled_type.variants:
        variant_cls = _realize_struct(
            namespace,
            variant.name,
            variant.fields,
            variant.extra,
            bases=(union_cls,),
            doc=variant.description,
            qualname=f"{compiled_type.name}.{variant.name}",
        )
        if tagged:
            variant_cls.__discriminator_field__ = compiled_type.discriminator
            variant_cls.__discriminator_value__ = variant.tag
            members.append(Annotated[variant_cls, Tag(variant.tag or variant.name)])
        else:
            members.append(variant_cls)
        variants[variant.name] = variant_cls
        setattr(union_cls, variant.name, variant_cls)
    union_cls.__variants__ = variants

    if not members:
        raise GenerationError(f"union `{compiled_type.name}` has no variants")
    if len(members) == 1:
        return union_cls, next(iter(variants.values()))
    union = Union[tuple(members)]
    if tagged:
        annotation = Annotated[
            union, Discriminator(_tag_reader(compiled_type.discriminator or ""))
        ]
    else:
        annotation = Annotated[union, Field(union_mode="left_to_right")]
    return union_cls, annotation


def _tag_reader(field: str) -> Callable[[Any], Optional[str]]:
    def read_tag(value: Any) -> Optional[str]:
        if isinstance(value, dict):
            tag = value.get(field)
            return tag if isinstance(tag, str) else None
        return getattr(value, "__discriminator_value__", None)

    return read_tag
