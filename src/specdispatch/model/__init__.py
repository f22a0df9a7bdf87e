"""Type model: schema naming, compilation, and runtime realization.

Typical usage::

    from specdispatch.model import TypeModelCompiler, name_schemas, realize_types

    name_schemas(document)
    compiler = TypeModelCompiler(document["components"]["schemas"])
    models = realize_types(compiler.compile_all())
    models.Pet.model_validate_json(b'{"name": "foo"}')
"""

from specdispatch.model.base import ClosedEnum, CompiledModel, CompiledUnion, EmptyModel, InvalidEnumVariant
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.model.naming import name_schemas
from specdispatch.model.realize import ModelNamespace, realize_types

__all__ = [
    "ClosedEnum",
    "CompiledModel",
    "CompiledUnion",
    "EmptyModel",
    "InvalidEnumVariant",
    "ModelNamespace",
    "TypeModelCompiler",
    "name_schemas",
    "realize_types",
]
