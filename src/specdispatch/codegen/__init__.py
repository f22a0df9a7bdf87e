"""Generation run, deployable units and handler scaffolding.

Typical usage::

    from specdispatch.codegen import ApiUnit, CodeGenerator, operation_filter
    from specdispatch.gateway import LambdaArn

    CodeGenerator("openapi.yaml").add_api_unit(
        ApiUnit(
            "pet",
            LambdaArn.cloud_formation("PetApiFunction.Alias"),
            op_filter=operation_filter(tags=["pet"]),
        )
    ).generate()
"""

from specdispatch.codegen.emitter import render_handler_scaffold
from specdispatch.codegen.generator import CodeGenerator, CompiledApi, GenerationResult, compile_api
from specdispatch.codegen.units import ApiUnit, assign_operations, operation_filter

__all__ = [
    "ApiUnit",
    "CodeGenerator",
    "CompiledApi",
    "GenerationResult",
    "assign_operations",
    "compile_api",
    "operation_filter",
    "render_handler_scaffold",
]
