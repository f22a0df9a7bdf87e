"""specdispatch -- Compile OpenAPI 3.x specs into typed serverless request dispatchers.

This package turns an OpenAPI document (possibly spread over several files)
into a typed request-dispatch layer for serverless HTTP handlers. The
pipeline resolves and inlines ``$ref`` pointers, names anonymous schemas,
compiles a type model (structs, unions, closed enumerations), and plans
every operation's parameter extraction, body decoding, authentication and
response serialization.

Typical workflow::

    specdispatch generate openapi.yaml --config specdispatch.json

At runtime a deployable unit loads its compiled module and dispatches
proxy requests::

    from specdispatch import ApiUnit, LambdaArn, compile_api

    api = compile_api("openapi.yaml", ApiUnit("pet", LambdaArn.cloud_formation("PetFunction")))
    dispatcher = api.dispatcher(PetHandler(), PetMiddleware())

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package (config and IR).
    config: Project configuration loading and precedence resolution.
    exceptions: Build-time exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    gateway: Gateway extension transformer and integration targets.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

from specdispatch.codegen import ApiUnit, CodeGenerator, CompiledApi, compile_api
from specdispatch.gateway import LambdaArn

__all__ = [
    "ApiUnit",
    "CodeGenerator",
    "CompiledApi",
    "LambdaArn",
    "compile_api",
    "__version__",
]
