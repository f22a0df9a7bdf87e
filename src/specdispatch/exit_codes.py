"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific build-time failure category and is
referenced by the corresponding
:class:`~specdispatch.exceptions.SpecdispatchError` subclass. Build scripts
can inspect the exit code to tell a broken spec apart from a broken
configuration without parsing stderr.

Example::

    $ specdispatch generate openapi.yaml
    $ echo $?
    9   # EXIT_CYCLIC_DEPENDENCY -- two schemas depend on each other
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_SPEC_PARSE_ERROR = 7
"""The OpenAPI document could not be loaded, parsed or validated."""

EXIT_REFERENCE_ERROR = 8
"""A ``$ref`` pointer could not be resolved, or resolved to another reference."""

EXIT_CYCLIC_DEPENDENCY = 9
"""Two or more named types depend on each other, directly or transitively."""

EXIT_UNSUPPORTED_SCHEMA = 10
"""A schema, parameter or response uses a shape the compiler does not support."""

EXIT_OPERATION_ID_ERROR = 11
"""An operation is missing its operationId, or an operationId is used twice."""

EXIT_GENERATION_ERROR = 12
"""The spec is well formed but cannot be compiled (conflicting bodies, mappings, names)."""
