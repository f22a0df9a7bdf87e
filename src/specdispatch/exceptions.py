"""Build-time exception hierarchy for specdispatch.

All exceptions inherit from :class:`SpecdispatchError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`specdispatch.exit_codes`. Every one of them is fatal: generation aborts
on the first error and the message names the spec location at fault. The
top-level handler in :func:`specdispatch.app.main` catches
``SpecdispatchError`` and exits with the matching code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Request-time failures are a separate family, see
:mod:`specdispatch.runtime.errors`.

Subclass hierarchy::

    SpecdispatchError          (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- ConfigError            (exit 1)
    +-- SpecParseError         (exit 7)
    +-- InvalidReferenceError  (exit 8)
    |   +-- ReferenceChainError
    |   +-- CyclicReferenceError
    +-- CyclicDependencyError  (exit 9)
    +-- UnsupportedSchemaError (exit 10)
    +-- OperationIdError       (exit 11)
    +-- GenerationError        (exit 12)
"""

from specdispatch.exit_codes import (
    EXIT_CYCLIC_DEPENDENCY,
    EXIT_GENERATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_OPERATION_ID_ERROR,
    EXIT_REFERENCE_ERROR,
    EXIT_SPEC_PARSE_ERROR,
    EXIT_UNSUPPORTED_SCHEMA,
)


class SpecdispatchError(Exception):
    """Base exception for all specdispatch build-time errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`specdispatch.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(SpecdispatchError):
    """Raised for invalid CLI arguments or missing required options."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(SpecdispatchError):
    """Raised for configuration problems (missing file, invalid JSON, bad unit definitions)."""

    exit_code = EXIT_GENERIC_FAILURE


class SpecParseError(SpecdispatchError):
    """Raised when an OpenAPI document cannot be loaded, parsed, or fails validation."""

    exit_code = EXIT_SPEC_PARSE_ERROR


class InvalidReferenceError(SpecdispatchError):
    """Raised when a ``$ref`` is malformed or points at a missing or non-mapping value."""

    exit_code = EXIT_REFERENCE_ERROR


class ReferenceChainError(InvalidReferenceError):
    """Raised when a ``$ref`` resolves to a value that is itself a ``$ref``.

    Reference chains are not followed; the spec must point at the final
    target directly.
    """


class CyclicReferenceError(InvalidReferenceError):
    """Raised when inlining a foreign schema re-enters that same schema."""


class CyclicDependencyError(SpecdispatchError):
    """Raised when a named type depends on itself, directly or transitively.

    Args:
        stack: Names currently being compiled, outermost first.
        name: The name whose re-entry closed the cycle.
    """

    exit_code = EXIT_CYCLIC_DEPENDENCY

    def __init__(self, stack: list[str], name: str):
        self.stack = [*stack, name]
        super().__init__(
            "dependency cycle detected between models: " + " -> ".join(self.stack)
        )


class UnsupportedSchemaError(SpecdispatchError):
    """Raised for schema or parameter shapes the compiler refuses to guess at."""

    exit_code = EXIT_UNSUPPORTED_SCHEMA


class OperationIdError(SpecdispatchError):
    """Raised when an operation lacks an operationId or shares one with another operation."""

    exit_code = EXIT_OPERATION_ID_ERROR


class GenerationError(SpecdispatchError):
    """Raised when a well-formed spec cannot be compiled.

    Covers multiple MIME types on one body, conflicting
    ``additionalProperties``, discriminators naming missing properties,
    colliding type names, and operations claimed by more than one
    deployable unit.
    """

    exit_code = EXIT_GENERATION_ERROR
