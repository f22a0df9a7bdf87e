"""Typer application and CLI entry point for specdispatch.

Commands:

* ``specdispatch generate [SPEC]`` -- run the generation pipeline for the
  deployable units configured in ``specdispatch.json`` and write the
  gateway spec plus one handler scaffold per unit.
* ``specdispatch inspect types SPEC`` -- list the compiled named types.
* ``specdispatch inspect operations SPEC`` -- list the operation plans.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. Build-time errors exit with their
:mod:`~specdispatch.exit_codes` code; anything else writes a crash log
under the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from rich.logging import RichHandler

from specdispatch import __version__
from specdispatch.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="specdispatch",
    help="Compile OpenAPI 3.x specs into typed request dispatchers for serverless handlers.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)
inspect_app = typer.Typer(no_args_is_help=True)
app.add_typer(inspect_app, name="inspect", help="Inspect what a spec compiles to.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"specdispatch {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~specdispatch.output.OutputManager` and the
    log handler, and stores shared flags in ``ctx.obj``.
    """
    from specdispatch.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet)
    set_output(output)
    _configure_logging(output.stderr_console, verbose=verbose, quiet=quiet)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


def _configure_logging(console: Any, verbose: bool, quiet: bool) -> None:
    """Route the package's log records to stderr through Rich."""
    logger = logging.getLogger("specdispatch")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=console, show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    if verbose:
        logger.setLevel(logging.DEBUG)
    elif quiet:
        logger.setLevel(logging.ERROR)
    else:
        logger.setLevel(logging.WARNING)


# ------------------------------------------------------------------ #
# generate
# ------------------------------------------------------------------ #


@app.command("generate")
def generate_command(
    spec: Optional[str] = typer.Argument(
        None, help="Path or URL of the root OpenAPI document ('-' for stdin)."
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Project config file (default: ./specdispatch.json)."
    ),
    out_dir: Optional[str] = typer.Option(
        None, "--out-dir", "-o", help="Output directory (default: .specdispatch)."
    ),
    units: list[str] = typer.Option(
        [], "--unit", "-u", help="Only generate the named unit(s). Repeatable."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing handler scaffolds."
    ),
) -> None:
    """Generate the gateway spec and handler scaffolds.

    Example::

        specdispatch generate openapi.yaml --out-dir build/
    """
    from specdispatch.codegen import ApiUnit, CodeGenerator
    from specdispatch.config import resolve_config
    from specdispatch.exceptions import InvalidUsageError
    from specdispatch.output import get_output

    output = get_output()

    def run() -> None:
        resolved = resolve_config(cli_spec=spec, cli_out_dir=out_dir, cli_config=config)
        if resolved.spec is None:
            raise InvalidUsageError(
                "No spec given. Pass SPEC, set SPECDISPATCH_SPEC, or add `spec` to specdispatch.json"
            )
        unit_configs = resolved.units
        if units:
            known = {unit.name for unit in unit_configs}
            unknown = [name for name in units if name not in known]
            if unknown:
                raise InvalidUsageError(f"Unknown unit(s): {', '.join(unknown)}")
            unit_configs = [unit for unit in unit_configs if unit.name in units]
        if not unit_configs:
            raise InvalidUsageError("No deployable units configured in specdispatch.json")

        generator = CodeGenerator(resolved.spec, resolved.out_dir)
        for unit_config in unit_configs:
            generator.add_api_unit(ApiUnit.from_config(unit_config))
        result = generator.generate(force=force)

        written = {path.name for path in result.written}
        rows = []
        for unit in result.units:
            filename = f"{unit.name}_handler.py"
            rows.append([
                unit.name,
                str(len(result.plans[unit.name])),
                filename,
                "written" if filename in written else "kept",
            ])
        output.print_table(["Unit", "Operations", "Handler", "Status"], rows, title="Generated units")
        output.success(f"Wrote {len(result.written)} file(s) to {generator.out_dir}")
        if len(written) < len(result.units) + 1:
            output.suggest("Pass --force to overwrite existing handler scaffolds")

    _run_reporting_errors(run)


# ------------------------------------------------------------------ #
# inspect
# ------------------------------------------------------------------ #


@inspect_app.command("types")
def inspect_types(
    spec: str = typer.Argument(..., help="Path or URL of the root OpenAPI document."),
) -> None:
    """List the named types a spec compiles to.

    Example::

        specdispatch inspect types openapi.yaml
    """
    from specdispatch.codegen import CodeGenerator
    from specdispatch.models import CompiledKind
    from specdispatch.output import get_output

    def run() -> None:
        result = CodeGenerator(spec).compile(gateway=False)
        rows = []
        for compiled in result.types:
            if compiled.kind == CompiledKind.STRUCT:
                detail = ", ".join(f.name for f in compiled.fields)
            elif compiled.kind == CompiledKind.ENUM:
                detail = ", ".join(repr(m.value) for m in compiled.members)
            else:
                detail = ", ".join(v.name for v in compiled.variants)
            rows.append([compiled.name, compiled.kind.value, compiled.schema_name, detail])
        get_output().print_table(["Name", "Kind", "Schema", "Members"], rows, title="Types")

    _run_reporting_errors(run)


@inspect_app.command("operations")
def inspect_operations(
    spec: str = typer.Argument(..., help="Path or URL of the root OpenAPI document."),
) -> None:
    """List every operation with its handler name, auth and response variants.

    Example::

        specdispatch inspect operations openapi.yaml
    """
    from specdispatch.codegen import ApiUnit, CodeGenerator
    from specdispatch.output import get_output

    def run() -> None:
        result = CodeGenerator(spec).add_api_unit(ApiUnit("api")).compile(gateway=False)
        rows = []
        for plan in result.plans["api"]:
            responses = ", ".join(
                variant.name if variant.is_default else f"{variant.name} ({variant.status_code})"
                for variant in plan.responses
            )
            rows.append([
                plan.operation_id,
                plan.method.value.upper(),
                plan.path,
                plan.handler_name,
                "yes" if plan.authenticated else "no",
                responses,
            ])
        get_output().print_table(
            ["Operation ID", "Method", "Path", "Handler", "Auth", "Responses"],
            rows,
            title="Operations",
        )

    _run_reporting_errors(run)


def _run_reporting_errors(run: Any) -> None:
    """Run a command body, turning build-time errors into a clean exit."""
    from specdispatch.exceptions import SpecdispatchError
    from specdispatch.output import error

    try:
        run()
    except SpecdispatchError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to the data directory and return its path."""
    from specdispatch.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``specdispatch`` console script.

    :class:`~specdispatch.exceptions.SpecdispatchError` exits with the
    error's ``exit_code``. Any other exception writes a crash log and exits
    with :data:`~specdispatch.exit_codes.EXIT_GENERIC_FAILURE`.

    Raises:
        SystemExit: Always.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from specdispatch.exceptions import SpecdispatchError
        from specdispatch.output import error

        if isinstance(exc, SpecdispatchError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
