"""Shared test fixtures for specdispatch.

Provides the spec fixtures, isolated config environments, output and
logging resets, and the CLI runner. These fixtures are automatically
discovered by pytest and available to all test modules without explicit
imports.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

import pytest
import yaml

from specdispatch.output import OutputFormat, OutputManager, reset_output, set_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> None:
    """Drop the handlers the CLI callback attaches to the ``specdispatch`` logger.

    The Rich handler writes to the console of the OutputManager that was
    active during the command, whose stream is closed once CliRunner
    returns.
    """
    yield
    logger = logging.getLogger("specdispatch")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Spec fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def petstore_path(tmp_path: Path) -> Path:
    """Copy of the petstore spec in a temporary directory."""
    path = tmp_path / "petstore.yaml"
    shutil.copy(FIXTURES_DIR / "petstore.yaml", path)
    return path


@pytest.fixture
def petstore_raw() -> dict[str, Any]:
    """Raw petstore spec dict."""
    with open(FIXTURES_DIR / "petstore.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def multi_doc_path(tmp_path: Path) -> Path:
    """Root document of the three-file spec (openapi.yaml, bar.yaml, baz.yaml)."""
    target = tmp_path / "spec"
    shutil.copytree(FIXTURES_DIR / "multi", target)
    return target / "openapi.yaml"


@pytest.fixture
def unnamed_path() -> Path:
    """Spec with inline schemas in every position the namer handles."""
    return FIXTURES_DIR / "unnamed.yaml"


# ---------------------------------------------------------------------------
# Compiled API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pet_api(petstore_path: Path):
    """The petstore compiled as a single unit serving every operation."""
    from specdispatch import ApiUnit, compile_api

    return compile_api(petstore_path, ApiUnit("pet"))


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_DATA_HOME to a subdirectory of tmp_path so that crash logs
    never touch the real user directory. Clears all SPECDISPATCH_*
    environment variables and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "SPECDISPATCH_SPEC",
        "SPECDISPATCH_OUT_DIR",
        "SPECDISPATCH_CONFIG",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
