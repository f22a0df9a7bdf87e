"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet mode
- print_table in all three modes
- Global instance management and the error helper
"""

from __future__ import annotations

import json

import pytest

from specdispatch import output as output_module
from specdispatch.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("specdispatch.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("specdispatch.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert OutputManager().format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_tty_but_no_color(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout / stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        OutputManager(no_color=True).print_data("payload")
        captured = capfd.readouterr()
        assert captured.out == "payload\n"
        assert captured.err == ""

    @pytest.mark.parametrize(
        "method, expected",
        [
            ("success", "hello"),
            ("error", "Error: hello"),
            ("suggest", "→ hello"),
        ],
    )
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method, expected):
        getattr(OutputManager(no_color=True), method)("hello")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert captured.err == f"{expected}\n"

    def test_rich_diagnostics_go_to_stderr(self, capfd, non_tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        OutputManager().error("boom")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "Error:" in captured.err
        assert "boom" in captured.err


class TestQuietMode:
    @pytest.mark.parametrize("method", ["success", "suggest"])
    def test_quiet_suppresses(self, capfd, non_tty, method):
        getattr(OutputManager(no_color=True, quiet=True), method)("hidden")
        assert capfd.readouterr().err == ""

    def test_quiet_keeps_errors(self, capfd, non_tty):
        OutputManager(no_color=True, quiet=True).error("shown")
        assert "shown" in capfd.readouterr().err

    def test_quiet_does_not_suppress_stdout_data(self, capfd, non_tty):
        OutputManager(no_color=True, quiet=True).print_data("data")
        assert capfd.readouterr().out == "data\n"


# ------------------------------------------------------------------ #
# Tables
# ------------------------------------------------------------------ #


class TestPrintTable:
    def test_table_json_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(["Unit", "Operations"], [["pet", "4"], ["admin", "2"]])
        parsed = json.loads(capfd.readouterr().out)
        assert parsed == [
            {"Unit": "pet", "Operations": "4"},
            {"Unit": "admin", "Operations": "2"},
        ]

    def test_table_plain_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_table(["Unit", "Operations"], [["pet", "4"]], title="ignored")
        lines = capfd.readouterr().out.strip().split("\n")
        assert lines == ["Unit\tOperations", "pet\t4"]

    def test_table_rich_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.print_table(["Unit", "Operations"], [["pet", "4"]], title="Units")
        out = capfd.readouterr().out
        assert "Unit" in out
        assert "pet" in out
        assert "Units" in out

    def test_table_empty_rows(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON, no_color=True).print_table(["a"], [])
        assert json.loads(capfd.readouterr().out) == []


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)
        assert get_output() is get_output()

    def test_set_then_reset(self):
        custom = OutputManager(format=OutputFormat.JSON)
        set_output(custom)
        assert get_output() is custom
        reset_output()
        assert get_output() is not custom


class TestErrorHelper:
    def test_error_convenience(self, capfd, non_tty):
        set_output(OutputManager(no_color=True))
        output_module.error("bad")
        assert capfd.readouterr().err == "Error: bad\n"

