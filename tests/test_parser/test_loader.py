"""Tests for specdispatch.parser.loader."""

from __future__ import annotations

import io
import json
import textwrap
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from specdispatch.exceptions import SpecParseError
from specdispatch.parser.loader import (
    DocumentCache,
    load_document,
    load_spec,
    parse_document,
    validate_openapi_version,
)

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


# ---------------------------------------------------------------------------
# load_spec dispatch
# ---------------------------------------------------------------------------


class TestLoadSpec:
    """Test load_spec dispatcher routes to the correct loader."""

    def test_loads_from_file_yaml(self) -> None:
        result = load_spec(str(FIXTURES_DIR / "petstore.yaml"))
        assert result["openapi"] == "3.0.3"
        assert result["info"]["title"] == "Petstore"

    def test_loads_from_file_json(self, tmp_path: Path) -> None:
        spec_file = tmp_path / "spec.json"
        spec_file.write_text(json.dumps({"openapi": "3.1.0", "paths": {}}), encoding="utf-8")
        assert load_spec(str(spec_file))["openapi"] == "3.1.0"

    def test_loads_from_stdin(self) -> None:
        spec_json = json.dumps({"openapi": "3.0.3", "info": {"title": "stdin test", "version": "1.0"}})
        with patch("specdispatch.parser.loader.sys") as mock_sys:
            mock_sys.stdin = io.StringIO(spec_json)
            result = load_spec("-")
        assert result["info"]["title"] == "stdin test"

    def test_empty_stdin_raises(self) -> None:
        with patch("specdispatch.parser.loader.sys") as mock_sys:
            mock_sys.stdin = io.StringIO("  \n")
            with pytest.raises(SpecParseError, match="No input"):
                load_spec("-")

    def test_loads_from_url(self) -> None:
        spec = {"openapi": "3.0.3", "info": {"title": "URL test", "version": "1.0"}}
        mock_response = httpx.Response(
            status_code=200,
            json=spec,
            request=httpx.Request("GET", "https://example.com/spec.json"),
        )
        with patch("specdispatch.parser.loader.httpx.get", return_value=mock_response):
            result = load_spec("https://example.com/spec.json")
        assert result["info"]["title"] == "URL test"

    def test_url_http_error(self) -> None:
        mock_response = httpx.Response(
            status_code=404,
            text="not found",
            request=httpx.Request("GET", "https://example.com/missing.yaml"),
        )
        with patch("specdispatch.parser.loader.httpx.get", return_value=mock_response):
            with pytest.raises(SpecParseError, match="HTTP 404"):
                load_spec("https://example.com/missing.yaml")

    def test_url_connection_error(self) -> None:
        error = httpx.ConnectError("refused")
        with patch("specdispatch.parser.loader.httpx.get", side_effect=error):
            with pytest.raises(SpecParseError, match="Failed to fetch"):
                load_spec("https://example.com/spec.yaml")

    def test_url_content_type_pins_yaml(self) -> None:
        mock_response = httpx.Response(
            status_code=200,
            text="openapi: 3.0.3\npaths: {}\n",
            headers={"content-type": "application/yaml"},
            request=httpx.Request("GET", "https://example.com/spec"),
        )
        with patch("specdispatch.parser.loader.httpx.get", return_value=mock_response):
            assert load_spec("https://example.com/spec") == {"openapi": "3.0.3", "paths": {}}


# ---------------------------------------------------------------------------
# load_document
# ---------------------------------------------------------------------------


class TestLoadDocument:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SpecParseError, match="not found"):
            load_document(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(SpecParseError, match="empty"):
            load_document(path)

    def test_fragment_document_is_accepted(self) -> None:
        """Referenced documents are not full OpenAPI specs."""
        document = load_document(FIXTURES_DIR / "multi" / "baz.yaml")
        assert "openapi" not in document
        assert "Baz" in document["schemas"]

    def test_parse_error_names_the_file(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SpecParseError, match="broken.json"):
            load_document(path)


# ---------------------------------------------------------------------------
# parse_document
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_json_before_yaml(self) -> None:
        assert parse_document('{"a": 1}', "inline") == {"a": 1}

    def test_yaml_fallback(self) -> None:
        content = textwrap.dedent("""\
            openapi: 3.0.0
            paths: {}
        """)
        assert parse_document(content, "inline") == {"openapi": "3.0.0", "paths": {}}

    def test_top_level_list_rejected(self) -> None:
        with pytest.raises(SpecParseError, match="inline: expected a mapping at the top level, got a list"):
            parse_document("[1, 2]", "inline")

    def test_unparseable(self) -> None:
        with pytest.raises(SpecParseError, match="inline: cannot parse as YAML"):
            parse_document("key: [unclosed", "inline", "yaml")

    def test_json_format_is_not_sniffed(self) -> None:
        with pytest.raises(SpecParseError, match="inline: invalid JSON"):
            parse_document("a: 1", "inline", "json")

    def test_empty_yaml_document(self) -> None:
        with pytest.raises(SpecParseError, match="got an empty document"):
            parse_document("# only a comment\n", "inline")


# ---------------------------------------------------------------------------
# validate_openapi_version
# ---------------------------------------------------------------------------


class TestValidateOpenapiVersion:
    @pytest.mark.parametrize("version", ["3.0.0", "3.0.3", "3.1.0"])
    def test_supported(self, version: str) -> None:
        assert validate_openapi_version({"openapi": version}) == version

    def test_swagger_rejected(self) -> None:
        with pytest.raises(SpecParseError, match="Swagger 2.0 documents are not supported"):
            validate_openapi_version({"swagger": "2.0"})

    def test_missing_version(self) -> None:
        with pytest.raises(SpecParseError, match="Missing 'openapi'"):
            validate_openapi_version({"info": {}})

    def test_unsupported_version(self) -> None:
        with pytest.raises(SpecParseError, match="Unsupported OpenAPI version"):
            validate_openapi_version({"openapi": "4.0.0"})


# ---------------------------------------------------------------------------
# DocumentCache
# ---------------------------------------------------------------------------


class TestDocumentCache:
    def test_loads_once(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.yaml"
        path.write_text("a: 1\n", encoding="utf-8")
        cache = DocumentCache()

        first = cache.get(path)
        path.write_text("a: 2\n", encoding="utf-8")
        second = cache.get(tmp_path / "." / "doc.yaml")

        assert first is second
        assert second == {"a": 1}
        assert len(cache) == 1

    def test_add_seeds_the_cache(self, tmp_path: Path) -> None:
        cache = DocumentCache()
        root = {"openapi": "3.0.3"}
        key = cache.add(tmp_path / "openapi.yaml", root)

        assert key == (tmp_path / "openapi.yaml").resolve()
        assert tmp_path / "openapi.yaml" in cache
        assert cache.get(tmp_path / "openapi.yaml") is root
