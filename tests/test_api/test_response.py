"""Tests for specdispatch.api.response."""

from __future__ import annotations

import pytest

from specdispatch.api.response import parse_status_code, response_variants, status_variant_name
from specdispatch.exceptions import GenerationError, UnsupportedSchemaError
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.models import BodyStrategy

LABEL = "GET /pets (listPets)"


@pytest.fixture
def compiler() -> TypeModelCompiler:
    return TypeModelCompiler({})


class TestStatusVariantName:
    @pytest.mark.parametrize(
        "status, name",
        [
            (200, "Ok"),
            (201, "Created"),
            (204, "NoContent"),
            (401, "Unauthenticated"),
            (404, "NotFound"),
            (418, "ImATeapot"),
            (503, "ServiceUnavailable"),
            (299, "HttpStatus299"),
        ],
    )
    def test_names(self, status: int, name: str) -> None:
        assert status_variant_name(status) == name


class TestParseStatusCode:
    def test_valid(self) -> None:
        assert parse_status_code("404", LABEL) == 404

    def test_range_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="ranges are not supported"):
            parse_status_code("2XX", LABEL)

    @pytest.mark.parametrize("key", ["99", "600", "ok", "20"])
    def test_invalid(self, key: str) -> None:
        with pytest.raises(GenerationError, match="invalid HTTP status code"):
            parse_status_code(key, LABEL)


class TestResponseVariants:
    def test_default_comes_last(self, compiler: TypeModelCompiler) -> None:
        variants = response_variants(
            {
                "default": {"description": "Error", "content": {"text/plain": {}}},
                "404": {"description": "Missing"},
                "200": {
                    "description": "Found",
                    "content": {"application/json": {"schema": {"type": "integer"}}},
                },
            },
            compiler,
            LABEL,
        )
        assert [(v.name, v.status_code) for v in variants] == [
            ("NotFound", 404),
            ("Ok", 200),
            ("Default", None),
        ]
        assert variants[0].body is None
        assert variants[0].description == "Missing"
        assert variants[1].body.strategy == BodyStrategy.JSON_TYPED
        assert variants[2].is_default
        assert variants[2].body.strategy == BodyStrategy.TEXT

    def test_integer_keys(self, compiler: TypeModelCompiler) -> None:
        variants = response_variants({200: {"description": "ok"}}, compiler, LABEL)
        assert variants[0].status_code == 200

    def test_multiple_mime_types(self, compiler: TypeModelCompiler) -> None:
        with pytest.raises(GenerationError, match="the `Ok` response of"):
            response_variants(
                {"200": {"content": {"application/json": {}, "text/plain": {}}}},
                compiler,
                LABEL,
            )
