"""Tests for specdispatch.runtime.codec."""

from __future__ import annotations

import datetime

import httpx
import pytest

from specdispatch.model import ModelNamespace, TypeModelCompiler, realize_types
from specdispatch.models import (
    BodyPlan,
    BodyStrategy,
    ParameterLocation,
    ParameterPlan,
    RequestBodyPlan,
    TypeRef,
    TypeRefKind,
)
from specdispatch.runtime.codec import (
    decode_body,
    decode_request_body,
    encode_body,
    error_path,
    extract_parameter,
    parse_scalar,
    raw_request_body,
    request_headers,
)
from specdispatch.runtime.errors import (
    InvalidBodyJson,
    InvalidBodyUtf8,
    InvalidRequestPathParam,
    InvalidRequestQueryParam,
    MissingRequestBody,
    MissingRequestParam,
    ResponseSerializationError,
)
from specdispatch.runtime.events import ProxyRequest

STRING = TypeRef(kind=TypeRefKind.STRING)
INTEGER = TypeRef(kind=TypeRefKind.INTEGER)


@pytest.fixture
def models() -> ModelNamespace:
    compiler = TypeModelCompiler({
        "Color": {"type": "string", "enum": ["red", "green"]},
        "Tag": {
            "type": "object",
            "required": ["name"],
            "properties": {"name": {"type": "string"}},
        },
        "Pet": {
            "type": "object",
            "required": ["tags"],
            "properties": {"tags": {"type": "array", "items": {"$ref": "#/components/schemas/Tag"}}},
        },
    })
    return realize_types(compiler.compile_all())


def _plan(
    name: str,
    location: ParameterLocation,
    type_: TypeRef,
    parse: bool = True,
    required: bool = False,
) -> ParameterPlan:
    return ParameterPlan(
        name=name,
        python_name=name,
        location=location,
        required=required,
        type=type_,
        parse=parse,
        is_array=type_.kind == TypeRefKind.ARRAY,
    )


def _extract(plan: ParameterPlan, request: ProxyRequest, models: ModelNamespace):
    return extract_parameter(plan, request, request_headers(request), models)


class TestParseScalar:
    @pytest.mark.parametrize(
        "type_, raw, expected",
        [
            (INTEGER, "42", 42),
            (TypeRef(kind=TypeRefKind.NUMBER), "1.5", 1.5),
            (TypeRef(kind=TypeRefKind.BOOLEAN), "true", True),
            (TypeRef(kind=TypeRefKind.DATE), "2024-02-29", datetime.date(2024, 2, 29)),
        ],
    )
    def test_scalars(self, models: ModelNamespace, type_: TypeRef, raw: str, expected) -> None:
        assert parse_scalar(type_, raw, models) == expected

    def test_enum(self, models: ModelNamespace) -> None:
        assert parse_scalar(TypeRef.named("Color"), "green", models) is models.Color.Green


class TestExtractParameter:
    def test_path_parameter(self, models: ModelNamespace) -> None:
        plan = _plan("id", ParameterLocation.PATH, INTEGER, required=True)
        request = ProxyRequest(path_parameters={"id": "12"})
        assert _extract(plan, request, models) == 12

    def test_path_parameter_percent_decoded(self, models: ModelNamespace) -> None:
        plan = _plan("name", ParameterLocation.PATH, STRING, parse=False, required=True)
        request = ProxyRequest(path_parameters={"name": "a%20b%2Fc"})
        assert _extract(plan, request, models) == "a b/c"

    def test_path_parameter_invalid_utf8(self, models: ModelNamespace) -> None:
        plan = _plan("name", ParameterLocation.PATH, STRING, parse=False, required=True)
        request = ProxyRequest(path_parameters={"name": "%ff"})
        with pytest.raises(InvalidRequestPathParam):
            _extract(plan, request, models)

    def test_missing_required(self, models: ModelNamespace) -> None:
        plan = _plan("q", ParameterLocation.QUERY, STRING, parse=False, required=True)
        with pytest.raises(MissingRequestParam):
            _extract(plan, ProxyRequest(), models)

    def test_optional_absent(self, models: ModelNamespace) -> None:
        plan = _plan("q", ParameterLocation.QUERY, INTEGER)
        assert _extract(plan, ProxyRequest(), models) is None

    def test_query_array(self, models: ModelNamespace) -> None:
        plan = _plan("color", ParameterLocation.QUERY, TypeRef.array(TypeRef.named("Color")))
        request = ProxyRequest(multi_value_query_string_parameters={"color": ["red", "green"]})
        assert _extract(plan, request, models) == [models.Color.Red, models.Color.Green]

    def test_query_array_invalid_item(self, models: ModelNamespace) -> None:
        plan = _plan("n", ParameterLocation.QUERY, TypeRef.array(INTEGER))
        request = ProxyRequest(multi_value_query_string_parameters={"n": ["1", "x"]})
        with pytest.raises(InvalidRequestQueryParam):
            _extract(plan, request, models)

    def test_header(self, models: ModelNamespace) -> None:
        plan = _plan("X-Trace", ParameterLocation.HEADER, STRING, parse=False)
        request = ProxyRequest(headers={"x-trace": "t-1"})
        assert _extract(plan, request, models) == "t-1"


class TestRequestHeaders:
    def test_repeated_headers(self) -> None:
        request = ProxyRequest(multi_value_headers={"Accept": ["a", "b"]})
        headers = request_headers(request)
        assert isinstance(headers, httpx.Headers)
        assert headers.get_list("accept") == ["a", "b"]


class TestRequestBody:
    JSON_PLAN = RequestBodyPlan(
        body=BodyPlan(mime_type="application/json", strategy=BodyStrategy.JSON_VALUE),
        required=False,
    )

    def _decode(self, plan: RequestBodyPlan, request: ProxyRequest, models: ModelNamespace):
        return decode_request_body(plan, request, request_headers(request), models)

    def test_optional_body_absent(self, models: ModelNamespace) -> None:
        request = ProxyRequest(headers={"content-type": "application/json"})
        assert self._decode(self.JSON_PLAN, request, models) is None

    def test_required_body_absent(self, models: ModelNamespace) -> None:
        plan = self.JSON_PLAN.model_copy(update={"required": True})
        request = ProxyRequest(headers={"content-type": "application/json"})
        with pytest.raises(MissingRequestBody):
            self._decode(plan, request, models)

    def test_content_type_parameters_ignored(self, models: ModelNamespace) -> None:
        request = ProxyRequest(
            headers={"content-type": "Application/JSON; charset=utf-8"}, body="[1, 2]"
        )
        assert self._decode(self.JSON_PLAN, request, models) == [1, 2]

    def test_raw_body(self) -> None:
        assert raw_request_body(ProxyRequest()) is None
        assert raw_request_body(ProxyRequest(body="é")) == "é".encode("utf-8")
        assert raw_request_body(ProxyRequest(body="aGk=", is_base64_encoded=True)) == b"hi"


class TestDecodeBody:
    def test_typed_json_error_path(self, models: ModelNamespace) -> None:
        plan = BodyPlan(
            mime_type="application/json",
            strategy=BodyStrategy.JSON_TYPED,
            type=TypeRef.named("Pet"),
        )
        with pytest.raises(InvalidBodyJson) as exc_info:
            decode_body(plan, b'{"tags": [{"name": 1}]}', models)
        assert exc_info.value.path == "tags[0].name"

    def test_typed_json_is_strict(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="application/json", strategy=BodyStrategy.JSON_TYPED, type=INTEGER)
        with pytest.raises(InvalidBodyJson):
            decode_body(plan, b'"1"', models)

    def test_json_string_kept_raw(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="application/json", strategy=BodyStrategy.JSON_STRING)
        assert decode_body(plan, b'{"signed": true}', models) == '{"signed": true}'

    def test_text_must_be_utf8(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="text/plain", strategy=BodyStrategy.TEXT)
        with pytest.raises(InvalidBodyUtf8):
            decode_body(plan, b"\xff", models)

    def test_bytes(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="image/png", strategy=BodyStrategy.BYTES)
        assert decode_body(plan, b"\x89PNG", models) == b"\x89PNG"

    def test_malformed_json_value(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="application/json", strategy=BodyStrategy.JSON_VALUE)
        with pytest.raises(InvalidBodyJson) as exc_info:
            decode_body(plan, b"{", models)
        assert exc_info.value.path == ""


class TestEncodeBody:
    def test_typed_json(self, models: ModelNamespace) -> None:
        plan = BodyPlan(
            mime_type="application/json",
            strategy=BodyStrategy.JSON_TYPED,
            type=TypeRef.named("Pet"),
        )
        pet = models.Pet(tags=[models.Tag(name="a")])
        assert encode_body(plan, pet, models) == '{"tags":[{"name":"a"}]}'

    def test_typed_json_wrong_type(self, models: ModelNamespace) -> None:
        plan = BodyPlan(
            mime_type="application/json",
            strategy=BodyStrategy.JSON_TYPED,
            type=TypeRef.named("Pet"),
        )
        with pytest.raises(ResponseSerializationError):
            encode_body(plan, models.Tag(name="a"), models)

    def test_typed_json_wrong_item_type(self, models: ModelNamespace) -> None:
        plan = BodyPlan(
            mime_type="application/json",
            strategy=BodyStrategy.JSON_TYPED,
            type=TypeRef.array(TypeRef.named("Pet")),
        )
        assert encode_body(plan, [models.Pet(tags=[])], models) == '[{"tags":[]}]'
        with pytest.raises(ResponseSerializationError, match="response body is not a"):
            encode_body(plan, [models.Pet(tags=[]), models.Tag(name="a")], models)

    def test_json_value(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="application/json", strategy=BodyStrategy.JSON_VALUE)
        assert encode_body(plan, {"a": [1]}, models) == '{"a": [1]}'
        with pytest.raises(ResponseSerializationError):
            encode_body(plan, object(), models)

    def test_text(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="text/plain", strategy=BodyStrategy.TEXT)
        assert encode_body(plan, "hi", models) == "hi"
        with pytest.raises(ResponseSerializationError, match="expected a str"):
            encode_body(plan, b"hi", models)

    def test_bytes(self, models: ModelNamespace) -> None:
        plan = BodyPlan(mime_type="application/octet-stream", strategy=BodyStrategy.BYTES)
        assert encode_body(plan, bytearray(b"hi"), models) == b"hi"
        with pytest.raises(ResponseSerializationError, match="expected a bytes"):
            encode_body(plan, "hi", models)


class TestErrorPath:
    @pytest.mark.parametrize(
        "loc, expected",
        [
            ((), ""),
            (("name",), "name"),
            (("tags", 0, "name"), "tags[0].name"),
            ((0, "id"), "[0].id"),
        ],
    )
    def test_paths(self, loc: tuple, expected: str) -> None:
        assert error_path(loc) == expected
