"""Tests for specdispatch.runtime.events."""

from __future__ import annotations

import httpx

from specdispatch.runtime.events import HttpResponse, ProxyRequest, ProxyResponse


class TestProxyRequest:
    def test_gateway_field_names(self) -> None:
        request = ProxyRequest.model_validate({
            "httpMethod": "POST",
            "path": "/pets",
            "pathParameters": {"petId": "1"},
            "requestContext": {"operationName": "addPet", "requestId": "r-1", "domainName": "x"},
            "body": "e30=",
            "isBase64Encoded": True,
        })
        assert request.http_method == "POST"
        assert request.path_parameters == {"petId": "1"}
        assert request.request_context.operation_name == "addPet"
        assert request.request_context.request_id == "r-1"
        assert request.request_context.model_extra == {"domainName": "x"}
        assert request.is_base64_encoded is True

    def test_null_maps_become_empty(self) -> None:
        request = ProxyRequest.model_validate({
            "headers": None,
            "multiValueHeaders": None,
            "queryStringParameters": None,
            "multiValueQueryStringParameters": None,
            "pathParameters": None,
            "stageVariables": None,
            "requestContext": None,
        })
        assert request.headers == {}
        assert request.path_parameters == {}
        assert request.request_context.operation_name is None

    def test_header_items_prefer_multi_value(self) -> None:
        request = ProxyRequest(
            headers={"accept": "b"},
            multi_value_headers={"accept": ["a", "b"], "x-one": ["1"]},
        )
        assert request.header_items() == [("accept", "a"), ("accept", "b"), ("x-one", "1")]

    def test_header_items_single_value(self) -> None:
        request = ProxyRequest(headers={"accept": "b"})
        assert request.header_items() == [("accept", "b")]

    def test_query_value(self) -> None:
        request = ProxyRequest(
            query_string_parameters={"a": "last"},
            multi_value_query_string_parameters={"a": ["first", "last"], "b": ["x", "y"]},
        )
        assert request.query_value("a") == "last"
        assert request.query_value("b") == "x"
        assert request.query_value("c") is None

    def test_query_values(self) -> None:
        request = ProxyRequest(
            query_string_parameters={"a": "1", "b": "2"},
            multi_value_query_string_parameters={"a": ["0", "1"]},
        )
        assert request.query_values("a") == ["0", "1"]
        assert request.query_values("b") == ["2"]
        assert request.query_values("c") is None


class TestHttpResponse:
    def test_text_body(self) -> None:
        response = HttpResponse(
            status_code=201,
            headers=httpx.Headers([("Content-Type", "text/plain"), ("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]),
            body="hello",
        ).to_proxy_response()
        assert response.status_code == 201
        assert response.multi_value_headers == {
            "content-type": ["text/plain"],
            "set-cookie": ["a=1", "b=2"],
        }
        assert response.body == "hello"
        assert response.is_base64_encoded is False

    def test_binary_body_base64_encoded(self) -> None:
        response = HttpResponse(body=b"\xff\x00").to_proxy_response()
        assert response.body == "/wA="
        assert response.is_base64_encoded is True

    def test_defaults(self) -> None:
        response = HttpResponse().to_proxy_response()
        assert (response.status_code, response.body, response.multi_value_headers) == (200, None, {})


class TestProxyResponse:
    def test_to_event(self) -> None:
        event = ProxyResponse(status_code=204).to_event()
        assert event == {
            "statusCode": 204,
            "headers": {},
            "multiValueHeaders": {},
            "isBase64Encoded": False,
        }
