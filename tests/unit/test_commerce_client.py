"""
CommerceClient 전송 계층 테스트 (httpx.MockTransport).
"""

import httpx
import pytest

from catalog_export.commerce_client import CommerceClient, _describe_error
from catalog_export.exceptions import MalformedResponse, UpstreamUnavailable
from tests.fake_commerce import json_response


@pytest.mark.unit
class TestDescribeError:
    def test_list_parameters(self):
        msg = _describe_error(404, {"message": "No such entity with %1 = %2", "parameters": ["id", 7]})
        assert msg == "리소스를 찾을 수 없음: No such entity with id = 7"

    def test_dict_parameters(self):
        msg = _describe_error(400, {"message": "%fieldName is required", "parameters": {"fieldName": "sku"}})
        assert msg == "요청 파라미터 오류: sku is required"

    def test_unknown_status(self):
        assert _describe_error(418, None) == "HTTP 418 오류"


@pytest.mark.unit
class TestCommerceClient:
    def test_build_url(self):
        client = CommerceClient("https://shop.test/", rest_prefix="rest/")
        assert client.build_url("V1/products") == "https://shop.test/rest/V1/products"
        assert client.build_url("/all/V1/inventory/source-items") == "https://shop.test/rest/all/V1/inventory/source-items"

    @pytest.mark.asyncio
    async def test_request_json_signs_each_request(self, fake_commerce, bearer_auth):
        fake_commerce.route("V1/stockItems/A", {"qty": 3})
        client = fake_commerce.client()

        data = await client.request_json("GET", "V1/stockItems/A", params={"x": "1"}, auth=bearer_auth)

        assert data == {"qty": 3}
        request = fake_commerce.requests[0]
        assert request.headers["Authorization"] == "Bearer admin-token"
        assert request.url.params["x"] == "1"

    @pytest.mark.asyncio
    async def test_retry_on_503_then_success(self, fake_commerce):
        responses = [json_response({"message": "busy"}, 503), json_response({"ok": True})]
        fake_commerce.route("V1/products", lambda request: responses.pop(0))
        client = fake_commerce.client(retry_count=3)

        data = await client.request_json("GET", "V1/products")

        assert data == {"ok": True}
        assert len(fake_commerce.calls("V1/products")) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, fake_commerce):
        fake_commerce.route("V1/products", 400)
        client = fake_commerce.client(retry_count=3)

        with pytest.raises(UpstreamUnavailable) as excinfo:
            await client.request_json("GET", "V1/products")

        assert excinfo.value.status_code == 400
        assert excinfo.value.recoverable is False
        assert len(fake_commerce.calls("V1/products")) == 1

    @pytest.mark.asyncio
    async def test_transport_error_retried_then_raised(self, fake_commerce):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_commerce.route("V1/products", fail)
        client = fake_commerce.client(retry_count=2)

        with pytest.raises(UpstreamUnavailable) as excinfo:
            await client.request_json("GET", "V1/products")

        assert excinfo.value.status_code is None
        assert excinfo.value.recoverable is True
        assert len(fake_commerce.calls("V1/products")) == 2

    @pytest.mark.asyncio
    async def test_malformed_json(self, fake_commerce):
        fake_commerce.route("V1/products", lambda request: httpx.Response(200, content=b"<html>"))
        client = fake_commerce.client()

        with pytest.raises(MalformedResponse):
            await client.request_json("GET", "V1/products")

    @pytest.mark.asyncio
    async def test_empty_body(self, fake_commerce):
        fake_commerce.route("V1/products", lambda request: httpx.Response(200))
        client = fake_commerce.client()

        assert await client.request_json("GET", "V1/products") == {}
