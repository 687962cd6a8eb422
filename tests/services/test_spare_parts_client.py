"""
Tests for SparePartsClient over httpx.MockTransport.

Covers the request shape of each operation, the response envelope, and
mapping of every failure onto ExternalServiceFailureError.
"""

import httpx
import pytest

from stock_kernel.exceptions import ExternalServiceFailureError
from stock_services.spare_parts_client import SparePartsClient


def _envelope(data=None, success=True, message="OK"):
    return {"success": success, "message": message, "data": data}


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def make_client(requests_seen):
    clients = []

    def _make(handler, api_token="secret-token"):
        def _record(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return handler(request)

        client = SparePartsClient(
            "http://parts.test",
            api_token=api_token,
            transport=httpx.MockTransport(_record),
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


class TestRequests:
    def test_add_stock(self, make_client, requests_seen):
        client = make_client(lambda r: httpx.Response(200, json=_envelope()))
        client.add_stock(12, 3, "Inbound delivery")

        (request,) = requests_seen
        assert request.method == "POST"
        assert request.url.path == "/api/v1/spare-part-inventory/12/add-stock"
        assert request.url.params["quantity"] == "3"
        assert request.url.params["notes"] == "Inbound delivery"

    def test_remove_stock(self, make_client, requests_seen):
        client = make_client(lambda r: httpx.Response(200, json=_envelope()))
        client.remove_stock(12, 1, "Used for task 4")
        assert requests_seen[0].url.path.endswith("/12/remove-stock")

    def test_bearer_header(self, make_client, requests_seen):
        client = make_client(lambda r: httpx.Response(200, json=_envelope()))
        client.add_stock(1, 1, "x")
        assert requests_seen[0].headers["Authorization"] == "Bearer secret-token"

    def test_prefixed_token_not_doubled(self, make_client, requests_seen):
        client = make_client(
            lambda r: httpx.Response(200, json=_envelope()), api_token="Bearer abc"
        )
        client.add_stock(1, 1, "x")
        assert requests_seen[0].headers["Authorization"] == "Bearer abc"

    def test_no_token_no_header(self, make_client, requests_seen):
        client = make_client(lambda r: httpx.Response(200, json=_envelope()), api_token=None)
        client.add_stock(1, 1, "x")
        assert "Authorization" not in requests_seen[0].headers

    def test_has_sufficient_stock(self, make_client, requests_seen):
        client = make_client(lambda r: httpx.Response(200, json=_envelope(data=True)))
        assert client.has_sufficient_stock(8, 5)
        assert requests_seen[0].url.params["requiredQuantity"] == "5"

    def test_get_part(self, make_client):
        part = {"id": 8, "name": "Filter cartridge"}
        client = make_client(lambda r: httpx.Response(200, json=_envelope(data=part)))
        assert client.get_part(8) == part


class TestFailures:
    def test_envelope_failure(self, make_client):
        client = make_client(
            lambda r: httpx.Response(200, json=_envelope(success=False, message="Part locked"))
        )
        with pytest.raises(ExternalServiceFailureError) as exc_info:
            client.add_stock(1, 1, "x")
        assert exc_info.value.operation == "add_stock"
        assert exc_info.value.detail == "Part locked"

    def test_http_error_status(self, make_client):
        client = make_client(lambda r: httpx.Response(503, json=_envelope(success=False)))
        with pytest.raises(ExternalServiceFailureError) as exc_info:
            client.remove_stock(1, 1, "x")
        assert exc_info.value.detail == "HTTP 503"

    def test_non_json_body(self, make_client):
        client = make_client(lambda r: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ExternalServiceFailureError, match="not JSON"):
            client.add_stock(1, 1, "x")

    def test_transport_error(self, make_client):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(_refuse)
        with pytest.raises(ExternalServiceFailureError):
            client.has_sufficient_stock(1, 1)

    def test_unexpected_part_payload(self, make_client):
        client = make_client(lambda r: httpx.Response(200, json=_envelope(data=["not", "a", "dict"])))
        with pytest.raises(ExternalServiceFailureError):
            client.get_part(3)

    def test_error_code(self, make_client):
        client = make_client(lambda r: httpx.Response(500))
        with pytest.raises(ExternalServiceFailureError) as exc_info:
            client.add_stock(1, 1, "x")
        assert exc_info.value.code == "EXTERNAL_SERVICE_FAILURE"
