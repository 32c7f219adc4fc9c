"""
Query Client Tests
------------------
Tests for QueryClient against an in-process service bus and against
failing transports.
"""

import pytest
from pathlib import Path
import sys

import httpx
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))

from discovery.query import CommandQuery
from infra.client import ClientStatus, QueryClient
from infra.service_bus import HealthResponse, QueryResponse, ServiceBus


@pytest.fixture
def query_client(registry):
    with TestClient(ServiceBus(registry).create_app()) as test_client:
        yield QueryClient(http_client=test_client)


def failing_client(handler):
    transport = httpx.MockTransport(handler)
    return QueryClient(http_client=httpx.Client(transport=transport, base_url="http://testserver"))


class TestSuccessfulCalls:
    """Calls that reach a working server."""

    def test_health(self, query_client):
        response = query_client.health()

        assert response.success
        assert isinstance(response.data, HealthResponse)
        assert response.data.commands_loaded == 12

    def test_query(self, query_client):
        response = query_client.query(CommandQuery(name=["gci"]))

        assert response.success
        assert isinstance(response.data, QueryResponse)
        assert [r.name for r in response.data.results] == ["gci"]
        assert response.data.results[0].command_type == "Alias"

    def test_modules(self, query_client):
        response = query_client.modules()

        assert [m.name for m in response.data] == ["Storage"]

    def test_complete_noun(self, query_client):
        assert query_client.complete_noun("Child").data == ["ChildItem"]


class TestFailures:
    """Calls that fail are reported through the status."""

    def test_rejected_query(self, query_client):
        response = query_client.query(CommandQuery(name=["Get-Disk"], syntax=True, show_command_info=True))

        assert response.status == ClientStatus.REJECTED
        assert response.status_code == 400
        assert response.data["error_id"] == "GetCommandCannotSpecifySyntaxAndShowCommandInfoTogether"

    def test_network_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        response = failing_client(refuse).health()

        assert response.status == ClientStatus.NETWORK_ERROR
        assert "connection refused" in response.error

    def test_timeout(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        assert failing_client(slow).health().status == ClientStatus.TIMEOUT

    def test_server_error_text_body(self):
        response = failing_client(lambda request: httpx.Response(500, text="boom")).health()

        assert response.status == ClientStatus.SERVER_ERROR
        assert response.error == "HTTP 500: boom"

    def test_close_keeps_borrowed_client(self):
        borrowed = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))

        with QueryClient(http_client=borrowed):
            pass

        assert not borrowed.is_closed
