"""
Service Bus Tests
-----------------
Tests for the FastAPI query API.

Tests cover:
- Health reporting
- Query results, diagnostics and rejected queries
- Module listing and noun completion
- Behavior without a registry
"""

import pytest
from pathlib import Path
import sys

from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))

from infra.config import ConfigManager
from infra.service_bus import ServiceBus, create_app


@pytest.fixture
def client(registry):
    with TestClient(ServiceBus(registry).create_app()) as test_client:
        yield test_client


@pytest.fixture
def empty_client():
    with TestClient(ServiceBus().create_app()) as test_client:
        yield test_client


class TestHealth:
    """Tests for GET /health."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["commands_loaded"] == 12
        assert body["modules_loaded"] == 1

    def test_degraded_without_registry(self, empty_client):
        assert empty_client.get("/health").json()["status"] == "degraded"


class TestQuery:
    """Tests for POST /commands."""

    def test_literal_lookup(self, client):
        response = client.post("/commands", json={"name": ["Get-Disk"]})

        assert response.status_code == 200
        [result] = response.json()["results"]
        assert result["name"] == "Get-Disk"
        assert result["command_type"] == "Function"
        assert result["module_name"] == "Storage"
        assert result["parameter_sets"][0]["parameters"][0]["name"] == "Number"

    def test_not_found_reported(self, client):
        body = client.post("/commands", json={"name": ["Get-Nothing"]}).json()

        assert body["results"] == []
        assert body["errors"][0]["error_id"] == "CommandNotFoundException"
        assert body["errors"][0]["target"] == "Get-Nothing"

    def test_syntax(self, client):
        body = client.post("/commands", json={"name": ["Get-Greeting"], "syntax": True}).json()

        assert body["syntax"] == ["Get-Greeting [[-Name] <string>]"]

    def test_conflicting_criteria_rejected(self, client):
        response = client.post(
            "/commands",
            json={"name": ["Get-Disk"], "syntax": True, "show_command_info": True},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error_id"] == \
            "GetCommandCannotSpecifySyntaxAndShowCommandInfoTogether"

    def test_empty_name_invalid(self, client):
        assert client.post("/commands", json={"name": []}).status_code == 422

    def test_private_commands_hidden(self, client):
        body = client.post("/commands", json={"name": ["Get-Secret"]}).json()

        assert body["results"] == []

    def test_unavailable_without_registry(self, empty_client):
        response = empty_client.post("/commands", json={"name": ["Get-Disk"]})

        assert response.status_code == 503


class TestModules:
    """Tests for GET /modules."""

    def test_loaded_modules(self, client):
        [storage] = client.get("/modules").json()

        assert storage["name"] == "Storage"
        assert storage["version"] == "2.0"
        assert storage["functions"] == 3
        assert storage["aliases"] == 1

    def test_auto_loaded_module_listed(self, client):
        client.post("/commands", json={"name": ["Test-NetPort"]})

        assert [m["name"] for m in client.get("/modules").json()] == ["Storage", "NetTools"]


class TestCompletion:
    """Tests for GET /complete/noun."""

    def test_complete(self, client):
        assert client.get("/complete/noun", params={"word": "Net"}).json() == [
            "NetAdapter", "NetPort", "NetRoute"
        ]

    def test_complete_by_module(self, client):
        response = client.get("/complete/noun", params={"word": "", "module": ["Storage"]})

        assert response.json() == ["Disk"]


class TestCreateApp:
    """Tests for the create_app factory."""

    def test_registry_from_config(self, tmp_path, registry_path):
        config_path = tmp_path / "cmdscope.yaml"
        config_path.write_text(f"registry:\n  path: {registry_path}\n", encoding="utf-8")

        app = create_app(config=ConfigManager(str(config_path)))

        with TestClient(app) as test_client:
            assert test_client.get("/health").json()["commands_loaded"] == 12
