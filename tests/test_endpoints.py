"""Tests for API endpoints."""

import pytest
from conftest import EchoTool
from fastapi.testclient import TestClient

from relay.main import app
from relay.services.bridge import ToolBridgeServer, get_bridge_server
from relay.tools.registry import ToolsRegistry


@pytest.fixture
def client():
    app.dependency_overrides[get_bridge_server] = lambda: ToolBridgeServer(ToolsRegistry([EchoTool()]))
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["tools"] == ["echo"]
        assert "timestamp" in data

    def test_health_check_content_type(self, client):
        """Test that health check returns JSON content type."""
        response = client.get("/health")
        assert response.headers["content-type"] == "application/json"


class TestRpcEndpoint:
    """Tests for the JSON-RPC endpoint."""

    def test_tools_list(self, client):
        response = client.post("/rpc", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == 1
        assert [tool["name"] for tool in data["result"]["tools"]] == ["echo"]
        assert "error" not in data

    def test_tools_call(self, client):
        response = client.post(
            "/rpc",
            json={
                "jsonrpc": "2.0",
                "id": "c1",
                "method": "tools/call",
                "params": {"name": "echo", "arguments": {"text": "hey"}},
            },
        )

        assert response.json() == {
            "jsonrpc": "2.0",
            "id": "c1",
            "result": {"content": [{"type": "text", "text": "echo: hey"}], "is_error": False},
        }

    def test_protocol_errors_use_http_200(self, client):
        response = client.post("/rpc", json={"jsonrpc": "2.0", "id": 5, "method": "tools/destroy"})

        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32601
        assert response.json()["id"] == 5

    def test_malformed_body(self, client):
        response = client.post("/rpc", content=b"not json", headers={"content-type": "application/json"})

        assert response.json()["error"]["code"] == -32700
        assert response.json()["id"] is None
