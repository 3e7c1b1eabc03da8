"""Tests for the contract test service."""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from test_service.main import app

FEATURES_URL = "https://unleash.test/api/client/features"

DATASET = {
    "version": 2,
    "features": [
        {"name": "on", "enabled": True, "strategies": [{"name": "default"}]},
        {"name": "off", "enabled": False},
    ],
}

INIT = {
    "command": "init",
    "config": {
        "url": "https://unleash.test",
        "appName": "harness",
        "apiToken": "default:dev.abc123",
        "refreshInterval": 60,
        "disableMetrics": True,
        "readyTimeout": 2,
    },
}


@pytest.fixture
def service():
    with respx.mock(assert_all_called=False) as mock:
        mock.get(FEATURES_URL).mock(return_value=httpx.Response(200, json=DATASET))
        with TestClient(app) as http:
            yield http
            http.delete("/")


def test_health(service):
    assert service.get("/").json() == {"success": True}


def test_not_initialized(service):
    assert service.post("/", json={"command": "isEnabled", "flagKey": "on"}).json() == {
        "error": "NotInitializedError",
        "message": "Client not initialized",
    }
    assert service.post("/", json={"command": "getState"}).json() == {
        "isReady": False,
        "state": "stopped",
    }


def test_init_and_evaluate(service):
    assert service.post("/", json=INIT).json() == {"isReady": True, "success": True}

    assert service.post("/", json={"command": "isEnabled", "flagKey": "on"}).json() == {"value": True}
    assert service.post("/", json={"command": "isEnabled", "flagKey": "off"}).json() == {"value": False}

    variant = service.post("/", json={"command": "getVariant", "flagKey": "on"}).json()["variant"]
    assert variant["name"] == "disabled"

    flags = service.post("/", json={"command": "resolveAll", "context": {}}).json()["flags"]
    assert flags["on"]["enabled"] is True

    state = service.post("/", json={"command": "getState"}).json()
    assert state["isReady"] is True
    assert state["state"] == "running"
    assert state["stats"]["requests"] == 1


def test_init_rejects_bad_token(service):
    cmd = {"command": "init", "config": {**INIT["config"], "apiToken": "bad"}}
    assert service.post("/", json=cmd).json()["error"] == "InvalidCredentialError"


def test_missing_flag_key(service):
    service.post("/", json=INIT)
    assert service.post("/", json={"command": "isEnabled"}).json()["error"] == "ValidationError"


def test_close(service):
    service.post("/", json=INIT)
    assert service.post("/", json={"command": "close"}).json() == {"success": True}
    assert service.post("/", json={"command": "getState"}).json()["state"] == "stopped"
