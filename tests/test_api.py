"""
Tests for the local HTTP API, driven through FastAPI's TestClient.
"""
import time

import pytest
from fastapi.testclient import TestClient

from api import DetectionAPI
from detection.probes import MockProbeSet
from detection_command_handler import DetectionCommandHandler

from conftest import identity_router


def wait_until_idle(client, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        state = client.get("/api/detection/status").json()
        if not state["is_detecting"] or time.monotonic() > deadline:
            return state
        time.sleep(0.02)


@pytest.fixture
def client(make_detection):
    detection = make_detection({"192.168.88.1": identity_router()})
    api = DetectionAPI(DetectionCommandHandler(detection), {"api": {"cors_origins": ["*"]}})
    with TestClient(api.app) as test_client:
        yield test_client


@pytest.fixture
def slow_client(make_detection):
    detection = make_detection({}, probe_set=MockProbeSet({}, delay=0.05))
    api = DetectionAPI(DetectionCommandHandler(detection), {})
    with TestClient(api.app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/api/system/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["probe_set"] == "MockProbeSet"
    assert body["scan_in_progress"] is False
    assert body["cache_entries"] == 0
    assert body["backend_scanner_configured"] is False


def test_idle_status(client):
    state = client.get("/api/detection/status").json()

    assert state["is_detecting"] is False
    assert state["status"] is None
    assert state["detected_router"] is None


def test_detect_runs_to_completion(client):
    response = client.post("/api/detection/detect", json={"cmd_id": "ui-1"})

    assert response.status_code == 202
    assert response.json() == {"command_id": "ui-1", "status": "accepted"}

    state = wait_until_idle(client)
    assert state["status"] == "completed"
    assert state["detected_router"]["address"] == "192.168.88.1"
    assert state["detected_router"]["fingerprint"]["method"] == "identity-confirmed"
    assert state["detected_router"]["recommended"]["kind"] == "secure-management"
    assert client.get("/api/system/health").json()["cache_entries"] == 1


def test_detect_all_runs_to_completion(client):
    response = client.post("/api/detection/detect-all", json={"max_results": 1})

    assert response.status_code == 202
    state = wait_until_idle(client)
    assert state["status"] == "completed"
    assert [r["address"] for r in state["detected_routers"]] == ["192.168.88.1"]


def test_invalid_scan_range_is_bad_request(client):
    response = client.post("/api/detection/detect", json={"scan_range": "10.0.0.0/8"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_SCAN_RANGE"


def test_invalid_strategy_is_bad_request(client):
    response = client.post("/api/detection/detect", json={"strategies": ["telepathy"]})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_STRATEGY"


def test_max_results_validated_by_model(client):
    response = client.post("/api/detection/detect-all", json={"max_results": 0})

    assert response.status_code == 422


def test_cancel_with_nothing_running(client):
    assert client.post("/api/detection/cancel").status_code == 404


def test_second_detection_conflicts_then_cancel(slow_client):
    assert slow_client.post("/api/detection/detect-all", json={"cmd_id": "a"}).status_code == 202

    conflict = slow_client.post("/api/detection/detect", json={"cmd_id": "b"})
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["code"] == "DETECTION_IN_PROGRESS"
    assert slow_client.post("/api/detection/reset").status_code == 409

    assert slow_client.post("/api/detection/cancel", params={"command_id": "a"}).status_code == 200

    state = wait_until_idle(slow_client)
    assert state["status"] == "cancelled"
    assert state["error"]["code"] == "DETECTION_CANCELLED"


def test_clear_cache_and_reset(client):
    client.post("/api/detection/detect", json={})
    wait_until_idle(client)

    assert client.delete("/api/detection/cache").status_code == 200
    assert client.get("/api/system/health").json()["cache_entries"] == 0

    response = client.post("/api/detection/reset")
    assert response.status_code == 200
    assert response.json()["status"] is None
