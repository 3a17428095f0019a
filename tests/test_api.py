import random
import time

import pytest
from fastapi.testclient import TestClient

import stripbooth.main as main_module
from conftest import FakeCamera
from stripbooth.api.dependencies import get_booth_service, get_camera_service, get_storage
from stripbooth.errors import CameraUnavailable
from stripbooth.services.booth import BoothService
from stripbooth.services.capture import CaptureSession
from stripbooth.services.compositor import StripCompositor
from stripbooth.services.storage import InMemoryStripStorage


def build_booth(camera):
    session = CaptureSession(
        camera,
        layout_id="horizontal",
        countdown_ticks=1,
        tick_interval=0.0,
        inter_shot_pause=0.0,
        rng=random.Random(1)
    )
    return BoothService(session, StripCompositor(), InMemoryStripStorage())


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def booth(camera):
    return build_booth(camera)


@pytest.fixture
def client(booth, camera, monkeypatch):
    app = main_module.app
    monkeypatch.setattr(main_module, "booth_service", booth)
    app.dependency_overrides[get_booth_service] = lambda: booth
    app.dependency_overrides[get_storage] = lambda: booth.storage
    app.dependency_overrides[get_camera_service] = lambda: camera
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def wait_for_state(client, state, attempts=200):
    for _ in range(attempts):
        status = client.get("/api/session/status").json()
        if status["state"] == state:
            return status
        time.sleep(0.01)
    raise AssertionError(f"session never reached {state}")


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_list_layouts(client):
    data = client.get("/api/catalog/layouts").json()
    assert data["default"] == "classic"
    assert [layout["id"] for layout in data["layouts"]] == ["classic", "vintage", "horizontal", "grid"]


def test_unknown_theme_resolves_to_default(client):
    response = client.get("/api/catalog/themes/disco")
    assert response.status_code == 200
    assert response.json()["id"] == "classic"


def test_full_capture_compose_save_flow(client):
    response = client.post("/api/session/select", json={"theme_id": "neon"})
    assert response.json()["theme_id"] == "neon"

    response = client.post("/api/session/start")
    assert response.status_code == 200

    status = wait_for_state(client, "complete")
    assert status["frame_count"] == status["photo_count"] == 3

    response = client.get("/api/session/result")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert "photobooth-strip-" in response.headers["content-disposition"]

    response = client.post("/api/session/save", json={"user_id": "ana"})
    assert response.status_code == 200
    strip_id = response.json()["id"]

    strips = client.get("/api/strips/", params={"user_id": "ana"}).json()["strips"]
    assert [s["id"] for s in strips] == [strip_id]
    assert strips[0]["theme_id"] == "neon"

    response = client.get(f"/api/strips/{strip_id}")
    assert response.status_code == 200
    assert response.content[:2] == b"\xff\xd8"

    assert client.get("/api/strips/stats").json()["total_strips"] == 1
    assert client.delete(f"/api/strips/{strip_id}").status_code == 200
    assert client.delete(f"/api/strips/{strip_id}").status_code == 404


def test_recompose_endpoint(client):
    client.post("/api/session/start")
    wait_for_state(client, "complete")

    response = client.post("/api/session/recompose", json={"theme_id": "wedding"})
    assert response.status_code == 200
    assert response.json()["theme_id"] == "wedding"

    response = client.post("/api/session/recompose", json={"layout_id": "grid"})
    assert response.status_code == 422


def test_retake_resets_session(client):
    client.post("/api/session/start")
    wait_for_state(client, "complete")

    response = client.post("/api/session/retake")
    assert response.status_code == 200
    assert response.json()["state"] == "idle"
    assert response.json()["frame_count"] == 0
    assert client.get("/api/session/result").status_code == 404


def test_cancel_when_idle_conflicts(client):
    assert client.post("/api/session/cancel").status_code == 409


def test_save_before_compose_conflicts(client):
    assert client.post("/api/session/save", json={}).status_code == 409


def test_facing_mode_endpoint(client):
    response = client.post("/api/session/facing-mode", json={"facing_mode": "environment"})
    assert response.status_code == 200
    assert response.json()["facing_mode"] == "environment"

    assert client.post("/api/session/facing-mode", json={"facing_mode": "sideways"}).status_code == 422


def test_permission_denied_returns_503():
    camera = FakeCamera(fail_on_start=CameraUnavailable.PERMISSION_DENIED)
    booth = build_booth(camera)
    app = main_module.app
    app.dependency_overrides[get_booth_service] = lambda: booth
    try:
        client = TestClient(app)
        response = client.post("/api/session/start")
        assert response.status_code == 503
        assert response.json()["detail"]["reason"] == "permission-denied"
        assert client.get("/api/session/status").json()["state"] == "cancelled"
    finally:
        app.dependency_overrides.clear()


def test_missing_strip_returns_404(client):
    assert client.get("/api/strips/nope").status_code == 404


def test_websocket_sends_status_then_preview(client):
    with client.websocket_connect("/ws") as ws:
        first = ws.receive_json()
        assert first["type"] == "status"
        assert first["data"]["layout_id"] == "horizontal"
        second = ws.receive_json()
        assert second["type"] == "preview"


def test_update_and_clear_strips(client):
    client.post("/api/session/start")
    wait_for_state(client, "complete")
    client.get("/api/session/result")
    strip_id = client.post("/api/session/save", json={"user_id": "ana"}).json()["id"]

    response = client.patch(f"/api/strips/{strip_id}", json={"title": "Office party"})
    assert response.status_code == 200
    assert response.json()["title"] == "Office party"
    assert response.json()["user_id"] == "ana"
    assert response.json()["updated_at"] is not None

    assert client.patch("/api/strips/nope", json={"title": "x"}).status_code == 404

    response = client.delete("/api/strips/")
    assert response.json() == {"success": True, "deleted": 1}
    assert client.get("/api/strips/").json()["strips"] == []


def test_select_after_completion_requires_recompose(client):
    client.post("/api/session/start")
    wait_for_state(client, "complete")
    assert client.get("/api/session/result").status_code == 200

    response = client.post("/api/session/select", json={"theme_id": "wedding"})
    assert response.json()["theme_id"] == "wedding"
    assert response.json()["has_result"] is False
    assert client.get("/api/session/result").status_code == 404

    assert client.post("/api/session/recompose", json={}).json()["theme_id"] == "wedding"
    assert client.get("/api/session/status").json()["has_result"] is True


def test_facing_mode_endpoint_selects_device(client, camera):
    response = client.post("/api/session/facing-mode", json={"facing_mode": "environment", "device_id": 1})
    assert response.json()["device_id"] == 1

    client.post("/api/session/start")
    wait_for_state(client, "complete")
    assert camera.devices[-1] == 1

    assert client.post("/api/session/facing-mode",
                       json={"facing_mode": "user", "device_id": -1}).status_code == 422
