import uuid
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from orders_service.deps import get_engine
from orders_service.errors import DeviceUnavailable, FailureReason
from orders_service.main import app, shutdown
from tests.conftest import DEVICE_A, DEVICE_B, EMPLOYEE_ID


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def order_body(**overrides):
    body = {
        "description": "Lift for hall B",
        "devicesIds": [str(DEVICE_A), str(DEVICE_B)],
        "assigneeType": "EMPLOYEE",
        "assigneeId": str(EMPLOYEE_ID),
    }
    body.update(overrides)
    return body


class TestCreateEndpoint:

    def test_create_returns_201_with_camel_case_order(self, client, auth_headers):
        r = client.post("/orders", json=order_body(), headers=auth_headers)

        assert r.status_code == 201
        data = r.json()
        assert data["state"] == "CREATED"
        assert data["notificationStatus"] == "PENDING"
        assert data["assigneeType"] == "EMPLOYEE"
        assert data["version"] == 0
        assert {i["deviceId"] for i in data["items"]} == {str(DEVICE_A), str(DEVICE_B)}

    def test_missing_token_is_401(self, client):
        r = client.post("/orders", json=order_body())
        assert r.status_code == 401

    def test_garbage_token_is_401(self, client):
        r = client.get("/orders", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401

    def test_empty_device_list_is_400(self, client, auth_headers):
        r = client.post("/orders", json=order_body(devicesIds=[]), headers=auth_headers)
        assert r.status_code == 400
        assert r.json()["error"] == "Validation Error"

    def test_unavailable_device_is_409(self, client, auth_headers, devices):
        devices.states[DEVICE_A] = "OCCUPIED"

        r = client.post("/orders", json=order_body(), headers=auth_headers)

        assert r.status_code == 409
        body = r.json()
        assert body["status"] == 409
        assert body["error"] == "Device Error"
        assert str(DEVICE_A) in body["message"]

    def test_device_service_down_is_503(self, client, auth_headers, devices):
        devices.fetch_error = DeviceUnavailable("Dependent service is unavailable", FailureReason.SERVICE_UNAVAILABLE)
        r = client.post("/orders", json=order_body(), headers=auth_headers)
        assert r.status_code == 503

    def test_idempotency_key_replays_order(self, client, auth_headers, devices):
        headers = dict(auth_headers, **{"Idempotency-Key": "abc-123"})

        first = client.post("/orders", json=order_body(), headers=headers)
        second = client.post("/orders", json=order_body(), headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert first.json()["id"] == second.json()["id"]
        assert len(devices.calls_named("reserve")) == 1


class TestReadEndpoints:

    def test_get_unknown_order_is_404(self, client, auth_headers):
        r = client.get(f"/orders/{uuid.uuid4()}", headers=auth_headers)
        assert r.status_code == 404
        assert r.json()["error"] == "Order Error"

    def test_get_and_list(self, client, auth_headers):
        created = client.post("/orders", json=order_body(), headers=auth_headers).json()

        r = client.get(f"/orders/{created['id']}", headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["id"] == created["id"]

        r = client.get("/orders", params={"deviceId": str(DEVICE_B)}, headers=auth_headers)
        assert [o["id"] for o in r.json()] == [created["id"]]

        r = client.get("/orders", params={"assigneeId": str(uuid.uuid4())}, headers=auth_headers)
        assert r.json() == []


class TestStateEndpoint:

    def test_walk_to_finished(self, client, auth_headers, devices):
        order_id = client.post("/orders", json=order_body(), headers=auth_headers).json()["id"]

        for state in ("IN_PROCESS", "DISPATCHED", "FINISHED"):
            r = client.patch(f"/orders/{order_id}/state", json={"state": state}, headers=auth_headers)
            assert r.status_code == 200
            assert r.json()["state"] == state

        assert r.json()["version"] == 3
        assert devices.states == {DEVICE_A: "GOOD_CONDITION", DEVICE_B: "FAIR"}

    def test_invalid_transition_is_400(self, client, auth_headers):
        order_id = client.post("/orders", json=order_body(), headers=auth_headers).json()["id"]
        r = client.patch(f"/orders/{order_id}/state", json={"state": "FINISHED"}, headers=auth_headers)
        assert r.status_code == 400

    def test_unknown_state_value_is_400(self, client, auth_headers):
        r = client.patch(f"/orders/{uuid.uuid4()}/state", json={"state": "LOST"}, headers=auth_headers)
        assert r.status_code == 400


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_shutdown_closes_publisher():
    with patch("orders_service.main.get_publisher") as get_publisher:
        shutdown()
    get_publisher.return_value.close.assert_called_once()
