from __future__ import annotations

from typing import Callable, Iterator

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.reading_store import build_default_hub, build_default_store
from models.records import SensorReading
from services.ingestion import build_default_ingestion
from services.observations import build_default_encoder
from settings import get_settings

CALM = {"temperature": 22.0, "humidity": 45.0, "sound": 120.0, "heart_rate": 72.0}
STRESSED = {"temperature": 29.5, "humidity": 72.0, "sound": 550.0, "heart_rate": 105.0}


def _clear_caches() -> None:
    for cache in (
        build_default_ingestion,
        build_default_encoder,
        build_default_store,
        build_default_hub,
        get_settings,
    ):
        cache.cache_clear()


@pytest.fixture
def client_factory(monkeypatch) -> Iterator[Callable[..., TestClient]]:
    clients: list[TestClient] = []

    def factory(capacity: int = 10) -> TestClient:
        monkeypatch.setenv("SENSOR_GENERATOR_ENABLED", "false")
        monkeypatch.setenv("HISTORY_CAPACITY", str(capacity))
        _clear_caches()
        client = TestClient(create_app())
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)
    _clear_caches()


@pytest.fixture
def api_client(client_factory) -> TestClient:
    return client_factory()


def test_health_reports_empty_state(api_client: TestClient) -> None:
    response = api_client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["last_reading"] is None
    assert body["total_readings"] == 0
    assert body["subscribers"] == 0


def test_latest_returns_not_found_before_first_ingest(api_client: TestClient) -> None:
    response = api_client.get("/api/sensor/latest")

    assert response.status_code == 404
    assert response.json()["detail"] == "No sensor readings available"


def test_ingest_then_latest(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensor/ingest", json=CALM, headers={"X-Correlation-ID": "corr-42"}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["correlation_id"] == "corr-42"

    latest = api_client.get("/api/sensor/latest").json()
    assert latest["id"] == body["reading_id"]
    assert latest["temperature"] == 22.0
    assert latest["heart_rate"] == 72.0
    assert latest["correlation_id"] == "corr-42"


def test_ingest_generates_correlation_id_when_absent(api_client: TestClient) -> None:
    body = api_client.post("/api/sensor/ingest", json=CALM).json()

    assert body["correlation_id"]


def test_rejected_reading_is_not_stored(api_client: TestClient) -> None:
    response = api_client.post("/api/sensor/ingest", json={**CALM, "temperature": 100.0})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["field"] == "temperature"
    assert detail["bound"] == [-20.0, 60.0]
    assert detail["value"] == 100.0

    assert api_client.get("/api/sensor/latest").status_code == 404
    assert api_client.get("/api/sensor/history").json()["total"] == 0


def test_oversized_integer_is_rejected_as_bad_request(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensor/ingest",
        content='{"temperature": ' + "9" * 401 + ', "humidity": 45.0, "sound": 120.0, "heart_rate": 72.0}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["field"] == "temperature"
    assert "finite" in detail["message"]
    assert api_client.get("/api/sensor/history").json()["total"] == 0


def test_missing_field_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/api/sensor/ingest", json={"temperature": 22.0})

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "humidity"


def test_history_is_bounded_and_ordered(client_factory) -> None:
    client = client_factory(capacity=3)
    for heart_rate in (60.0, 61.0, 62.0, 63.0, 64.0):
        client.post("/api/sensor/ingest", json={**CALM, "heart_rate": heart_rate})

    body = client.get("/api/sensor/history").json()

    assert body["capacity"] == 3
    assert body["total"] == 3
    assert [item["heart_rate"] for item in body["data"]] == [62.0, 63.0, 64.0]

    limited = client.get("/api/sensor/history", params={"limit": 2}).json()
    assert [item["heart_rate"] for item in limited["data"]] == [63.0, 64.0]


def test_fhir_latest_bundle(api_client: TestClient) -> None:
    api_client.post("/api/sensor/ingest", json=STRESSED)

    response = api_client.get("/api/fhir/Observation/latest")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/fhir+json")
    bundle = response.json()
    assert bundle["resourceType"] == "Bundle"
    assert bundle["total"] == 4
    codes = [entry["resource"]["code"]["coding"][0]["code"] for entry in bundle["entry"]]
    assert codes == ["8310-5", "ESMS-ENV-001", "ESMS-ENV-002", "8867-4"]


def test_fhir_endpoints_return_not_found_without_data(api_client: TestClient) -> None:
    assert api_client.get("/api/fhir/Observation/latest").status_code == 404
    assert api_client.get("/api/fhir/Observation/bundle").status_code == 404
    assert api_client.get("/api/fhir/Observation/temperature/latest").status_code == 404


def test_fhir_bundle_over_recent_history(api_client: TestClient) -> None:
    for heart_rate in (70.0, 80.0, 90.0):
        api_client.post("/api/sensor/ingest", json={**CALM, "heart_rate": heart_rate})

    bundle = api_client.get("/api/fhir/Observation/bundle", params={"count": 2}).json()

    assert bundle["total"] == 8
    heart_rates = [
        entry["resource"]["valueQuantity"]["value"]
        for entry in bundle["entry"]
        if entry["resource"]["code"]["coding"][0]["code"] == "8867-4"
    ]
    assert heart_rates == [80.0, 90.0]


def test_fhir_observation_by_type(api_client: TestClient) -> None:
    api_client.post("/api/sensor/ingest", json=CALM)

    response = api_client.get("/api/fhir/Observation/heartrate/latest")

    assert response.status_code == 200
    observation = response.json()
    assert observation["resourceType"] == "Observation"
    assert observation["code"]["coding"][0]["code"] == "8867-4"
    assert observation["valueQuantity"]["value"] == 72.0


def test_fhir_observation_unknown_type(api_client: TestClient) -> None:
    api_client.post("/api/sensor/ingest", json=CALM)

    response = api_client.get("/api/fhir/Observation/pressure/latest")

    assert response.status_code == 400
    assert "Invalid observation type" in response.json()["detail"]


def test_websocket_streams_accepted_readings(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        hello = websocket.receive_json()
        assert hello["type"] == "Connected"
        assert hello["data"]["client_id"]

        assert api_client.get("/api/health").json()["subscribers"] == 1

        api_client.post("/api/sensor/ingest", json={**CALM, "temperature": 500.0})
        api_client.post("/api/sensor/ingest", json=CALM)

        message = websocket.receive_json()
        assert message["type"] == "SensorUpdate"
        assert message["data"]["temperature"] == 22.0


def test_websocket_ping_and_invalid_frames(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.receive_json()

        websocket.send_json({"type": "Ping"})
        assert websocket.receive_json() == {"type": "Pong"}

        websocket.send_text("not json")
        error = websocket.receive_json()
        assert error["type"] == "Error"
        assert error["data"]["message"] == "Invalid message format"


def test_closing_socket_unsubscribes(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        assert api_client.get("/api/health").json()["subscribers"] == 1

    assert api_client.get("/api/health").json()["subscribers"] == 0


def _publish_burst(count: int) -> None:
    hub = build_default_hub()
    for heart_rate in range(60, 60 + count):
        hub.publish(SensorReading(**{**CALM, "heart_rate": float(heart_rate)}))


def test_overflowing_socket_is_closed_under_disconnect_policy(
    monkeypatch, client_factory
) -> None:
    monkeypatch.setenv("SUBSCRIBER_OVERFLOW_POLICY", "disconnect")
    monkeypatch.setenv("SUBSCRIBER_BUFFER_SIZE", "1")
    client = client_factory()

    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        # Publishing without yielding to the loop overflows the one-slot buffer.
        client.portal.call(_publish_burst, 3)

        with pytest.raises(WebSocketDisconnect) as excinfo:
            while True:
                websocket.receive_json()

        assert excinfo.value.code == 1013
        assert client.get("/api/health").json()["subscribers"] == 0


def test_scenario_two_readings_capacity_one(client_factory) -> None:
    client = client_factory(capacity=1)

    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        first.receive_json()
        second.receive_json()

        ids = [
            client.post("/api/sensor/ingest", json=payload).json()["reading_id"]
            for payload in (CALM, STRESSED)
        ]

        for websocket in (first, second):
            received = [websocket.receive_json() for _ in range(2)]
            assert [message["type"] for message in received] == ["SensorUpdate"] * 2
            assert [message["data"]["id"] for message in received] == ids

    history = client.get("/api/sensor/history").json()
    assert [item["id"] for item in history["data"]] == [ids[1]]

    latest = client.get("/api/sensor/latest").json()
    bundle = client.get("/api/fhir/Observation/latest").json()
    assert bundle["total"] == 4
    assert [
        (entry["resource"]["code"]["coding"][0]["code"], entry["resource"]["valueQuantity"]["value"])
        for entry in bundle["entry"]
    ] == [("8310-5", 29.5), ("ESMS-ENV-001", 72.0), ("ESMS-ENV-002", 550.0), ("8867-4", 105.0)]
    effective_times = {entry["resource"]["effectiveDateTime"] for entry in bundle["entry"]}
    assert len(effective_times) == 1
    assert effective_times.pop().startswith(latest["timestamp"][:19])


def test_lifespan_resets_default_factories(monkeypatch) -> None:
    monkeypatch.setenv("SENSOR_GENERATOR_ENABLED", "false")
    _clear_caches()

    with TestClient(create_app()):
        store_during = build_default_store()

    store_after = build_default_store()
    try:
        assert store_after is not store_during
    finally:
        _clear_caches()


def test_generator_feeds_store_when_enabled(monkeypatch) -> None:
    monkeypatch.setenv("SENSOR_GENERATOR_ENABLED", "true")
    monkeypatch.setenv("SENSOR_INTERVAL_MS", "5")
    _clear_caches()

    try:
        with TestClient(create_app()) as client:
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()
                message = websocket.receive_json()
            assert message["type"] == "SensorUpdate"
            assert client.get("/api/health").json()["total_readings"] >= 1
    finally:
        _clear_caches()
