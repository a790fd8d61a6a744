"""Tests for the Flask telemetry service."""

from __future__ import annotations

import pytest

from backend.telemetry.engine import TelemetryEngine
from backend.telemetry.scheduler import ReadingBuffer
from backend.telemetry.service import create_app


@pytest.fixture
def buffer() -> ReadingBuffer:
    return ReadingBuffer()


@pytest.fixture
def client(engine: TelemetryEngine, buffer: ReadingBuffer):
    app = create_app(engine, buffer)
    app.config["TESTING"] = True
    return app.test_client()


def _payload(**overrides) -> dict:
    body = {"flowRate": 20, "pressure": 16, "waterLevel": 70,
            "leakDetected": False, "timestamp": "2026-03-01T08:00:00Z"}
    body.update(overrides)
    return body


def test_health(client) -> None:
    assert client.get("/health").get_json()["status"] == "OK"


def test_readings_are_buffered_until_tick(client, buffer: ReadingBuffer) -> None:
    resp = client.post("/readings", json={"readings": {"N1": _payload(), "N2": None}})

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "buffered", "pendingReadings": 1}
    assert len(buffer) == 1
    assert client.get("/history").get_json() == []


def test_single_reading_with_node_id(client, buffer: ReadingBuffer) -> None:
    resp = client.post("/readings", json={"nodeId": "N2", **_payload()})
    assert resp.status_code == 200
    assert buffer.drain()["N2"].flow_rate == 20.0


def test_tick_now_updates_every_view(client) -> None:
    resp = client.post("/readings?tick=now", json={"readings": {"N1": _payload(leakDetected=True)}})
    body = resp.get_json()

    assert body["status"] == "processed"
    assert body["tick"]["newAlerts"][0]["severity"] == "high"

    snapshot = client.get("/snapshot").get_json()
    assert snapshot["flowRate"] == 20.0
    assert snapshot["totalVolume"] > 0

    history = client.get("/history").get_json()
    assert len(history) == 1 and history[0]["time"] == "08:00:00"

    nodes = client.get("/nodes").get_json()
    assert [n["status"] for n in nodes] == ["active", "offline", "offline"]

    alerts = client.get("/alerts").get_json()
    assert len(alerts["alerts"]) == 1
    assert alerts["suppressedCount"] == 0


def test_clear_alerts_twice(client) -> None:
    client.post("/readings?tick=now", json={"readings": {"N1": _payload(leakDetected=True)}})

    assert client.post("/alerts/clear").get_json()["removed"] == 1
    assert client.post("/alerts/clear").get_json()["removed"] == 0
    assert client.get("/alerts").get_json()["alerts"] == []


def test_unknown_node_is_rejected(client) -> None:
    resp = client.post("/readings", json={"readings": {"ghost": _payload()}})
    assert resp.status_code == 400
    assert "ghost" in resp.get_json()["error"]


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        {"something": 1},
        {"readings": ["N1"]},
        {"readings": {"N1": 42}},
        {"nodeId": 5, "flowRate": 1},
        {"nodeId": ["N1"], "flowRate": 1},
        {"nodeId": None, "flowRate": 1},
    ],
)
def test_malformed_bodies_are_rejected(client, body) -> None:
    if isinstance(body, str):
        resp = client.post("/readings", data=body, content_type="application/json")
    else:
        resp = client.post("/readings", json=body)
    assert resp.status_code == 400


def test_connection_flag(client) -> None:
    assert client.post("/connection", json={"connected": False}).get_json() == {"connected": False}
    assert client.get("/status").get_json()["connected"] is False
    assert client.post("/connection", json={"connected": "no"}).status_code == 400


def test_reference_and_summary(client) -> None:
    reference = client.get("/reference").get_json()
    assert {row["name"] for row in reference["efficiency"]} == {"Efficient Usage", "Wastage", "Maintenance"}

    assert client.get("/history/summary").get_json() == {"summary": None}
    client.post("/readings?tick=now", json={"readings": {"N1": _payload()}})
    assert client.get("/history/summary").get_json()["summary"]["points"] == 1


def test_status_reports_counters(client) -> None:
    client.post("/readings?tick=now", json={"readings": {"N1": _payload(waterLevel=150)}})
    status = client.get("/status").get_json()

    assert status["ticks"] == 1
    assert status["dataQualityEvents"] == 1
    assert status["nodeTimeouts"] == 2
    assert status["historyCapacity"] == 50
    assert status["pendingReadings"] == 0
