"""Tests for the MQTT alert publisher using an injected fake client."""

from __future__ import annotations

import json
import threading

from backend.telemetry import pipeline
from backend.telemetry.engine import TelemetryEngine
from backend.telemetry.pipeline import MqttAlertPublisher

from conftest import reading


class FakeClient:
    def __init__(self, fail: bool = False, gate: threading.Event | None = None) -> None:
        self.fail = fail
        self.gate = gate
        self.messages: list[tuple[str, str, int]] = []
        self.stopped = False

    def publish(self, topic, payload, qos=0):
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.fail:
            raise OSError("broker gone")
        self.messages.append((topic, payload, qos))

    def loop_stop(self):
        self.stopped = True

    def disconnect(self):
        pass


def test_new_alerts_are_published(engine: TelemetryEngine) -> None:
    client = FakeClient()
    publisher = MqttAlertPublisher(client=client, topic="test/alerts")
    publisher.attach(engine)

    engine.tick({"N1": reading(tick=0)})
    engine.tick({"N1": reading(tick=1, leak=True)})
    publisher.close()

    assert len(client.messages) == 1
    topic, payload, qos = client.messages[0]
    body = json.loads(payload)
    assert topic == "test/alerts"
    assert qos == 1
    assert body["type"] == "leak"
    assert body["source"] == "telemetry-engine"
    assert publisher.published == 1
    assert client.stopped


def test_suppressed_alerts_are_not_published() -> None:
    engine = TelemetryEngine(nodes=[{"id": "N1", "location": "Main"}], alert_cap=1)
    client = FakeClient()
    publisher = MqttAlertPublisher(client=client)
    publisher.attach(engine)

    for i in range(3):
        engine.tick({"N1": reading(tick=i, leak=True)})
    publisher.close()

    assert len(client.messages) == 1
    assert engine.suppressed_count == 2


def test_publish_failure_does_not_break_tick(engine: TelemetryEngine) -> None:
    publisher = MqttAlertPublisher(client=FakeClient(fail=True))
    publisher.attach(engine)

    engine.tick({"N1": reading(leak=True)})
    publisher.close()

    assert publisher.published == 0
    assert len(engine.alerts()) == 1


def test_slow_broker_does_not_hold_the_engine(engine: TelemetryEngine) -> None:
    gate = threading.Event()
    client = FakeClient(gate=gate)
    publisher = MqttAlertPublisher(client=client)
    publisher.attach(engine)

    done = threading.Event()

    def run_tick() -> None:
        engine.tick({"N1": reading(leak=True)})
        done.set()

    worker = threading.Thread(target=run_tick)
    worker.start()

    # tick and locked readers finish while publish is still blocked
    assert done.wait(2.0)
    assert len(engine.history()) == 1
    assert client.messages == []

    gate.set()
    worker.join()
    publisher.close()
    assert len(client.messages) == 1


def test_failed_connect_is_not_retried_per_alert(monkeypatch) -> None:
    attempts = []

    class UnreachableClient:
        def __init__(self, *args, **kwargs) -> None:
            pass

        def connect_async(self, host, port, keepalive):
            attempts.append((host, port))
            raise OSError("no route to host")

    monkeypatch.setattr(pipeline.mqtt, "Client", UnreachableClient)
    engine = TelemetryEngine(nodes=[{"id": "N1", "location": "Main"}], alert_cap=5)
    publisher = MqttAlertPublisher(host="broker.invalid", port=1883)
    publisher.attach(engine)

    for i in range(3):
        engine.tick({"N1": reading(tick=i, leak=True)})
    publisher.close()

    assert attempts == [("broker.invalid", 1883)]
    assert publisher.published == 0
    assert len(engine.alerts()) == 3


def test_close_stops_client_loop() -> None:
    client = FakeClient()
    publisher = MqttAlertPublisher(client=client)
    publisher.close()
    assert client.stopped
    publisher.close()
