"""
pipeline.py — Engine-to-MQTT Alert Connector
=============================================

Forwards newly created alerts from the telemetry engine to the MQTT broker
so the LoRa gateway, SMS relay and any other listener see them without
polling the HTTP service.

Flow:
    engine tick -> TickNotification with new alerts -> publish queue
    -> worker thread -> MQTT: water/alerts { id, type, message, severity, timestamp }

The engine notifies subscribers while holding its lock, so the subscriber
only enqueues. Connecting and publishing happen on the worker thread, and
a broker outage never delays a tick: failures are logged and the alert
stays available through the HTTP service.
"""

import json
import logging
import queue
import threading

import paho.mqtt.client as mqtt

from . import config

logger = logging.getLogger("telemetry.pipeline")

_STOP = object()


class MqttAlertPublisher:
    """
    Engine subscriber that publishes new alerts over MQTT.

    Usage:
        publisher = MqttAlertPublisher()
        unsubscribe = publisher.attach(engine)
        ...
        publisher.close()

    Attributes:
        topic (str): MQTT topic alerts are published on.
        host (str): Broker host.
        port (int): Broker port.
        published (int): Number of alerts successfully handed to the client.
    """

    def __init__(self, client=None, topic: str = None, host: str = None,
                 port: int = None):
        self.topic = topic or config.MQTT_ALERT_TOPIC
        self.host = host or config.MQTT_BROKER_HOST
        self.port = port or config.MQTT_BROKER_PORT
        self.published = 0
        self._client = client
        self._connect_failed = False
        self._queue = queue.Queue()
        self._worker = None

    def _get_client(self):
        """
        Get or create the MQTT client, connecting at most once.
        Returns None if the connection could not be set up.
        """
        if self._client is not None:
            return self._client
        if self._connect_failed:
            return None

        try:
            client = mqtt.Client(
                mqtt.CallbackAPIVersion.VERSION2,
                client_id="hydronet-telemetry-alerts",
            )
            client.connect_async(self.host, self.port, 60)
            client.loop_start()
        except Exception as e:
            self._connect_failed = True
            logger.error(f"MQTT connection failed: {e}")
            return None

        self._client = client
        logger.info(f"MQTT client connecting to {self.host}:{self.port}")
        return client

    def publish_alert(self, alert) -> bool:
        """
        Publish one alert as JSON (qos 1).

        Runs on the worker thread; call directly only outside the engine lock.

        Returns:
            True if the client accepted the message.
        """
        client = self._get_client()
        if client is None:
            logger.warning(f"Cannot publish alert #{alert.id}: no MQTT client")
            return False

        payload = json.dumps({**alert.to_dict(), "source": "telemetry-engine"})
        try:
            client.publish(self.topic, payload, qos=1)
        except Exception as e:
            logger.error(f"Failed to publish alert #{alert.id}: {e}")
            return False

        self.published += 1
        logger.info(f"Alert #{alert.id} published to {self.topic}")
        return True

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.publish_alert(item)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(
            target=self._run, name="TelemetryMqtt", daemon=True
        )
        self._worker.start()

    def __call__(self, notification) -> None:
        for alert in notification.new_alerts:
            self._queue.put_nowait(alert)

    def attach(self, engine):
        """Start the worker and subscribe to an engine. Returns the unsubscribe callable."""
        self.start()
        return engine.subscribe(self)

    def close(self, timeout: float = 5.0) -> None:
        """Publish what is already queued, stop the worker and disconnect."""
        if self._worker is not None:
            self._queue.put(_STOP)
            self._worker.join(timeout=timeout)
            self._worker = None

        if self._client is None:
            return
        try:
            self._client.loop_stop()
            self._client.disconnect()
        except Exception as e:
            logger.warning(f"MQTT disconnect failed: {e}")
        self._client = None
