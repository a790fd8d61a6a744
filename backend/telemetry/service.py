"""
service.py — Telemetry HTTP Service (Flask)
============================================

Lightweight HTTP service that exposes the telemetry engine to the
dashboard and accepts readings pushed by the gateway.

Endpoints:
    GET  /health            — Service health check
    GET  /status            — Engine status and counters
    GET  /snapshot          — Current aggregate Snapshot
    GET  /history           — Retained HistoricalPoints, oldest first
    GET  /history/summary   — Trend summary over the history window
    GET  /nodes             — Configured nodes and their status
    GET  /alerts            — Alerts (most recent first) + suppressedCount
    POST /alerts/clear      — Remove all alerts (idempotent)
    POST /readings          — Push a reading set for the next tick
                              (``?tick=now`` runs the tick immediately)
    POST /connection        — Host-reported connectivity {"connected": bool}
    GET  /reference         — Static usage-target / efficiency tables

Run:
    python -m backend.telemetry.service
    # Starts on port 5060 by default (configurable via TELEMETRY_SERVICE_PORT)
"""

import logging

from flask import Flask, jsonify, request

from . import config
from .engine import TelemetryEngine
from .pipeline import MqttAlertPublisher
from .preprocessing import normalize_reading
from .scheduler import ReadingBuffer, TickScheduler
from .utils import setup_logging

logger = logging.getLogger("telemetry.service")


def _parse_reading_set(data: dict):
    """
    Accept either {"readings": {node_id: payload | null}} or a single
    reading carrying its own "nodeId".

    Returns:
        (mapping node_id -> Reading | None, error message | None)
    """
    if "readings" in data:
        raw = data["readings"]
        if not isinstance(raw, dict):
            return None, "'readings' must be an object keyed by node id"
    elif "nodeId" in data:
        if not isinstance(data["nodeId"], str):
            return None, "'nodeId' must be a string"
        raw = {data["nodeId"]: {k: v for k, v in data.items() if k != "nodeId"}}
    else:
        return None, "Expected 'readings' or 'nodeId'"

    parsed = {}
    for node_id, payload in raw.items():
        if payload is None:
            parsed[node_id] = None
        elif isinstance(payload, dict):
            parsed[node_id] = normalize_reading(payload)
        else:
            return None, f"Reading for '{node_id}' must be an object"
    return parsed, None


def create_app(engine: TelemetryEngine = None, buffer: ReadingBuffer = None) -> Flask:
    """
    Build the Flask app around an engine instance.

    Args:
        engine: Engine to serve. A default engine is created if omitted.
        buffer: Reading buffer drained by the scheduler.

    Returns:
        Configured Flask app.
    """
    engine = engine or TelemetryEngine()
    buffer = buffer if buffer is not None else ReadingBuffer()

    app = Flask(__name__)
    app.config["TELEMETRY_ENGINE"] = engine
    app.config["READING_BUFFER"] = buffer

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "OK",
            "service": "HydroNet Telemetry Engine",
        })

    @app.route("/status", methods=["GET"])
    def status():
        return jsonify({**engine.status(), "pendingReadings": len(buffer)})

    @app.route("/snapshot", methods=["GET"])
    def snapshot():
        return jsonify(engine.current_snapshot().to_dict())

    @app.route("/history", methods=["GET"])
    def history():
        return jsonify([p.to_dict() for p in engine.history()])

    @app.route("/history/summary", methods=["GET"])
    def history_summary():
        return jsonify({"summary": engine.history_summary()})

    @app.route("/nodes", methods=["GET"])
    def nodes():
        return jsonify([n.to_dict() for n in engine.nodes()])

    @app.route("/alerts", methods=["GET"])
    def alerts():
        state = engine.state()
        return jsonify({
            "alerts": [a.to_dict() for a in state["alerts"]],
            "suppressedCount": state["suppressedCount"],
        })

    @app.route("/alerts/clear", methods=["POST"])
    def clear_alerts():
        removed = engine.clear_alerts()
        return jsonify({"status": "cleared", "removed": removed})

    @app.route("/readings", methods=["POST"])
    def readings():
        """
        Accept readings from the gateway.

        Expects JSON body:
            { "readings": { "<node id>": { flowRate, pressure, waterLevel,
                                          leakDetected, timestamp } | null } }
        or a single reading with a "nodeId" key.
        """
        data = request.get_json(force=True, silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "No JSON body provided"}), 400

        parsed, error = _parse_reading_set(data)
        if error:
            return jsonify({"error": error}), 400

        unknown = sorted(k for k in parsed if k not in engine.registry)
        if unknown:
            return jsonify({"error": f"Unknown node ids: {', '.join(unknown)}"}), 400

        if request.args.get("tick") == "now":
            notification = engine.tick(parsed)
            return jsonify({"status": "processed", "tick": notification.to_dict()})

        for node_id, reading in parsed.items():
            if reading is not None:
                buffer.put(node_id, reading)
        return jsonify({"status": "buffered", "pendingReadings": len(buffer)})

    @app.route("/connection", methods=["POST"])
    def connection():
        data = request.get_json(force=True, silent=True)
        if not isinstance(data, dict) or not isinstance(data.get("connected"), bool):
            return jsonify({"error": "Expected {\"connected\": true|false}"}), 400
        engine.set_connected(data["connected"])
        return jsonify({"connected": engine.is_connected})

    @app.route("/reference", methods=["GET"])
    def reference():
        return jsonify(engine.reference_data())

    return app


def main() -> None:
    setup_logging()

    engine = TelemetryEngine()
    buffer = ReadingBuffer()
    scheduler = TickScheduler(engine, buffer)

    publisher = None
    if config.MQTT_ENABLED:
        publisher = MqttAlertPublisher()
        publisher.attach(engine)

    app = create_app(engine, buffer)
    scheduler.start()
    logger.info(f"Starting telemetry service on port {config.SERVICE_PORT}")
    try:
        app.run(host="0.0.0.0", port=config.SERVICE_PORT, debug=False)
    finally:
        scheduler.stop()
        if publisher is not None:
            publisher.close()


if __name__ == "__main__":
    main()
