"""
backend.telemetry — Telemetry Aggregation and Alerting for HydroNet
====================================================================

This package implements the engine behind the water monitoring dashboard:
it collects one reading per node per tick, keeps the authoritative current
and historical state, derives node health and raises operator alerts.

Architecture:
    ESP32 / ESP8266 nodes → Gateway → POST /readings → ReadingBuffer
                                                          ↓
                                              TickScheduler (every 2 s)
                                                          ↓
                                                TelemetryEngine.tick():
                                                  1. Range clamping
                                                  2. Aggregate Snapshot
                                                  3. History window
                                                  4. Node registry
                                                  5. Capped alerts
                                                          ↓
                                  Subscribers (dashboard push, MQTT alerts)

Modules:
    config        — Capacities, cadences, node list, reference tables
    models        — Reading / Snapshot / HistoricalPoint / Node / Alert
    preprocessing — Payload normalization and DataQuality clamping
    history       — Fixed-capacity FIFO history window
    trends        — Trend summary over the history window
    registry      — Per-node status derivation
    alerts        — Capped alert manager with suppression counter
    engine        — Tick pipeline orchestrator and query surface
    scheduler     — Periodic tick driver and push reading buffer
    pipeline      — MQTT alert publisher
    service       — Flask HTTP service
    utils         — Logging setup and timestamp helpers
"""

__version__ = "1.0.0"
__author__ = "Water Monitoring IoT Team"
