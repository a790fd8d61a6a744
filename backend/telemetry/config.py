"""
config.py — Telemetry Engine Configuration Constants
=====================================================

Centralizes the capacities, cadences, value ranges and node registry used
by the telemetry aggregation engine. Tuning these values changes how much
history is retained, how many alerts an operator sees at once, and how
quickly a silent node is reported offline.

This water monitoring deployment uses:
- One ESP32 main controller on the supply line (flow L/min, pressure PSI)
- ESP8266 building nodes reporting flow and tank level (%)
- Readings collected every ~2 seconds (one tick)
"""

import os


class ConfigurationError(ValueError):
    """Raised at startup when the node registry configuration is unusable."""


# ═══════════════════════════════════════════════════════════════════
# RETENTION / CAPACITY
# ═══════════════════════════════════════════════════════════════════

# Number of HistoricalPoints kept for charting. At one point every 2 s,
# 50 points is a little under two minutes of trend.
HISTORY_CAPACITY = int(os.environ.get("TELEMETRY_HISTORY_CAPACITY", "50"))

# Maximum number of alerts held at once. While the list is full, new
# qualifying events are counted as suppressed instead of evicting the
# oldest alert (the oldest is usually the root cause).
ALERT_CAP = int(os.environ.get("TELEMETRY_ALERT_CAP", "5"))

# ═══════════════════════════════════════════════════════════════════
# SCHEDULING
# ═══════════════════════════════════════════════════════════════════

# Seconds between ticks of the scheduler.
TICK_INTERVAL_SECONDS = float(os.environ.get("TELEMETRY_TICK_SECONDS", "2.0"))

# Deadline for the reading source within one tick. Nodes that have not
# answered by then are marked offline for that tick.
READING_TIMEOUT_SECONDS = float(os.environ.get("TELEMETRY_READING_TIMEOUT", "1.5"))

# ═══════════════════════════════════════════════════════════════════
# VALUE RANGES (DataQuality clamping)
# ═══════════════════════════════════════════════════════════════════

FLOW_RATE_MIN = 0.0
PRESSURE_MIN = 0.0
WATER_LEVEL_RANGE = (0.0, 100.0)

# ═══════════════════════════════════════════════════════════════════
# ALERTING
# ═══════════════════════════════════════════════════════════════════

LEAK_ALERT_MESSAGE = "Leak detected in main pipeline"

# Raise a "node_offline" alert on the tick a node stops reporting.
OFFLINE_ALERTS_ENABLED = os.environ.get(
    "TELEMETRY_OFFLINE_ALERTS", "false"
).lower() in ("1", "true", "yes")

# ═══════════════════════════════════════════════════════════════════
# NODE REGISTRY
# ═══════════════════════════════════════════════════════════════════

# Node whose reading becomes the aggregate Snapshot when it reports.
PRIMARY_NODE_ID = "ESP32_MAIN"

DEFAULT_NODES = [
    {"id": "ESP32_MAIN", "location": "Main Controller"},
    {"id": "ESP8266_NODE_01", "location": "Building A - Floor 1"},
    {"id": "ESP8266_NODE_02", "location": "Building A - Floor 2"},
    {"id": "ESP8266_NODE_03", "location": "Building B - Floor 1"},
]

# ═══════════════════════════════════════════════════════════════════
# STATIC REFERENCE DATA (passed through to the dashboard, not validated)
# ═══════════════════════════════════════════════════════════════════

WATER_USAGE_TARGETS = [
    {"name": "Building A", "usage": 1200, "target": 1000},
    {"name": "Building B", "usage": 800, "target": 900},
    {"name": "Building C", "usage": 600, "target": 700},
    {"name": "Common Areas", "usage": 400, "target": 300},
]

EFFICIENCY_BREAKDOWN = [
    {"name": "Efficient Usage", "value": 70},
    {"name": "Wastage", "value": 20},
    {"name": "Maintenance", "value": 10},
]

# ═══════════════════════════════════════════════════════════════════
# MQTT ALERT FAN-OUT
# ═══════════════════════════════════════════════════════════════════

MQTT_ALERT_TOPIC = "water/alerts"
MQTT_BROKER_HOST = os.environ.get("MQTT_BROKER_HOST", "localhost")
MQTT_BROKER_PORT = int(os.environ.get("MQTT_BROKER_PORT", "1883"))
MQTT_ENABLED = os.environ.get("TELEMETRY_MQTT_ENABLED", "false").lower() in (
    "1", "true", "yes"
)

# ═══════════════════════════════════════════════════════════════════
# SERVICE / LOGGING
# ═══════════════════════════════════════════════════════════════════

SERVICE_PORT = int(os.environ.get("TELEMETRY_SERVICE_PORT", "5060"))

# Log level for the engine (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL = os.environ.get("TELEMETRY_LOG_LEVEL", "INFO")


def validate_node_config(nodes) -> tuple:
    """
    Validate the configured node list and return it as (id, location) pairs.

    Node identity must be unambiguous for the whole life of the engine, so
    any problem here is fatal at startup.

    Args:
        nodes: Sequence of mappings with 'id' and 'location' keys.

    Returns:
        Tuple of (id, location) tuples in configuration order.

    Raises:
        ConfigurationError: Empty config, non-mapping entry, missing or
            blank field, or duplicate id.
    """
    if not nodes:
        raise ConfigurationError("Node configuration is empty")

    validated = []
    seen = set()
    for index, entry in enumerate(nodes):
        if not isinstance(entry, dict):
            raise ConfigurationError(
                f"Node entry #{index} must be a mapping, got {type(entry).__name__}"
            )
        for field in ("id", "location"):
            value = entry.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(
                    f"Node entry #{index} is missing required field '{field}'"
                )
        node_id = entry["id"].strip()
        if node_id in seen:
            raise ConfigurationError(f"Duplicate node id '{node_id}'")
        seen.add(node_id)
        validated.append((node_id, entry["location"].strip()))

    return tuple(validated)
