"""Shared builders for telemetry engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.telemetry.engine import TelemetryEngine
from backend.telemetry.models import Reading

T0 = datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc)

NODES = [
    {"id": "N1", "location": "Main Controller"},
    {"id": "N2", "location": "Building A - Floor 1"},
    {"id": "N3", "location": "Building B - Floor 1"},
]


def reading(
    *,
    tick: int = 0,
    flow: float = 20.0,
    pressure: float = 16.0,
    level: float = 70.0,
    leak: bool = False,
    volume_delta: float | None = None,
) -> Reading:
    return Reading(
        flow_rate=flow,
        pressure=pressure,
        water_level=level,
        leak_detected=leak,
        timestamp=T0 + timedelta(seconds=2 * tick),
        volume_delta=volume_delta,
    )


@pytest.fixture
def engine() -> TelemetryEngine:
    return TelemetryEngine(
        nodes=NODES,
        history_capacity=50,
        alert_cap=5,
        tick_seconds=2.0,
        primary_node_id="N1",
        offline_alerts=False,
    )
