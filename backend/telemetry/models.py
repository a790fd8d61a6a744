"""
models.py — Telemetry Data Records
===================================

Immutable records passed between the engine components and handed out to
the presentation layer. Every record serializes to the camelCase dict the
dashboard already consumes via ``to_dict()``.

Records:
    Reading          — one node's raw reading for one tick
    Snapshot         — current aggregate state (replaced wholesale each tick)
    HistoricalPoint  — one retained, chart-ready sample
    Node             — a sensing unit and its derived status
    Alert            — an operator-facing notification
    SnapshotChange   — what a single ingest changed
    TickNotification — payload delivered to subscribers after a tick
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

# Node status constants
ACTIVE = "active"
OFFLINE = "offline"
WARNING = "warning"

# Alert kind constants
LEAK = "leak"
NODE_OFFLINE = "node_offline"

# Alert severity constants
LOW = "low"
MEDIUM = "medium"
HIGH = "high"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Reading:
    """
    A single telemetry reading produced by one node in one tick.

    Attributes:
        flow_rate (float): Flow in L/min, expected ≥ 0.
        pressure (float): Line pressure in PSI, expected ≥ 0.
        water_level (float): Tank level in %, expected within [0, 100].
        leak_detected (bool): Leak flag raised by the node firmware.
        timestamp (datetime): When the reading was taken.
        volume_delta (float | None): Volume (L) the source measured since its
            previous reading. When absent, the engine derives it from flow.
    """

    flow_rate: float
    pressure: float
    water_level: float
    leak_detected: bool = False
    timestamp: datetime = field(default_factory=utc_now)
    volume_delta: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "flowRate": self.flow_rate,
            "pressure": self.pressure,
            "waterLevel": self.water_level,
            "leakDetected": self.leak_detected,
            "timestamp": self.timestamp.isoformat(),
            "volumeDelta": self.volume_delta,
        }


@dataclass(frozen=True)
class Snapshot:
    """Current aggregate telemetry state. ``total_volume`` never decreases."""

    flow_rate: float = 0.0
    total_volume: float = 0.0
    pressure: float = 0.0
    water_level: float = 0.0
    leak_detected: bool = False
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "flowRate": self.flow_rate,
            "totalVolume": self.total_volume,
            "pressure": self.pressure,
            "waterLevel": self.water_level,
            "leakDetected": self.leak_detected,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class HistoricalPoint:
    time: str
    flow_rate: float
    pressure: float
    water_level: float
    volume: float

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "HistoricalPoint":
        return cls(
            time=snapshot.timestamp.strftime("%H:%M:%S"),
            flow_rate=snapshot.flow_rate,
            pressure=snapshot.pressure,
            water_level=snapshot.water_level,
            volume=snapshot.total_volume,
        )

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "flowRate": self.flow_rate,
            "pressure": self.pressure,
            "waterLevel": self.water_level,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class Node:
    """
    A configured sensing node.

    ``status`` is derived by the NodeRegistry every tick; flow and level
    keep the last reported values while the node is offline.
    """

    id: str
    location: str
    status: str = OFFLINE
    flow_rate: float = 0.0
    water_level: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location": self.location,
            "status": self.status,
            "flowRate": self.flow_rate,
            "waterLevel": self.water_level,
        }


@dataclass(frozen=True)
class Alert:
    id: int
    kind: str
    message: str
    severity: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity,
        }


@dataclass(frozen=True)
class SnapshotChange:
    """
    Result of ``TelemetryEngine.ingest``.

    Attributes:
        previous (Snapshot): Snapshot that was replaced.
        snapshot (Snapshot): Newly installed Snapshot.
        point (HistoricalPoint): Point appended to the history window.
        volume_delta (float): Non-negative volume added this tick.
        clamped_fields (tuple[str, ...]): Reading fields that were out of
            range and clamped.
        new_alerts (tuple[Alert, ...]): Alerts created by this ingest.
    """

    previous: Snapshot
    snapshot: Snapshot
    point: HistoricalPoint
    volume_delta: float
    clamped_fields: tuple = ()
    new_alerts: tuple = ()

    def to_dict(self) -> dict:
        return {
            "snapshot": self.snapshot.to_dict(),
            "point": self.point.to_dict(),
            "volumeDelta": self.volume_delta,
            "clampedFields": list(self.clamped_fields),
            "newAlerts": [a.to_dict() for a in self.new_alerts],
        }


@dataclass(frozen=True)
class TickNotification:
    """Payload handed to every subscriber once a tick's pipeline completes."""

    snapshot: Snapshot
    nodes: tuple
    new_alerts: tuple
    change: Optional[SnapshotChange] = None

    def to_dict(self) -> dict:
        return {
            "snapshot": self.snapshot.to_dict(),
            "nodes": [n.to_dict() for n in self.nodes],
            "newAlerts": [a.to_dict() for a in self.new_alerts],
        }
