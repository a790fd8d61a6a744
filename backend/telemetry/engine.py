"""
engine.py — Telemetry Aggregation Engine
=========================================

Single owner of the current Snapshot, the history window, the node
registry and the alert list. Each tick runs one sequential pipeline:

    readings -> clamp -> aggregate -> Snapshot -> HistoryWindow
             -> NodeRegistry -> AlertManager -> notify subscribers

Every mutating operation runs under one lock, so readers never observe a
new Snapshot next to a stale history or alert list. Readers receive
immutable records or tuple copies, never the engine's own containers.

Usage:
    engine = TelemetryEngine()
    unsubscribe = engine.subscribe(on_change)
    engine.tick({"ESP32_MAIN": reading, "ESP8266_NODE_01": None})
"""

import copy
import logging
import threading
from dataclasses import replace

import numpy as np

from . import config
from .alerts import AlertManager
from .history import HistoryWindow
from .models import HistoricalPoint, Reading, Snapshot, SnapshotChange, TickNotification
from .preprocessing import ReadingSanitizer
from .registry import NodeRegistry
from .trends import summarize_history

logger = logging.getLogger("telemetry.engine")


class TelemetryEngine:
    """
    Orchestrates the per-tick telemetry pipeline and serves queries.

    Attributes:
        registry (NodeRegistry): Configured nodes and their status.
        history_window (HistoryWindow): Retained HistoricalPoints.
        alert_manager (AlertManager): Capped alert list.
        sanitizer (ReadingSanitizer): DataQuality clamping.
        tick_seconds (float): Scheduler cadence, used for the first
            volume delta and for trend gradients.
        primary_node_id (str): Node whose reading becomes the Snapshot.
    """

    def __init__(self, nodes=None, history_capacity: int = None,
                 alert_cap: int = None, tick_seconds: float = None,
                 primary_node_id: str = None, offline_alerts: bool = None,
                 reference_data: dict = None, connected: bool = True):
        """
        Args:
            nodes: Node configuration. Defaults to config.DEFAULT_NODES.
            history_capacity: Defaults to config.HISTORY_CAPACITY.
            alert_cap: Defaults to config.ALERT_CAP.
            tick_seconds: Defaults to config.TICK_INTERVAL_SECONDS.
            primary_node_id: Defaults to config.PRIMARY_NODE_ID when that
                node is configured, otherwise the first configured node.
            offline_alerts: Defaults to config.OFFLINE_ALERTS_ENABLED.
            reference_data: Static dashboard tables, passed through as-is.
            connected: Initial host-reported connectivity flag.

        Raises:
            ConfigurationError: Invalid node configuration or unknown
                primary node.
        """
        self.registry = NodeRegistry(nodes)
        self.history_window = HistoryWindow(history_capacity)
        self.alert_manager = AlertManager(alert_cap, offline_alerts)
        self.sanitizer = ReadingSanitizer()
        self.tick_seconds = tick_seconds or config.TICK_INTERVAL_SECONDS

        if primary_node_id is None:
            primary_node_id = (
                config.PRIMARY_NODE_ID if config.PRIMARY_NODE_ID in self.registry
                else self.registry.node_ids[0]
            )
        elif primary_node_id not in self.registry:
            raise config.ConfigurationError(
                f"Primary node '{primary_node_id}' is not a configured node"
            )
        self.primary_node_id = primary_node_id

        if reference_data is None:
            reference_data = {
                "waterUsage": config.WATER_USAGE_TARGETS,
                "efficiency": config.EFFICIENCY_BREAKDOWN,
            }
        self._reference_data = copy.deepcopy(reference_data)

        self._lock = threading.RLock()
        self._snapshot = Snapshot()
        self._has_data = False
        self._ticks = 0
        self._connected = connected
        self._subscribers = []

        logger.info(
            f"Telemetry engine ready: {len(self.registry)} nodes, "
            f"primary={self.primary_node_id}, "
            f"history={self.history_window.capacity}, "
            f"alert cap={self.alert_manager.cap}"
        )

    # ── Ingestion ─────────────────────────────────────────────────

    def _volume_delta(self, reading: Reading, previous: Snapshot) -> float:
        """Volume (L) added by this reading, never negative."""
        if reading.volume_delta is not None:
            delta = reading.volume_delta
        else:
            if self._has_data:
                elapsed = (reading.timestamp - previous.timestamp).total_seconds()
            else:
                elapsed = self.tick_seconds
            delta = reading.flow_rate * elapsed / 60.0

        if delta < 0:
            logger.debug(f"Negative volume delta {delta:.3f} clamped to 0")
            return 0.0
        return float(delta)

    def _ingest_locked(self, reading: Reading, node_id: str = None) -> SnapshotChange:
        reading, clamped_fields = self.sanitizer.clamp(reading, node_id)
        previous = self._snapshot
        delta = self._volume_delta(reading, previous)

        snapshot = Snapshot(
            flow_rate=reading.flow_rate,
            total_volume=previous.total_volume + delta,
            pressure=reading.pressure,
            water_level=reading.water_level,
            leak_detected=reading.leak_detected,
            timestamp=reading.timestamp,
        )
        point = HistoricalPoint.from_snapshot(snapshot)

        self._snapshot = snapshot
        self._has_data = True
        self.history_window.push(point)

        return SnapshotChange(
            previous=previous,
            snapshot=snapshot,
            point=point,
            volume_delta=delta,
            clamped_fields=clamped_fields,
        )

    def ingest(self, reading: Reading) -> SnapshotChange:
        """
        Ingest one aggregate reading outside the multi-node tick path.

        Replaces the Snapshot, appends to history, evaluates alerts and
        notifies subscribers. Node statuses are left untouched.

        Args:
            reading: Aggregate reading; out-of-range values are clamped.

        Returns:
            SnapshotChange describing the update.
        """
        with self._lock:
            change = self._ingest_locked(reading)
            nodes = self.registry.list_nodes()
            new_alerts = tuple(self.alert_manager.evaluate(change.snapshot, nodes))
            change = replace(change, new_alerts=new_alerts)
            self._ticks += 1
            self._notify(TickNotification(change.snapshot, nodes, new_alerts, change))
        return change

    def _aggregate(self, accepted: dict):
        """
        Build the aggregate reading for this tick.

        The primary node's reading wins when present. Otherwise the
        numeric fields of all reporting nodes are averaged and a leak on
        any node counts as a leak.
        """
        if self.primary_node_id in accepted:
            return accepted[self.primary_node_id][0]
        if not accepted:
            return None

        readings = [reading for reading, _ in accepted.values()]
        values = np.array(
            [[r.flow_rate, r.pressure, r.water_level] for r in readings],
            dtype=np.float64,
        )
        flow, pressure, level = values.mean(axis=0)
        return Reading(
            flow_rate=float(flow),
            pressure=float(pressure),
            water_level=float(level),
            leak_detected=any(r.leak_detected for r in readings),
            timestamp=max(r.timestamp for r in readings),
        )

    def tick(self, readings: dict) -> TickNotification:
        """
        Run one full tick over a reading set.

        Args:
            readings: Mapping node_id -> Reading, or None when the node did
                not report. Configured nodes missing from the mapping are
                treated as not reporting; unknown ids are ignored.

        Returns:
            TickNotification that was delivered to subscribers.
        """
        with self._lock:
            accepted = {}
            for node_id, reading in readings.items():
                if node_id not in self.registry:
                    logger.warning(f"Ignoring reading from unknown node '{node_id}'")
                    continue
                if reading is None:
                    continue
                clean, clamped_fields = self.sanitizer.clamp(reading, node_id)
                accepted[node_id] = (clean, bool(clamped_fields))

            change = None
            aggregate = self._aggregate(accepted)
            if aggregate is not None:
                change = self._ingest_locked(aggregate)
            else:
                logger.warning("No node reported this tick; keeping last snapshot")

            nodes = self.registry.apply_tick(accepted)
            new_alerts = tuple(self.alert_manager.evaluate(
                change.snapshot if change is not None else None, nodes
            ))
            if change is not None:
                change = replace(change, new_alerts=new_alerts)

            self._ticks += 1
            notification = TickNotification(self._snapshot, nodes, new_alerts, change)
            logger.debug(
                f"Tick {self._ticks}: {len(accepted)}/{len(self.registry)} nodes "
                f"reported, volume={self._snapshot.total_volume:.2f}, "
                f"new alerts={len(new_alerts)}"
            )
            self._notify(notification)
        return notification

    # ── Subscribers ───────────────────────────────────────────────

    def subscribe(self, handler):
        """
        Register a callback invoked with a TickNotification after each tick.

        Args:
            handler: Callable taking one TickNotification.

        Returns:
            Zero-argument callable that unsubscribes the handler.
        """
        with self._lock:
            self._subscribers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        with self._lock:
            try:
                self._subscribers.remove(handler)
            except ValueError:
                return False
            return True

    def _notify(self, notification: TickNotification) -> None:
        for handler in list(self._subscribers):
            try:
                handler(notification)
            except Exception as e:
                logger.error(f"Subscriber {handler!r} failed: {e}", exc_info=True)

    # ── Queries ───────────────────────────────────────────────────

    def current_snapshot(self) -> Snapshot:
        """Latest Snapshot. Snapshots are immutable, so no lock is taken."""
        return self._snapshot

    def history(self) -> tuple:
        """Retained HistoricalPoints, oldest first."""
        with self._lock:
            return self.history_window.snapshot_all()

    def history_summary(self):
        """Trend summary of the retained history, or None if empty."""
        with self._lock:
            frame = self.history_window.to_frame()
        return summarize_history(frame, self.tick_seconds)

    def nodes(self) -> tuple:
        with self._lock:
            return self.registry.list_nodes()

    def alerts(self) -> tuple:
        """Alerts, most recent first."""
        with self._lock:
            return self.alert_manager.list_alerts()

    @property
    def suppressed_count(self) -> int:
        return self.alert_manager.suppressed_count

    def clear_alerts(self) -> int:
        """Empty the alert list. Idempotent; returns the number removed."""
        with self._lock:
            return self.alert_manager.clear_all()

    def state(self) -> dict:
        """
        Consistent view of everything the dashboard renders.

        Taken under the engine lock, so all parts come from the same tick.
        """
        with self._lock:
            return {
                "snapshot": self._snapshot,
                "history": self.history_window.snapshot_all(),
                "nodes": self.registry.list_nodes(),
                "alerts": self.alert_manager.list_alerts(),
                "suppressedCount": self.alert_manager.suppressed_count,
            }

    def stats(self) -> dict:
        with self._lock:
            return {
                "ticks": self._ticks,
                "dataQualityEvents": self.sanitizer.data_quality_events,
                "nodeTimeouts": self.registry.node_timeouts,
                "suppressedCount": self.alert_manager.suppressed_count,
                "subscribers": len(self._subscribers),
            }

    # ── Host-reported inputs ──────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        """
        Record host-reported connectivity. Ingestion and queries continue
        to work either way; the last known state keeps being served.
        """
        connected = bool(connected)
        if connected != self._connected:
            log = logger.info if connected else logger.warning
            log(f"Connectivity changed: {'connected' if connected else 'disconnected'}")
        self._connected = connected

    def reference_data(self) -> dict:
        """Static usage-target and efficiency tables (copied, not validated)."""
        return copy.deepcopy(self._reference_data)

    def status(self) -> dict:
        """Engine status for health dashboards."""
        with self._lock:
            return {
                "connected": self._connected,
                "hasData": self._has_data,
                "lastUpdate": self._snapshot.timestamp.isoformat(),
                "primaryNode": self.primary_node_id,
                "historyLength": len(self.history_window),
                "historyCapacity": self.history_window.capacity,
                "alertCount": len(self.alert_manager),
                "alertCap": self.alert_manager.cap,
                **self.stats(),
            }
