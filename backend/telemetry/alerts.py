"""
alerts.py — Capped Operator Alert Manager
==========================================

Turns qualifying Snapshot / Node conditions into Alert records:

Conditions:
    leak          — ``snapshot.leak_detected`` is set (severity high).
    node_offline  — a node stopped reporting this tick (severity medium,
                    only when offline alerts are enabled).

At most one alert per condition kind is created per tick.

Cap policy:
    The list holds at most ALERT_CAP alerts. While full, new qualifying
    events are dropped and counted in ``suppressed_count`` instead of
    evicting the oldest alert, so the first incidents of an alert storm
    stay visible. The list only empties through ``clear_all()``.
"""

import itertools
import logging

from . import config
from .models import HIGH, LEAK, MEDIUM, NODE_OFFLINE, OFFLINE, Alert, utc_now

logger = logging.getLogger("telemetry.alerts")


class AlertManager:
    """
    Creates, caps and lists alerts.

    Attributes:
        cap (int): Maximum number of alerts held at once.
        offline_alerts (bool): Whether node_offline alerts are raised.
        suppressed_count (int): Qualifying events dropped while at cap.
        _alerts (list[Alert]): Alerts, most recent first.
        _ids (itertools.count): Strictly increasing alert id sequence.
        _online_ids (set[str]): Nodes reporting as of the previous tick.
    """

    def __init__(self, cap: int = None, offline_alerts: bool = None):
        """
        Args:
            cap: Alert cap. Defaults to config.ALERT_CAP (5).
            offline_alerts: Raise node_offline alerts.
                Defaults to config.OFFLINE_ALERTS_ENABLED.
        """
        self.cap = cap if cap is not None else config.ALERT_CAP
        self.offline_alerts = (
            offline_alerts if offline_alerts is not None
            else config.OFFLINE_ALERTS_ENABLED
        )
        self.suppressed_count = 0
        self._alerts = []
        self._ids = itertools.count(1)
        self._online_ids = set()

    def _admit(self, kind: str, message: str, severity: str, timestamp):
        """Create an alert if below cap; otherwise count it as suppressed."""
        if len(self._alerts) >= self.cap:
            self.suppressed_count += 1
            logger.info(
                f"Alert suppressed ({kind}): at cap {self.cap}, "
                f"{self.suppressed_count} suppressed so far"
            )
            return None

        alert = Alert(
            id=next(self._ids),
            kind=kind,
            message=message,
            severity=severity,
            timestamp=timestamp or utc_now(),
        )
        self._alerts.insert(0, alert)
        logger.warning(f"ALERT #{alert.id} [{severity}] {kind}: {message}")
        return alert

    def evaluate(self, snapshot, nodes=()) -> list:
        """
        Evaluate this tick's conditions.

        Args:
            snapshot: Snapshot installed this tick, or None if no aggregate
                reading arrived (the leak condition is then not re-evaluated).
            nodes: Current Node records from the registry.

        Returns:
            List of alerts created this tick (possibly empty).
        """
        created = []
        timestamp = snapshot.timestamp if snapshot is not None else None

        if snapshot is not None and snapshot.leak_detected:
            alert = self._admit(LEAK, config.LEAK_ALERT_MESSAGE, HIGH, timestamp)
            if alert is not None:
                created.append(alert)

        newly_offline = [
            n for n in nodes if n.status == OFFLINE and n.id in self._online_ids
        ]
        self._online_ids = {n.id for n in nodes if n.status != OFFLINE}

        if self.offline_alerts and newly_offline:
            names = ", ".join(f"{n.id} ({n.location})" for n in newly_offline)
            alert = self._admit(NODE_OFFLINE, f"Node offline: {names}", MEDIUM, timestamp)
            if alert is not None:
                created.append(alert)

        return created

    def list_alerts(self) -> tuple:
        """Return alerts, most recent first."""
        return tuple(self._alerts)

    def clear_all(self) -> int:
        """
        Remove every alert. Safe to call on an empty list.

        The suppressed counter is kept, since it reports on the whole run.

        Returns:
            Number of alerts removed.
        """
        removed = len(self._alerts)
        self._alerts.clear()
        if removed:
            logger.info(f"Cleared {removed} alerts")
        return removed

    def __len__(self) -> int:
        return len(self._alerts)
