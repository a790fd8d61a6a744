"""Unit tests for the capped alert manager."""

from __future__ import annotations

from backend.telemetry.alerts import AlertManager
from backend.telemetry.models import ACTIVE, HIGH, LEAK, MEDIUM, NODE_OFFLINE, OFFLINE, Node, Snapshot

from conftest import T0


def _snapshot(leak: bool) -> Snapshot:
    return Snapshot(flow_rate=20.0, total_volume=1.0, pressure=16.0, water_level=70.0,
                    leak_detected=leak, timestamp=T0)


def _nodes(**statuses: str) -> tuple[Node, ...]:
    return tuple(Node(id=node_id, location=f"loc-{node_id}", status=status)
                 for node_id, status in statuses.items())


def test_no_alert_without_leak() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    assert manager.evaluate(_snapshot(False)) == []
    assert manager.list_alerts() == ()


def test_leak_creates_high_severity_alert() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    created = manager.evaluate(_snapshot(True))

    assert len(created) == 1
    alert = created[0]
    assert alert.kind == LEAK
    assert alert.severity == HIGH
    assert alert.message == "Leak detected in main pipeline"
    assert alert.timestamp == T0


def test_cap_blocks_new_alerts_and_counts_suppressed() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    for _ in range(10):
        manager.evaluate(_snapshot(True))

    assert len(manager.list_alerts()) == 5
    assert manager.suppressed_count == 5


def test_cap_keeps_the_earliest_alerts() -> None:
    manager = AlertManager(cap=2, offline_alerts=False)
    for _ in range(4):
        manager.evaluate(_snapshot(True))

    assert [a.id for a in manager.list_alerts()] == [2, 1]


def test_alerts_listed_most_recent_first_with_increasing_ids() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    for _ in range(3):
        manager.evaluate(_snapshot(True))

    ids = [a.id for a in manager.list_alerts()]
    assert ids == sorted(ids, reverse=True)
    assert len(set(ids)) == 3


def test_ids_keep_increasing_after_clear() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    manager.evaluate(_snapshot(True))
    manager.clear_all()
    manager.evaluate(_snapshot(True))

    assert manager.list_alerts()[0].id == 2


def test_clear_on_empty_list_is_harmless() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    assert manager.clear_all() == 0
    assert manager.clear_all() == 0
    assert manager.list_alerts() == ()


def test_clear_makes_room_again() -> None:
    manager = AlertManager(cap=1, offline_alerts=False)
    manager.evaluate(_snapshot(True))
    manager.evaluate(_snapshot(True))
    assert manager.suppressed_count == 1

    manager.clear_all()
    assert len(manager.evaluate(_snapshot(True))) == 1
    assert manager.suppressed_count == 1


def test_missing_snapshot_does_not_raise_leak() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    assert manager.evaluate(None) == []


def test_offline_alert_only_on_transition_when_enabled() -> None:
    manager = AlertManager(cap=5, offline_alerts=True)

    # never reported: no alert
    assert manager.evaluate(_snapshot(False), _nodes(N1=ACTIVE, N2=OFFLINE)) == []

    manager.evaluate(_snapshot(False), _nodes(N1=ACTIVE, N2=ACTIVE))
    created = manager.evaluate(_snapshot(False), _nodes(N1=OFFLINE, N2=OFFLINE))

    assert len(created) == 1
    assert created[0].kind == NODE_OFFLINE
    assert created[0].severity == MEDIUM
    assert "N1" in created[0].message and "N2" in created[0].message

    # still offline: no repeat
    assert manager.evaluate(_snapshot(False), _nodes(N1=OFFLINE, N2=OFFLINE)) == []


def test_offline_alerts_disabled_by_flag() -> None:
    manager = AlertManager(cap=5, offline_alerts=False)
    manager.evaluate(_snapshot(False), _nodes(N1=ACTIVE))
    assert manager.evaluate(_snapshot(False), _nodes(N1=OFFLINE)) == []


def test_leak_and_offline_in_same_tick_yield_one_each() -> None:
    manager = AlertManager(cap=5, offline_alerts=True)
    manager.evaluate(_snapshot(False), _nodes(N1=ACTIVE))
    created = manager.evaluate(_snapshot(True), _nodes(N1=OFFLINE))

    assert sorted(a.kind for a in created) == [LEAK, NODE_OFFLINE]
