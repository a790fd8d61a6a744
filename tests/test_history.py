"""Unit tests for the fixed-capacity history window."""

from __future__ import annotations

from backend.telemetry.history import FRAME_COLUMNS, HistoryWindow
from backend.telemetry.models import HistoricalPoint


def _point(i: int) -> HistoricalPoint:
    return HistoricalPoint(
        time=f"08:00:{i:02d}", flow_rate=float(i), pressure=16.0, water_level=70.0, volume=float(i)
    )


def test_window_keeps_every_point_below_capacity() -> None:
    window = HistoryWindow(capacity=5)
    for i in range(3):
        window.push(_point(i))

    points = window.snapshot_all()
    assert len(points) == 3
    assert [p.flow_rate for p in points] == [0.0, 1.0, 2.0]


def test_window_evicts_oldest_first_once_full() -> None:
    window = HistoryWindow(capacity=5)
    for i in range(12):
        window.push(_point(i))

    points = window.snapshot_all()
    assert len(points) == 5
    assert points[0].flow_rate == 7.0
    assert points[-1].flow_rate == 11.0


def test_snapshot_is_not_affected_by_later_pushes() -> None:
    window = HistoryWindow(capacity=3)
    window.push(_point(0))
    before = window.snapshot_all()

    window.push(_point(1))

    assert isinstance(before, tuple)
    assert len(before) == 1
    assert len(window) == 2


def test_to_frame_has_chart_columns_in_order() -> None:
    window = HistoryWindow(capacity=3)
    for i in range(2):
        window.push(_point(i))

    frame = window.to_frame()
    assert list(frame.columns) == FRAME_COLUMNS
    assert frame["flowRate"].tolist() == [0.0, 1.0]


def test_empty_frame_keeps_columns() -> None:
    frame = HistoryWindow(capacity=3).to_frame()
    assert frame.empty
    assert list(frame.columns) == FRAME_COLUMNS
