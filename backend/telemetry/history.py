"""
history.py — Fixed-Capacity History Window
===========================================

Retains the most recent HistoricalPoints for charting and trend queries.

How it works:
    1. Each tick's Snapshot is turned into a HistoricalPoint and pushed.
    2. Once the window holds HISTORY_CAPACITY points, each push evicts the
       oldest point (FIFO).
    3. Readers get an immutable, oldest-first tuple, never the live buffer.

Why count-based here?
    The dashboard chart plots a fixed number of x-axis points, and ticks
    arrive on a fixed scheduler cadence, so a count bound gives both a
    stable chart and a hard memory bound.
"""

import logging
from collections import deque

import pandas as pd

from . import config
from .models import HistoricalPoint

logger = logging.getLogger("telemetry.history")

FRAME_COLUMNS = ["time", "flowRate", "pressure", "waterLevel", "volume"]


class HistoryWindow:
    """
    Bounded FIFO of HistoricalPoints.

    Attributes:
        capacity (int): Maximum number of retained points.
        _points (deque[HistoricalPoint]): Internal storage.
    """

    def __init__(self, capacity: int = None):
        """
        Args:
            capacity: Maximum retained points.
                Defaults to config.HISTORY_CAPACITY (50).
        """
        self.capacity = capacity or config.HISTORY_CAPACITY
        self._points = deque(maxlen=self.capacity)

    def push(self, point: HistoricalPoint) -> None:
        """Append a point, evicting the oldest once at capacity."""
        if len(self._points) == self.capacity:
            logger.debug(f"History full ({self.capacity}), evicting {self._points[0].time}")
        self._points.append(point)

    def snapshot_all(self) -> tuple:
        """
        Return all retained points, oldest first.

        Returns:
            Tuple copy of the window; later pushes do not affect it.
        """
        return tuple(self._points)

    def to_frame(self) -> pd.DataFrame:
        """
        Return the window as a DataFrame for trend analysis.

        Returns:
            DataFrame with FRAME_COLUMNS, one row per point, oldest first.
        """
        return pd.DataFrame(
            [p.to_dict() for p in self._points], columns=FRAME_COLUMNS
        )

    def __len__(self) -> int:
        return len(self._points)
