"""
trends.py — Trend Summary over the History Window
==================================================

Condenses the retained history into the handful of numbers the trend
panel shows next to the chart.

Output (per history window):
    points              — Number of retained points
    flow_mean           — Average flow rate (L/min)
    flow_std            — Flow variability (high std → irregular usage)
    flow_min / flow_max — Flow extremes in the window
    pressure_mean       — Average line pressure (PSI)
    level_gradient      — Water level change per minute (%/min)
    volume_delta        — Litres consumed across the window
"""

import logging

import pandas as pd

logger = logging.getLogger("telemetry.trends")


def summarize_history(frame: pd.DataFrame, tick_seconds: float) -> dict:
    """
    Summarize a history DataFrame.

    The history labels only carry wall-clock time of day, so elapsed time
    is derived from the number of ticks between the first and last point.

    Args:
        frame: Output of ``HistoryWindow.to_frame()``.
        tick_seconds: Scheduler cadence in seconds.

    Returns:
        Summary dict, or None if the window is empty.
    """
    if frame is None or frame.empty:
        return None

    for col in ["flowRate", "pressure", "waterLevel", "volume"]:
        frame[col] = pd.to_numeric(frame[col], errors="coerce")

    # ─────────────────────────────────────────────────────────────
    # level_gradient
    # Steady drain = normal consumption.
    # Rapid drain without corresponding flow = possible leak.
    # ─────────────────────────────────────────────────────────────
    span_min = (len(frame) - 1) * tick_seconds / 60.0
    if span_min > 0:
        level_gradient = float(
            (frame["waterLevel"].iloc[-1] - frame["waterLevel"].iloc[0]) / span_min
        )
    else:
        level_gradient = 0.0

    summary = {
        "points": int(len(frame)),
        "flow_mean": float(frame["flowRate"].mean()),
        "flow_std": float(frame["flowRate"].std(ddof=0)),
        "flow_min": float(frame["flowRate"].min()),
        "flow_max": float(frame["flowRate"].max()),
        "pressure_mean": float(frame["pressure"].mean()),
        "level_gradient": level_gradient,
        "volume_delta": float(frame["volume"].iloc[-1] - frame["volume"].iloc[0]),
    }

    logger.debug(f"History summary: {summary}")
    return summary
