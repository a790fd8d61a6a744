"""
preprocessing.py — Reading Normalization and Range Clamping
============================================================

Responsibilities in the telemetry pipeline:
1. Normalize incoming wire payloads (dashboard camelCase keys or raw
   firmware keys) into ``Reading`` records.
2. Clamp out-of-range values to the nearest valid bound.
3. Count every clamp as a DataQuality event.

Why clamp instead of reject?
    The monitor has to stay live through sensor noise. A negative flow
    from a glitching hall-effect sensor or a 104 % tank level from an
    ultrasonic echo is still evidence that the node is alive, so the
    reading is kept, pinned to its physical bounds, and the node is shown
    in ``warning`` rather than ``offline``.
"""

import logging
from dataclasses import replace

import numpy as np

from . import config
from .models import Reading
from .utils import parse_timestamp

logger = logging.getLogger("telemetry.preprocessing")


def _to_float(value) -> float:
    """Convert a wire value to float; anything unusable becomes NaN."""
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def _to_flag(value) -> bool:
    """Parse a wire boolean; "false"/"0" strings must not read as True."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def normalize_reading(data: dict) -> Reading:
    """
    Normalize an incoming telemetry payload to a ``Reading``.

    Dashboard payloads use flowRate / pressure / waterLevel / leakDetected.
    Firmware payloads use flow1_Lmin / flow2_Lmin / tankLevelPercent /
    pressurePsi. Missing keys default to 0; non-numeric values are passed
    through as NaN and handled by ``ReadingSanitizer``.

    Args:
        data: Raw telemetry dict.

    Returns:
        Unclamped Reading.
    """
    if "flowRate" in data:
        flow = _to_float(data.get("flowRate"))
    else:
        flow1 = _to_float(data.get("flow1_Lmin", 0) or 0)
        flow2 = _to_float(data.get("flow2_Lmin", 0) or 0)
        flow = (flow1 + flow2) / 2.0 if (flow1 + flow2) > 0 else flow1

    pressure = _to_float(data.get("pressure", data.get("pressurePsi", 0)))
    level = _to_float(data.get("waterLevel", data.get("tankLevelPercent", 0)))

    volume_delta = data.get("volumeDelta")
    if volume_delta is not None:
        volume_delta = _to_float(volume_delta)

    return Reading(
        flow_rate=flow,
        pressure=pressure,
        water_level=level,
        leak_detected=_to_flag(data.get("leakDetected", False)),
        timestamp=parse_timestamp(data.get("timestamp")),
        volume_delta=volume_delta,
    )


class ReadingSanitizer:
    """
    Pins reading fields to their physical bounds and counts the clamps.

    Attributes:
        level_range (tuple[float, float]): Valid water level bounds (%).
        data_quality_events (int): Number of readings that needed clamping.
    """

    def __init__(self, level_range: tuple = None):
        self.level_range = level_range or config.WATER_LEVEL_RANGE
        self.data_quality_events = 0

    def _bounds(self) -> dict:
        low, high = self.level_range
        return {
            "flow_rate": (config.FLOW_RATE_MIN, np.inf),
            "pressure": (config.PRESSURE_MIN, np.inf),
            "water_level": (low, high),
        }

    def clamp(self, reading: Reading, node_id: str = None) -> tuple:
        """
        Clamp a reading into range.

        Non-finite values (NaN, ±inf from a bad payload) are pinned to the
        lower bound, since there is no meaningful nearest bound for them.

        Args:
            reading: Possibly out-of-range reading.
            node_id: Reporting node, used only for log context.

        Returns:
            (clamped Reading, tuple of clamped field names).
        """
        updates = {}
        for name, (low, high) in self._bounds().items():
            value = getattr(reading, name)
            if not np.isfinite(value):
                updates[name] = float(low)
                continue
            clipped = float(np.clip(value, low, high))
            if clipped != value:
                updates[name] = clipped

        if reading.volume_delta is not None and not np.isfinite(reading.volume_delta):
            updates["volume_delta"] = 0.0

        timestamp = parse_timestamp(reading.timestamp)
        if not updates:
            # naive timestamps are taken as UTC so they compare with aware ones
            if timestamp is not reading.timestamp:
                reading = replace(reading, timestamp=timestamp)
            return reading, ()
        updates["timestamp"] = timestamp

        self.data_quality_events += 1
        clamped_fields = tuple(sorted(k for k in updates if k != "timestamp"))
        logger.warning(
            f"Data quality: clamped {', '.join(clamped_fields)} "
            f"for {node_id or 'aggregate'} "
            f"(flow={reading.flow_rate}, pressure={reading.pressure}, "
            f"level={reading.water_level})"
        )
        return replace(reading, **updates), clamped_fields
