"""
scheduler.py — Periodic Tick Driver
====================================

Drives the engine at a fixed cadence (default every 2 s):

    every tick:
        collect readings from the source (bounded by READING_TIMEOUT_SECONDS)
        -> engine.tick(readings)

A reading source is any callable ``source(node_ids) -> {node_id: Reading}``.
Nodes missing from the returned mapping, or every node when the source
misses its deadline or fails, count as not reporting for that tick.

``ReadingBuffer`` is the push-style source used by the HTTP service: nodes
post readings whenever they have them and each tick drains the latest one
per node.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from . import config

logger = logging.getLogger("telemetry.scheduler")


class ReadingBuffer:
    """
    Latest reading per node, received between two ticks.

    Attributes:
        _pending (dict[str, Reading]): Readings waiting for the next tick.
    """

    def __init__(self):
        self._pending = {}
        self._lock = threading.Lock()

    def put(self, node_id: str, reading) -> None:
        """Store a reading; a newer reading from the same node replaces it."""
        with self._lock:
            self._pending[node_id] = reading

    def drain(self, node_ids=None) -> dict:
        """
        Return and forget the pending readings.

        Args:
            node_ids: Restrict the result to these ids. Readings for other
                ids are discarded as well.

        Returns:
            Mapping node_id -> Reading.
        """
        with self._lock:
            pending, self._pending = self._pending, {}
        if node_ids is None:
            return pending
        return {k: v for k, v in pending.items() if k in node_ids}

    def __call__(self, node_ids) -> dict:
        return self.drain(node_ids)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


class TickScheduler:
    """
    Runs ``engine.tick`` on a background thread at a fixed interval.

    Ticks never overlap: the next tick starts only after the previous
    pipeline, including subscriber notification, has returned.

    Attributes:
        engine (TelemetryEngine): Engine being driven.
        source (callable): Reading source.
        interval (float): Seconds between tick starts.
        timeout (float): Deadline for the source within a tick.
    """

    def __init__(self, engine, source, interval: float = None,
                 timeout: float = None):
        self.engine = engine
        self.source = source
        self.interval = interval or config.TICK_INTERVAL_SECONDS
        self.timeout = timeout or config.READING_TIMEOUT_SECONDS
        self._stop_event = threading.Event()
        self._thread = None
        self._executor = None

    def _collect(self) -> dict:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="telemetry-source"
            )
        node_ids = self.engine.registry.node_ids
        future = self._executor.submit(self.source, node_ids)
        try:
            readings = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                f"Reading source missed the {self.timeout:.1f}s deadline; "
                f"all nodes offline this tick"
            )
            return {}
        except Exception as e:
            logger.error(f"Reading source failed: {e}", exc_info=True)
            return {}
        return dict(readings or {})

    def run_once(self):
        """
        Collect readings and run one engine tick on the calling thread.

        Returns:
            The TickNotification, or None if the tick failed.
        """
        readings = self._collect()
        try:
            return self.engine.tick(readings)
        except Exception as e:
            logger.error(f"Tick failed: {e}", exc_info=True)
            return None

    def _loop(self) -> None:
        logger.info(f"Scheduler started (interval={self.interval}s)")
        while not self._stop_event.is_set():
            started = time.monotonic()
            self.run_once()
            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, self.interval - elapsed))
        logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="TelemetryTick", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = None) -> None:
        """
        Stop ticking. An in-flight tick is allowed to finish first.

        Args:
            timeout: Max seconds to wait for the tick thread.
                Defaults to interval + reading timeout.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout or (self.interval + self.timeout))
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
