"""
In-process telemetry.

Nothing is shipped externally: events go to the log, counters and latency
samples stay in memory so tests and /api/state can read them.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger("mailfortress.telemetry")

_LOCK = threading.Lock()
_COUNTERS: dict[str, int] = {}
_LATENCIES: dict[str, list[float]] = {}


def log_event(event_name: str, **fields: Any) -> None:
    """Structured log event. Callers must not pass email bodies."""
    logger.info("event=%s %s", event_name, fields)


def counter(name: str, increment: int = 1) -> int:
    """Increment an in-memory counter and return the new value."""
    with _LOCK:
        value = _COUNTERS.get(name, 0) + increment
        _COUNTERS[name] = value
    logger.debug("counter=%s value=%s", name, value)
    return value


def get_counter(name: str) -> int:
    with _LOCK:
        return _COUNTERS.get(name, 0)


def snapshot_counters() -> dict[str, int]:
    with _LOCK:
        return dict(_COUNTERS)


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """Record the wall time of the enclosed block under ``metric_name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("timing=%s seconds=%.6f", metric_name, elapsed)
        with _LOCK:
            _LATENCIES.setdefault(metric_name, []).append(elapsed)


def snapshot_latencies() -> dict[str, dict[str, float]]:
    """Sample count and mean/max seconds per timed block."""
    with _LOCK:
        return {
            name: {"count": len(samples), "mean_seconds": sum(samples) / len(samples), "max_seconds": max(samples)}
            for name, samples in _LATENCIES.items()
            if samples
        }


def reset() -> None:
    """Clear counters and latency samples (tests)."""
    with _LOCK:
        _COUNTERS.clear()
        _LATENCIES.clear()
