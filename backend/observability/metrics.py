"""
Timing helpers for observability.

- Durations use monotonic time (immune to clock changes)
- A timer whose event never happened is discarded, not emitted
- One metric = one JSONL event via observability.logger
- Event timestamps (ts_ms) use wall-clock time for log correlation
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# -----------------------------------------------------------------------------
# Internal timer storage
# -----------------------------------------------------------------------------
# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Start a monotonic timer.

    Returns an opaque timer_id required by stop_timer(). Prefer `timed()`,
    which cannot leak timers.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    component: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Stop a previously started timer and emit a METRIC_TIMER event.

    Returns duration_ms if the timer existed, else None.
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        "ts_ms": int(time.time() * 1000),
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "component": component,
        "state": state,
        "details": details or {},
    })

    return duration_ms


def discard_timer(timer_id: str) -> bool:
    """Drop a started timer without emitting anything (the measured thing never happened)."""
    return _active_timers.pop(timer_id, None) is not None


@contextmanager
def timed(
    name: str,
    *,
    component: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Context manager for measuring durations safely.

    The metric is emitted exactly once, also when the block raises.

    Usage:
        with timed("reply_generation_latency", component="reply"):
            text = await generator.generate_reply(prompt)
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(
            timer_id,
            component=component,
            state=state,
            details=details,
        )
