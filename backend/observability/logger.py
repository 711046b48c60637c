"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

Every event carries a `level` (debug | info | warn | error). Events below
the process-wide minimum level are dropped before serialization.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warn": 30,
    "error": 40,
}

_LEVEL_ALIASES: dict[str, str] = {
    "warning": "warn",
    "critical": "error",
}


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_min_level: int = LEVELS["info"]


def normalize_level(level: str) -> str:
    """Map a user-supplied level name (LOG_LEVEL style) onto LEVELS keys."""
    name = level.strip().lower()
    name = _LEVEL_ALIASES.get(name, name)
    if name not in LEVELS:
        raise ValueError(f"unknown log level {level!r}")
    return name


def set_min_level(level: str) -> None:
    """Set the process-wide minimum level. Called once at startup."""
    global _min_level  # pylint: disable=global-statement
    _min_level = LEVELS[normalize_level(level)]


def log_event(event: Mapping[str, Any], *, level: str = "info") -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for supplying a fully-formed event dict
    (ts_ms, event_type, component, ...). An explicit `level` key in the
    event wins over the keyword argument.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    resolved = str(event.get("level", level))
    if LEVELS.get(resolved, LEVELS["info"]) < _min_level:
        return

    payload: dict[str, Any] = {**event, "level": resolved}
    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "level": "error",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
