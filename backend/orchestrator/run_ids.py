"""
Run ID container for versioned coordinator operations.

Rules:
- Run IDs are monotonic integers.
- They are owned and incremented ONLY by the reducer.
- This module defines structure, not behavior.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunIds:
    """
    Immutable container for the latest run ID per operation.

    Semantics:
    - A value of 0 means "no run has been started yet".
    - Once a run ID is incremented, it is never reused, so results of a
      run started before a stop() can be recognized and dropped.
    """

    reply: int = 0
    speak: int = 0
