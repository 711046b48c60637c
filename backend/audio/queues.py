"""
Playback frame queue with canonical depth measurement.

Requirements:
- Strict FIFO (frames heard in the order produced)
- Depth measured in seconds (frames may differ in length)
- Explicit drop accounting when a reply is aborted
- Deterministic, synchronous behavior
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from audio.frames import AudioFrame
from audio.pcm import pcm_duration_ms


@dataclass
class DropCounters:
    """
    Drop counters for observability.
    """
    aborted: int = 0
    failed: int = 0


class AudioFrameQueue:
    """
    Unbounded FIFO queue for AudioFrame objects.

    Synthesis output for one reply is short and must never be dropped for
    capacity reasons; frames only leave the queue by being played, failing,
    or being aborted with clear().
    """

    def __init__(self) -> None:
        self._frames: Deque[AudioFrame] = deque()
        self._depth_ms: float = 0.0
        self.drops: DropCounters = DropCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, frame: AudioFrame) -> None:
        self._frames.append(frame)
        self._depth_ms += pcm_duration_ms(len(frame.pcm_bytes), frame.sample_rate_hz)

    def dequeue(self) -> Optional[AudioFrame]:
        """
        Dequeue the oldest AudioFrame.

        Returns None if queue is empty.
        """
        if not self._frames:
            return None
        frame = self._frames.popleft()
        self._depth_ms -= pcm_duration_ms(len(frame.pcm_bytes), frame.sample_rate_hz)
        if not self._frames:
            self._depth_ms = 0.0
        return frame

    def peek(self) -> Optional[AudioFrame]:
        return self._frames[0] if self._frames else None

    def clear(self) -> int:
        """
        Drop all queued frames, counting them as aborted.

        Returns the number of frames dropped.
        """
        dropped = len(self._frames)
        self._frames.clear()
        self._depth_ms = 0.0
        self.drops.aborted += dropped
        return dropped

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._frames)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._frames

    def depth_seconds(self) -> float:
        """Total playback duration of queued frames."""
        return self._depth_ms / 1000.0

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "frames": len(self._frames),
            "depth_s": self.depth_seconds(),
            "dropped_aborted": self.drops.aborted,
            "failed": self.drops.failed,
        }
