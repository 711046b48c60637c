"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass

from spec import AUDIO_CHANNELS


@dataclass(frozen=True)
class AudioFrame:
    """
    Canonical audio frame used throughout the capture and playback pipelines.

    pcm_bytes:
        Raw PCM16 little-endian mono samples.

    sample_rate_hz:
        Fixed per pipeline instance. Capture frames and synthesis frames
        usually differ in rate and are never mixed without resampling.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was produced.
        Used for observability only (not control logic).

    sequence_num:
        Monotonic per producer. Used for ordering checks and debugging only.
    """
    pcm_bytes: bytes
    sample_rate_hz: int
    ts_ms: int = 0
    sequence_num: int = 0
    channels: int = AUDIO_CHANNELS
