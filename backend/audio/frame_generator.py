"""
PCM frame accumulation (pure, synchronous).

Purpose:
- Accumulate variable-size PCM16 blocks from an input device into
  fixed-duration frames for the transcription client.

Invariants:
- PCM16 signed, little-endian, mono
- Every emitted frame is exactly bytes_per_frame() long
- The remainder after slicing is retained for the next push
"""

from __future__ import annotations

from spec import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_WIDTH_BYTES,
)


def bytes_per_frame(
    *,
    sample_rate_hz: int,
    frame_duration_ms: int,
    channels: int = AUDIO_CHANNELS,
    sample_width_bytes: int = AUDIO_SAMPLE_WIDTH_BYTES,
) -> int:
    """
    Byte length of one frame for the given format.

    Raises:
        ValueError if parameters are invalid.
    """
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    if frame_duration_ms <= 0:
        raise ValueError("frame_duration_ms must be > 0")
    if channels <= 0:
        raise ValueError("channels must be > 0")
    if sample_width_bytes <= 0:
        raise ValueError("sample_width_bytes must be > 0")

    samples_per_frame = (sample_rate_hz * frame_duration_ms) // 1000
    size = samples_per_frame * channels * sample_width_bytes
    if size <= 0:
        raise ValueError("bytes_per_frame must be > 0")
    return size


class FrameAccumulator:
    """
    Rolling buffer that slices fixed-duration frames off accumulated PCM.

    Not thread-safe; owned by a single pipeline running on the event loop.
    """

    def __init__(self, *, sample_rate_hz: int, frame_duration_ms: int) -> None:
        self._frame_bytes = bytes_per_frame(
            sample_rate_hz=sample_rate_hz,
            frame_duration_ms=frame_duration_ms,
        )
        self._buffer = bytearray()

    @property
    def frame_bytes(self) -> int:
        return self._frame_bytes

    def push(self, pcm_bytes: bytes) -> list[bytes]:
        """
        Append a block and return every whole frame now available.

        The remainder stays buffered.
        """
        if pcm_bytes:
            self._buffer.extend(pcm_bytes)

        out: list[bytes] = []
        while len(self._buffer) >= self._frame_bytes:
            out.append(bytes(self._buffer[: self._frame_bytes]))
            del self._buffer[: self._frame_bytes]
        return out

    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        """Discard any partial frame."""
        self._buffer.clear()
