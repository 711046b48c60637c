"""
Audio capture pipeline.

Owns an input source, drops silent raw blocks, converts to PCM16 at the
transcription rate and accumulates fixed-duration frames for a consumer.

Feedback-loop guard:
- A single boolean gate is written only by the coordinator runtime.
- While the gate is closed every raw block is dropped (not buffered).
- Closing the gate discards the partial frame and the resampler history
  so no pre-gate audio is glued onto post-cooldown audio.

Threading:
- Input sources deliver blocks on the event loop thread
  (device sources hop over with call_soon_threadsafe).
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, runtime_checkable

import numpy as np

from audio.frame_generator import FrameAccumulator
from audio.frames import AudioFrame
from audio.pcm import StreamingResampler, float32_to_pcm16le
from audio.vad import PeakSilenceDetector
from observability.logger import log_event
from spec import (
    CAPTURE_FRAME_MS,
    CAPTURE_SAMPLE_RATE_HZ,
    CAPTURE_SILENCE_PEAK_THRESHOLD,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@runtime_checkable
class AudioInputSource(Protocol):
    """Anything yielding raw float32 mono blocks at a fixed native rate."""

    @property
    def sample_rate_hz(self) -> int: ...

    def start(self, on_block: Callable[[np.ndarray], None]) -> None: ...

    def stop(self) -> None: ...


class CapturePipeline:
    """
    Capture pipeline feeding the transcription client.

    Public interface:
    - start(on_frame): begin reading from the source
    - stop(): release the source and discard any partial buffer
    - set_gate(open): coordinator-owned feedback-loop gate
    """

    def __init__(
        self,
        source: AudioInputSource,
        *,
        target_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ,
        frame_duration_ms: int = CAPTURE_FRAME_MS,
        silence_threshold: float = CAPTURE_SILENCE_PEAK_THRESHOLD,
    ) -> None:
        self._source = source
        self._target_rate_hz = target_rate_hz
        self._accumulator = FrameAccumulator(
            sample_rate_hz=target_rate_hz,
            frame_duration_ms=frame_duration_ms,
        )
        self._silence = PeakSilenceDetector(silence_threshold)
        self._resampler: StreamingResampler | None = None

        self._on_frame: Callable[[AudioFrame], None] | None = None
        self._gate_open: bool = False
        self._running: bool = False
        self._next_seq: int = 1

        self.gated_blocks: int = 0
        self.frames_emitted: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self, on_frame: Callable[[AudioFrame], None]) -> None:
        if self._running:
            return
        self._on_frame = on_frame
        self._accumulator.clear()
        self._resampler = StreamingResampler(
            self._source.sample_rate_hz, self._target_rate_hz
        )
        self._running = True
        self._source.start(self._on_block)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "capture_started",
            "component": "capture",
            "source_rate_hz": self._source.sample_rate_hz,
            "target_rate_hz": self._target_rate_hz,
        })

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._source.stop()
        dropped = self._accumulator.buffered_bytes()
        self._accumulator.clear()
        self._resampler = None
        self._on_frame = None
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "capture_stopped",
            "component": "capture",
            "partial_bytes_discarded": dropped,
            **self.snapshot(),
        })

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    @property
    def gate_open(self) -> bool:
        return self._gate_open

    def set_gate(self, open_: bool) -> None:
        if open_ == self._gate_open:
            return
        self._gate_open = open_
        if not open_:
            self._accumulator.clear()
            if self._resampler is not None:
                self._resampler.reset()

    # ------------------------------------------------------------------
    # Block handling
    # ------------------------------------------------------------------

    def _on_block(self, block: np.ndarray) -> None:
        if not self._running or self._on_frame is None or self._resampler is None:
            return

        samples = np.asarray(block, dtype=np.float32).reshape(-1)

        if self._silence.is_silent(samples):
            return

        if not self._gate_open:
            self.gated_blocks += 1
            return

        samples = self._resampler.process(samples)
        for pcm in self._accumulator.push(float32_to_pcm16le(samples)):
            frame = AudioFrame(
                pcm_bytes=pcm,
                sample_rate_hz=self._target_rate_hz,
                ts_ms=_now_ms(),
                sequence_num=self._next_seq,
            )
            self._next_seq += 1
            self.frames_emitted += 1
            self._on_frame(frame)

    def snapshot(self) -> dict[str, int | bool]:
        return {
            "gate_open": self._gate_open,
            "silent_blocks": self._silence.silent_blocks,
            "gated_blocks": self.gated_blocks,
            "frames_emitted": self.frames_emitted,
            "buffered_bytes": self._accumulator.buffered_bytes(),
        }
