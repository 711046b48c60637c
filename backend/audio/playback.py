"""
Audio playback pipeline.

Plays synthesized frames strictly in arrival order and duplicates every
played frame into an uplink sink so the remote party hears exactly what
the local listener hears.

Contract:
- enqueue(frame) appends to a strict FIFO
- A single worker awaits each frame's full playback before the next
- Queue drained -> on_drained(frames_enqueued), the running enqueue count
- A failing frame is logged and skipped; PLAYBACK_MAX_CONSECUTIVE_FAILURES
  in a row abort the remaining queue and call on_fatal(reason)

The pipeline never raises into the coordinator.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Protocol, runtime_checkable

from audio.frames import AudioFrame
from audio.pcm import (
    StreamingResampler,
    apply_gain,
    float32_to_pcm16le,
    pcm16le_to_float32,
)
from audio.queues import AudioFrameQueue
from errors import PlaybackFatal
from observability.logger import log_event
from spec import (
    PLAYBACK_CLIP_LIMIT,
    PLAYBACK_MAX_CONSECUTIVE_FAILURES,
    PLAYBACK_OUTPUT_GAIN,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@runtime_checkable
class AudioOutputSink(Protocol):
    """
    Output sink accepting ordered PCM frames.

    write() must return only once the frame has been played (or handed to
    a device that will play it for its full duration).
    """

    @property
    def sample_rate_hz(self) -> int: ...

    async def write(self, frame: AudioFrame) -> None: ...

    def close(self) -> None: ...


class PlaybackPipeline:
    """FIFO playback into a primary sink and an optional uplink sink."""

    def __init__(
        self,
        primary: AudioOutputSink,
        uplink: AudioOutputSink | None = None,
        *,
        on_drained: Callable[[int], None],
        on_fatal: Callable[[str], None],
        gain: float = PLAYBACK_OUTPUT_GAIN,
        max_consecutive_failures: int = PLAYBACK_MAX_CONSECUTIVE_FAILURES,
    ) -> None:
        if max_consecutive_failures <= 0:
            raise ValueError("max_consecutive_failures must be > 0")

        self._primary = primary
        self._uplink = uplink
        self._on_drained = on_drained
        self._on_fatal = on_fatal
        self._gain = gain
        self._max_failures = max_consecutive_failures

        self._queue = AudioFrameQueue()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task[None] | None = None
        # One filter history per sink; a drain starts a fresh signal
        self._resamplers: dict[str, StreamingResampler] = {}

        self._consecutive_failures: int = 0
        self._played_since_drain: bool = False
        self.frames_played: int = 0
        # Never reset; lets the coordinator spot drains that predate a chunk
        self.frames_enqueued: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Abort queued audio, stop the worker and release the sinks."""
        dropped = self._queue.clear()
        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        self._played_since_drain = False
        self._consecutive_failures = 0
        self._wakeup.clear()
        self._reset_resamplers()

        for sink in (self._primary, self._uplink):
            if sink is None:
                continue
            try:
                sink.close()
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "playback_sink_close_failed",
                    "component": "playback",
                    "error": repr(e),
                }, level="warn")

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "playback_stopped",
            "component": "playback",
            "frames_dropped": dropped,
        })

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, frame: AudioFrame) -> None:
        self._queue.enqueue(frame)
        self.frames_enqueued += 1
        self._wakeup.set()

    def snapshot(self) -> dict[str, float | int]:
        return {
            **self._queue.snapshot(),
            "frames_enqueued": self.frames_enqueued,
            "frames_played": self.frames_played,
            "consecutive_failures": self._consecutive_failures,
        }

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            await self._wakeup.wait()

            frame = self._queue.dequeue()
            if frame is None:
                self._wakeup.clear()
                if self._played_since_drain:
                    self._played_since_drain = False
                    self._reset_resamplers()
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "playback_drained",
                        "component": "playback",
                        **self.snapshot(),
                    })
                    self._on_drained(self.frames_enqueued)
                continue

            self._played_since_drain = True
            try:
                await self._play(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._record_failure(frame, e)
                continue

            self._consecutive_failures = 0
            self.frames_played += 1

    async def _play(self, frame: AudioFrame) -> None:
        writes = [self._primary.write(self._prepare(frame, self._primary, "primary"))]
        if self._uplink is not None:
            writes.append(self._uplink.write(self._prepare(frame, self._uplink, "uplink")))

        results = await asyncio.gather(*writes, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def _prepare(self, frame: AudioFrame, sink: AudioOutputSink, role: str) -> AudioFrame:
        if frame.sample_rate_hz == sink.sample_rate_hz and self._gain == 1.0:
            return frame

        resampler = self._resamplers.get(role)
        if (
            resampler is None
            or resampler.from_rate_hz != frame.sample_rate_hz
            or resampler.to_rate_hz != sink.sample_rate_hz
        ):
            resampler = StreamingResampler(frame.sample_rate_hz, sink.sample_rate_hz)
            self._resamplers[role] = resampler

        samples = resampler.process(pcm16le_to_float32(frame.pcm_bytes))
        samples = apply_gain(samples, self._gain, limit=PLAYBACK_CLIP_LIMIT)
        return AudioFrame(
            pcm_bytes=float32_to_pcm16le(samples),
            sample_rate_hz=sink.sample_rate_hz,
            ts_ms=frame.ts_ms,
            sequence_num=frame.sequence_num,
        )

    def _record_failure(self, frame: AudioFrame, error: Exception) -> None:
        self._consecutive_failures += 1
        self._queue.drops.failed += 1
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "playback_frame_failed",
            "component": "playback",
            "sequence_num": frame.sequence_num,
            "consecutive_failures": self._consecutive_failures,
            "error": repr(error),
        }, level="warn")

        if self._consecutive_failures < self._max_failures:
            return

        fatal = PlaybackFatal(
            f"{self._consecutive_failures} consecutive playback failures: {error!r}"
        )
        dropped = self._queue.clear()
        self._consecutive_failures = 0
        self._played_since_drain = False
        self._wakeup.clear()
        self._reset_resamplers()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "playback_fatal",
            "component": "playback",
            "frames_dropped": dropped,
            "reason": str(fatal),
        }, level="error")
        self._on_fatal(str(fatal))

    def _reset_resamplers(self) -> None:
        for resampler in self._resamplers.values():
            resampler.reset()
