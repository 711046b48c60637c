"""
sounddevice-backed audio input source and output sinks.

Device I/O runs on PortAudio threads. Input blocks hop onto the event loop
with call_soon_threadsafe; output writes run in a worker thread through
asyncio.to_thread so the coordinator never blocks on a device.

Virtual sink/source provisioning is the host's job; these classes only
open devices by name or index.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Callable

import numpy as np
import sounddevice as sd

from audio.frames import AudioFrame
from audio.pcm import pcm16le_to_float32
from observability.logger import log_event
from spec import AUDIO_CHANNELS, CAPTURE_BLOCK_MS


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def resolve_device(name: str | None, *, kind: str) -> int | None:
    """
    Find a device index by (case-insensitive) substring of its name.

    None means the system default. A purely numeric name is taken as an
    index. Raises ValueError when nothing matches.
    """
    if name is None:
        return None
    if name.isdigit():
        return int(name)

    channel_key = "max_input_channels" if kind == "input" else "max_output_channels"
    needle = name.lower()
    for index, info in enumerate(sd.query_devices()):
        if info[channel_key] > 0 and needle in str(info["name"]).lower():
            return index
    raise ValueError(f"no {kind} device matching {name!r}")


def default_sample_rate(device: int | None, *, kind: str) -> int:
    info: Any = sd.query_devices(device, kind)
    return int(info["default_samplerate"])


class SoundDeviceInputSource:
    """
    Microphone / virtual-source capture via sd.InputStream.

    Blocks are float32 mono in [-1, 1] delivered on the event loop thread.
    """

    def __init__(
        self,
        *,
        device: int | None = None,
        sample_rate_hz: int | None = None,
        block_ms: int = CAPTURE_BLOCK_MS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._device = device
        self._sample_rate_hz = sample_rate_hz or default_sample_rate(device, kind="input")
        self._block_size = max(1, self._sample_rate_hz * block_ms // 1000)
        self._loop = loop
        self._stream: sd.InputStream | None = None

    @property
    def sample_rate_hz(self) -> int:
        return self._sample_rate_hz

    def start(self, on_block: Callable[[np.ndarray], None]) -> None:
        if self._stream is not None:
            return
        loop = self._loop or asyncio.get_running_loop()

        def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            # pylint: disable=unused-argument
            if status:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "input_device_status",
                    "component": "capture",
                    "status": str(status),
                }, level="debug")
            block = indata[:, 0].copy()
            loop.call_soon_threadsafe(on_block, block)

        self._stream = sd.InputStream(
            samplerate=self._sample_rate_hz,
            channels=AUDIO_CHANNELS,
            dtype="float32",
            blocksize=self._block_size,
            device=self._device,
            callback=_callback,
        )
        self._stream.start()

    def stop(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        stream.stop()
        stream.close()


class SoundDeviceOutputSink:
    """
    Speaker / virtual-sink playback via a blocking sd.OutputStream.

    write() returns after the whole frame has been handed to the device,
    which for a blocking stream means after roughly its playback duration.
    """

    def __init__(
        self,
        *,
        device: int | None = None,
        sample_rate_hz: int | None = None,
        name: str = "primary",
    ) -> None:
        self._device = device
        self._sample_rate_hz = sample_rate_hz or default_sample_rate(device, kind="output")
        self._name = name
        self._stream: sd.OutputStream | None = None
        self._lock = threading.Lock()

    @property
    def sample_rate_hz(self) -> int:
        return self._sample_rate_hz

    async def write(self, frame: AudioFrame) -> None:
        if frame.sample_rate_hz != self._sample_rate_hz:
            raise ValueError(
                f"{self._name} sink expects {self._sample_rate_hz} Hz, "
                f"got {frame.sample_rate_hz} Hz"
            )
        samples = pcm16le_to_float32(frame.pcm_bytes).reshape(-1, 1)
        await asyncio.to_thread(self._write_blocking, samples)

    def _write_blocking(self, samples: np.ndarray) -> None:
        with self._lock:
            if self._stream is None:
                self._stream = sd.OutputStream(
                    samplerate=self._sample_rate_hz,
                    channels=AUDIO_CHANNELS,
                    dtype="float32",
                    device=self._device,
                )
                self._stream.start()
            self._stream.write(samples)

    def close(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None
        if stream is None:
            return
        stream.abort()
        stream.close()
