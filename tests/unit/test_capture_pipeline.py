# pylint: disable=missing-module-docstring,missing-function-docstring
from typing import Callable

import numpy as np

from audio.capture import CapturePipeline
from audio.frames import AudioFrame


class FakeSource:
    def __init__(self, sample_rate_hz: int = 16000) -> None:
        self._rate = sample_rate_hz
        self.on_block: Callable[[np.ndarray], None] | None = None
        self.stopped = False

    @property
    def sample_rate_hz(self) -> int:
        return self._rate

    def start(self, on_block: Callable[[np.ndarray], None]) -> None:
        self.on_block = on_block

    def stop(self) -> None:
        self.stopped = True

    def push(self, block: np.ndarray) -> None:
        assert self.on_block is not None
        self.on_block(block)


def voiced(samples: int) -> np.ndarray:
    return np.full(samples, 0.25, dtype=np.float32)


def silent(samples: int) -> np.ndarray:
    return np.zeros(samples, dtype=np.float32)


def make_pipeline(source: FakeSource) -> tuple[CapturePipeline, list[AudioFrame]]:
    frames: list[AudioFrame] = []
    # 10 ms frames at 16 kHz = 160 samples
    pipeline = CapturePipeline(source, target_rate_hz=16000, frame_duration_ms=10)
    pipeline.start(frames.append)
    return pipeline, frames


def test_gate_closed_drops_every_block():
    source = FakeSource()
    pipeline, frames = make_pipeline(source)

    source.push(voiced(1600))

    assert frames == []
    assert pipeline.gated_blocks == 1
    assert pipeline.snapshot()["buffered_bytes"] == 0


def test_gate_open_emits_fixed_size_frames_in_order():
    source = FakeSource()
    pipeline, frames = make_pipeline(source)
    pipeline.set_gate(True)

    source.push(voiced(400))

    assert [f.sequence_num for f in frames] == [1, 2]
    assert all(len(f.pcm_bytes) == 320 for f in frames)
    assert all(f.sample_rate_hz == 16000 for f in frames)
    assert pipeline.snapshot()["buffered_bytes"] == 160


def test_silent_blocks_are_dropped():
    source = FakeSource()
    pipeline, frames = make_pipeline(source)
    pipeline.set_gate(True)

    source.push(silent(1600))

    assert frames == []
    assert pipeline.snapshot()["silent_blocks"] == 1


def test_closing_gate_discards_partial_frame():
    source = FakeSource()
    pipeline, frames = make_pipeline(source)
    pipeline.set_gate(True)
    source.push(voiced(100))

    pipeline.set_gate(False)
    pipeline.set_gate(True)
    source.push(voiced(100))

    assert frames == []
    assert pipeline.snapshot()["buffered_bytes"] == 200


def test_native_rate_is_resampled_to_target():
    source = FakeSource(sample_rate_hz=48000)
    pipeline, frames = make_pipeline(source)
    pipeline.set_gate(True)

    # 30 ms at 48 kHz -> 480 samples at 16 kHz -> 3 frames of 160
    source.push(voiced(1440))

    assert len(frames) == 3
    assert pipeline.snapshot()["frames_emitted"] == 3


def test_resampling_is_continuous_across_blocks():
    t = np.arange(2880) / 48000
    speech = (0.5 * np.sin(2 * np.pi * 300 * t)).astype(np.float32)

    whole_source = FakeSource(sample_rate_hz=48000)
    whole, whole_frames = make_pipeline(whole_source)
    whole.set_gate(True)
    whole_source.push(speech)

    split_source = FakeSource(sample_rate_hz=48000)
    split, split_frames = make_pipeline(split_source)
    split.set_gate(True)
    for i in range(0, 2880, 480):
        split_source.push(speech[i:i + 480])

    assert len(split_frames) == len(whole_frames) == 6
    a = np.frombuffer(b"".join(f.pcm_bytes for f in whole_frames), dtype="<i2")
    b = np.frombuffer(b"".join(f.pcm_bytes for f in split_frames), dtype="<i2")
    assert np.max(np.abs(a.astype(np.int32) - b.astype(np.int32))) <= 1


def test_stop_releases_source_and_ignores_late_blocks():
    source = FakeSource()
    pipeline, frames = make_pipeline(source)
    pipeline.set_gate(True)
    on_block = source.on_block

    pipeline.stop()
    assert source.stopped
    assert not pipeline.running

    on_block(voiced(1600))  # type: ignore[misc]
    assert frames == []
