# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from audio.frame_generator import FrameAccumulator, bytes_per_frame


def test_bytes_per_frame_pcm16_mono():
    # 16 kHz * 2 s * 2 bytes
    assert bytes_per_frame(sample_rate_hz=16000, frame_duration_ms=2000) == 64000
    assert bytes_per_frame(sample_rate_hz=24000, frame_duration_ms=20) == 960


def test_bytes_per_frame_rejects_bad_params():
    with pytest.raises(ValueError):
        bytes_per_frame(sample_rate_hz=0, frame_duration_ms=20)
    with pytest.raises(ValueError):
        bytes_per_frame(sample_rate_hz=16000, frame_duration_ms=0)


def test_push_emits_whole_frames_and_keeps_remainder():
    acc = FrameAccumulator(sample_rate_hz=16000, frame_duration_ms=10)
    assert acc.frame_bytes == 320

    frames = acc.push(b"\x01" * 700)

    assert len(frames) == 2
    assert all(len(f) == 320 for f in frames)
    assert acc.buffered_bytes() == 60


def test_remainder_joins_next_push():
    acc = FrameAccumulator(sample_rate_hz=16000, frame_duration_ms=10)
    acc.push(b"\x01" * 300)
    frames = acc.push(b"\x02" * 40)

    assert len(frames) == 1
    assert frames[0] == b"\x01" * 300 + b"\x02" * 20
    assert acc.buffered_bytes() == 20


def test_clear_discards_partial_frame():
    acc = FrameAccumulator(sample_rate_hz=16000, frame_duration_ms=10)
    acc.push(b"\x01" * 100)
    acc.clear()

    assert acc.buffered_bytes() == 0
    assert acc.push(b"") == []
