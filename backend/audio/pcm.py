"""PCM conversion utilities."""
from math import gcd

import numpy as np
from scipy import signal

from spec import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    PCM16_NEGATIVE_SCALE,
    PCM16_POSITIVE_SCALE,
)


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; caller should treat as malformed frame upstream.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    audio_f32 = audio_i16.astype(np.float32) / PCM16_NEGATIVE_SCALE
    return audio_f32


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Convert float32 samples in [-1.0, 1.0] to PCM16 little-endian bytes.

    Negative samples scale by 0x8000, positive by 0x7FFF so both ends of
    the int16 range are reachable. Out-of-range input is clipped.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(
        clipped < 0,
        clipped * PCM16_NEGATIVE_SCALE,
        clipped * PCM16_POSITIVE_SCALE,
    )
    return scaled.astype("<i2").tobytes()


class StreamingResampler:
    """
    Rational-ratio resampler for a mono stream delivered in chunks.

    Same Kaiser-windowed FIR as scipy.signal.resample_poly, applied
    causally in polyphase form. The last input samples are carried to the
    next call, so splitting a signal into chunks gives the same output as
    resampling it in one piece (no zero-padding transient per chunk).
    """

    def __init__(self, from_rate_hz: int, to_rate_hz: int) -> None:
        if from_rate_hz <= 0 or to_rate_hz <= 0:
            raise ValueError("sample rates must be > 0")

        self.from_rate_hz = from_rate_hz
        self.to_rate_hz = to_rate_hz

        g = gcd(from_rate_hz, to_rate_hz)
        self._up = to_rate_hz // g
        self._down = from_rate_hz // g

        self._width = 1
        self._phases = np.ones((1, 1))
        if self.passthrough:
            self.reset()
            return

        max_rate = max(self._up, self._down)
        half_len = 10 * max_rate
        taps = signal.firwin(2 * half_len + 1, 1.0 / max_rate, window=("kaiser", 5.0))
        taps = taps * self._up

        # Row p holds the taps applied to x[b], x[b-1], ... for output phase p
        self._width = -(-taps.size // self._up)
        padded = np.zeros(self._width * self._up)
        padded[: taps.size] = taps
        self._phases = padded.reshape(self._width, self._up).T

        self.reset()

    @property
    def passthrough(self) -> bool:
        return self._up == self._down

    def reset(self) -> None:
        """Forget stream history; the next chunk starts a new signal."""
        self._history = np.zeros(self._width - 1)
        self._consumed = 0
        self._next_out = 0

    def process(self, samples: np.ndarray) -> np.ndarray:
        if self.passthrough or samples.size == 0:
            return samples.astype(np.float32, copy=False)

        x = np.asarray(samples, dtype=np.float64).reshape(-1)
        buf = np.concatenate([self._history, x])
        first_in = self._consumed
        self._consumed += x.size

        # Emit every output whose newest input sample has now arrived
        end_out = -(-self._consumed * self._up // self._down)
        out_idx = np.arange(self._next_out, end_out, dtype=np.int64)
        self._next_out = end_out

        pos = out_idx * self._down
        newest = pos // self._up - first_in + (self._width - 1)
        window = newest[:, None] - np.arange(self._width)[None, :]
        out = np.sum(buf[window] * self._phases[pos % self._up], axis=1)

        self._history = buf[buf.size - (self._width - 1):]
        return out.astype(np.float32)


def apply_gain(samples: np.ndarray, gain: float, *, limit: float = 1.0) -> np.ndarray:
    """Scale samples and hard-limit them to [-limit, limit]."""
    return np.clip(samples * gain, -limit, limit).astype(np.float32)


def peak_amplitude(samples: np.ndarray) -> float:
    """Largest absolute sample value; 0.0 for an empty block."""
    if samples.size == 0:
        return 0.0
    return float(np.max(np.abs(samples)))


def pcm_duration_ms(num_bytes: int, sample_rate_hz: int) -> float:
    """Playback duration of a mono PCM16 buffer."""
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    samples = num_bytes // AUDIO_SAMPLE_WIDTH_BYTES
    return samples * 1000.0 / sample_rate_hz
