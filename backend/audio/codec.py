"""
PCM frame codec for streaming messages.

Converts AudioFrame <-> transport-safe text token (base64 of PCM16LE).

Rules:
- Pure and stateless
- Total for well-formed input
- Malformed tokens raise MalformedAudio; callers log and discard
"""

from __future__ import annotations

import base64
import binascii
import re

from audio.frames import AudioFrame
from errors import MalformedAudio
from spec import AUDIO_SAMPLE_WIDTH_BYTES, SYNTHESIS_SAMPLE_RATE_HZ


_RATE_RE = re.compile(r"rate=(\d+)")

PCM_MIME_PREFIX = "audio/pcm"


def encode(frame: AudioFrame) -> str:
    """Encode a frame's samples as an ASCII base64 token."""
    return base64.b64encode(frame.pcm_bytes).decode("ascii")


def decode(token: str, sample_rate_hz: int, *, ts_ms: int = 0) -> AudioFrame:
    """
    Decode a base64 token into an AudioFrame at the given sample rate.

    Raises:
        MalformedAudio if the token is not valid base64 or does not hold
        a whole number of PCM16 samples.
    """
    if not isinstance(token, str):
        raise MalformedAudio(f"audio token must be str, got {type(token).__name__}")
    if sample_rate_hz <= 0:
        raise MalformedAudio(f"invalid sample rate {sample_rate_hz}")

    try:
        pcm_bytes = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedAudio(f"invalid base64 audio: {e}") from e

    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        raise MalformedAudio(
            f"odd PCM16 byte length {len(pcm_bytes)}"
        )

    return AudioFrame(
        pcm_bytes=pcm_bytes,
        sample_rate_hz=sample_rate_hz,
        ts_ms=ts_ms,
    )


def mime_type(sample_rate_hz: int) -> str:
    """MIME tag declaring the sample rate of an outgoing chunk."""
    return f"{PCM_MIME_PREFIX};rate={sample_rate_hz}"


def parse_rate(mime: str | None, default: int = SYNTHESIS_SAMPLE_RATE_HZ) -> int:
    """Read `rate=N` from a MIME tag, falling back to `default`."""
    if not mime:
        return default
    match = _RATE_RE.search(mime)
    if match is None:
        return default
    return int(match.group(1))
