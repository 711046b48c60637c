"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import (
    CAPTURE_FRAME_MS,
    CAPTURE_SAMPLE_RATE_HZ,
    COOLDOWN_MS,
    GEMINI_LIVE_MODEL_DEFAULT,
    GEMINI_VOICE_DEFAULT,
    PLAYBACK_OUTPUT_GAIN,
    REPLY_MODEL_DEFAULTS,
    SILENCE_TIMEOUT_MAX_MS,
    SILENCE_TIMEOUT_MIN_MS,
    SILENCE_TIMEOUT_MS,
    SYNTHESIS_SAMPLE_RATE_HZ,
    WATCHDOG_MS,
)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    return value


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed down to the
    session bootstrap code.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Live speech endpoint
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    gemini_model: str
    gemini_voice: str

    # ------------------------------------------------------------------
    # Reply generation
    # ------------------------------------------------------------------

    reply_provider: str
    reply_model: str
    openai_api_key: str | None
    groq_api_key: str | None

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    audio_sample_rate: int
    tts_sample_rate: int
    capture_frame_ms: int
    output_gain: float
    input_device: str | None
    output_device: str | None
    uplink_device: str | None

    # ------------------------------------------------------------------
    # Turn-taking timers
    # ------------------------------------------------------------------

    silence_timeout_ms: int
    cooldown_ms: int
    watchdog_ms: int

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        REPLY_MODEL falls back to the default model of REPLY_PROVIDER.

        Raises:
            ValueError if a numeric variable is malformed or out of range,
            or the reply provider is unknown or missing its API key.
        """
        provider = os.environ.get("REPLY_PROVIDER", "gemini").strip().lower()

        config = AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=_optional_env("GEMINI_API_KEY"),
            gemini_model=os.environ.get("GEMINI_MODEL", GEMINI_LIVE_MODEL_DEFAULT),
            gemini_voice=os.environ.get("GEMINI_VOICE", GEMINI_VOICE_DEFAULT),

            reply_provider=provider,
            reply_model=(
                _optional_env("REPLY_MODEL") or REPLY_MODEL_DEFAULTS.get(provider, "")
            ),
            openai_api_key=_optional_env("OPENAI_API_KEY"),
            groq_api_key=_optional_env("GROQ_API_KEY"),

            audio_sample_rate=_int_env("AUDIO_SAMPLE_RATE", CAPTURE_SAMPLE_RATE_HZ),
            tts_sample_rate=_int_env("TTS_SAMPLE_RATE", SYNTHESIS_SAMPLE_RATE_HZ),
            capture_frame_ms=_int_env("CAPTURE_FRAME_MS", CAPTURE_FRAME_MS),
            output_gain=_float_env("OUTPUT_GAIN", PLAYBACK_OUTPUT_GAIN),
            input_device=_optional_env("INPUT_DEVICE"),
            output_device=_optional_env("OUTPUT_DEVICE"),
            uplink_device=_optional_env("UPLINK_DEVICE"),

            silence_timeout_ms=_int_env("SILENCE_TIMEOUT_MS", SILENCE_TIMEOUT_MS),
            cooldown_ms=_int_env("COOLDOWN_MS", COOLDOWN_MS),
            watchdog_ms=_int_env("WATCHDOG_MS", WATCHDOG_MS),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values the coordinator cannot run with."""
        if not SILENCE_TIMEOUT_MIN_MS <= self.silence_timeout_ms <= SILENCE_TIMEOUT_MAX_MS:
            raise ValueError(
                "SILENCE_TIMEOUT_MS must be within "
                f"{SILENCE_TIMEOUT_MIN_MS}..{SILENCE_TIMEOUT_MAX_MS}, "
                f"got {self.silence_timeout_ms}"
            )
        for name in ("cooldown_ms", "watchdog_ms", "capture_frame_ms",
                     "audio_sample_rate", "tts_sample_rate"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.output_gain <= 0:
            raise ValueError("output_gain must be > 0")
        provider = self.reply_provider.lower()
        if provider not in REPLY_MODEL_DEFAULTS:
            raise ValueError(f"unknown REPLY_PROVIDER {self.reply_provider!r}")
        if provider == "openai" and not self.openai_api_key:
            raise ValueError("REPLY_PROVIDER openai requires OPENAI_API_KEY")
        if provider == "groq" and not self.groq_api_key:
            raise ValueError("REPLY_PROVIDER groq requires GROQ_API_KEY")
        if not self.reply_model:
            raise ValueError("reply_model must not be empty")
