# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

import pytest

from config import AppConfig
from spec import COOLDOWN_MS, REPLY_MODEL_DEFAULTS, SILENCE_TIMEOUT_MS, WATCHDOG_MS


_VARS = (
    "ENV", "LOG_LEVEL", "GEMINI_API_KEY", "GEMINI_MODEL", "GEMINI_VOICE",
    "REPLY_PROVIDER", "REPLY_MODEL", "OPENAI_API_KEY", "GROQ_API_KEY",
    "AUDIO_SAMPLE_RATE", "TTS_SAMPLE_RATE", "CAPTURE_FRAME_MS", "OUTPUT_GAIN",
    "INPUT_DEVICE", "OUTPUT_DEVICE", "UPLINK_DEVICE",
    "SILENCE_TIMEOUT_MS", "COOLDOWN_MS", "WATCHDOG_MS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = AppConfig.load_from_env()

    assert config.env == "dev"
    assert config.gemini_api_key is None
    assert config.reply_provider == "gemini"
    assert config.reply_model == REPLY_MODEL_DEFAULTS["gemini"]
    assert config.silence_timeout_ms == SILENCE_TIMEOUT_MS
    assert config.cooldown_ms == COOLDOWN_MS
    assert config.watchdog_ms == WATCHDOG_MS
    assert config.uplink_device is None


def test_values_are_read_from_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "k-123")
    monkeypatch.setenv("REPLY_PROVIDER", "groq")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-1")
    monkeypatch.setenv("SILENCE_TIMEOUT_MS", "6000")
    monkeypatch.setenv("OUTPUT_GAIN", "0.8")
    monkeypatch.setenv("UPLINK_DEVICE", "BlackHole 2ch")
    monkeypatch.setenv("INPUT_DEVICE", "   ")

    config = AppConfig.load_from_env()

    assert config.gemini_api_key == "k-123"
    assert config.reply_provider == "groq"
    assert config.groq_api_key == "gsk-1"
    assert config.silence_timeout_ms == 6000
    assert config.output_gain == pytest.approx(0.8)
    assert config.uplink_device == "BlackHole 2ch"
    assert config.input_device is None


def test_malformed_integer_is_rejected(monkeypatch):
    monkeypatch.setenv("COOLDOWN_MS", "soon")

    with pytest.raises(ValueError, match="COOLDOWN_MS"):
        AppConfig.load_from_env()


@pytest.mark.parametrize("value", ["4999", "8001"])
def test_silence_timeout_outside_range_is_rejected(monkeypatch, value):
    monkeypatch.setenv("SILENCE_TIMEOUT_MS", value)

    with pytest.raises(ValueError, match="SILENCE_TIMEOUT_MS"):
        AppConfig.load_from_env()


def test_unknown_provider_is_rejected(monkeypatch):
    monkeypatch.setenv("REPLY_PROVIDER", "anthropic-local")

    with pytest.raises(ValueError, match="REPLY_PROVIDER"):
        AppConfig.load_from_env()


def test_non_positive_timers_are_rejected():
    config = AppConfig.load_from_env()

    with pytest.raises(ValueError, match="watchdog_ms"):
        replace(config, watchdog_ms=0).validate()
    with pytest.raises(ValueError, match="output_gain"):
        replace(config, output_gain=0.0).validate()


@pytest.mark.parametrize(
    "provider,key_var",
    [("openai", "OPENAI_API_KEY"), ("groq", "GROQ_API_KEY")],
)
def test_reply_model_defaults_to_the_provider_model(monkeypatch, provider, key_var):
    monkeypatch.setenv("REPLY_PROVIDER", provider.upper())
    monkeypatch.setenv(key_var, "secret")

    config = AppConfig.load_from_env()

    assert config.reply_provider == provider
    assert config.reply_model == REPLY_MODEL_DEFAULTS[provider]
    assert config.reply_model != REPLY_MODEL_DEFAULTS["gemini"]


def test_explicit_reply_model_wins_over_provider_default(monkeypatch):
    monkeypatch.setenv("REPLY_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-1")
    monkeypatch.setenv("REPLY_MODEL", "gpt-4.1-mini")

    assert AppConfig.load_from_env().reply_model == "gpt-4.1-mini"


@pytest.mark.parametrize(
    "provider,key_var",
    [("openai", "OPENAI_API_KEY"), ("groq", "GROQ_API_KEY")],
)
def test_reply_provider_without_its_key_is_rejected(monkeypatch, provider, key_var):
    monkeypatch.setenv("REPLY_PROVIDER", provider)
    monkeypatch.setenv(key_var, "  ")

    with pytest.raises(ValueError, match=key_var):
        AppConfig.load_from_env()
