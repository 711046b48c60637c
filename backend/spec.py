"""
BEHAVIORAL CONSTANTS
--------------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format (PCM16 mono)
# =============================================================================

AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# Capture side: what the transcription endpoint is fed
CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000

# Synthesis side: what the live endpoint returns
SYNTHESIS_SAMPLE_RATE_HZ: Final[int] = 24_000

# Int16 full-scale conversion (asymmetric range)
PCM16_NEGATIVE_SCALE: Final[float] = 32768.0
PCM16_POSITIVE_SCALE: Final[float] = 32767.0

# =============================================================================
# Capture Pipeline
# =============================================================================

CAPTURE_FRAME_MS: Final[int] = 2000

# Peak amplitude (full scale = 1.0) below which a raw block is silence
CAPTURE_SILENCE_PEAK_THRESHOLD: Final[float] = 0.001

# Raw device block size handed to the capture callback
CAPTURE_BLOCK_MS: Final[int] = 100

# =============================================================================
# Playback Pipeline
# =============================================================================

PLAYBACK_MAX_CONSECUTIVE_FAILURES: Final[int] = 3
PLAYBACK_OUTPUT_GAIN: Final[float] = 1.0
PLAYBACK_CLIP_LIMIT: Final[float] = 0.95

# =============================================================================
# Turn-Taking Timing
# =============================================================================

SILENCE_TIMEOUT_MS: Final[int] = 8_000
SILENCE_TIMEOUT_MIN_MS: Final[int] = 5_000
SILENCE_TIMEOUT_MAX_MS: Final[int] = 8_000

COOLDOWN_MS: Final[int] = 15_000
WATCHDOG_MS: Final[int] = 15_000

# speak() with neither audio nor turn-complete for this long ended abnormally
SYNTHESIS_STALL_TIMEOUT_MS: Final[int] = 30_000

# Used when buffered text must be processed on re-entering LISTENING
IMMEDIATE_TIMER_MS: Final[int] = 0

# Background work (client close, in-flight requests) allowed to finish on stop
SHUTDOWN_GRACE_MS: Final[int] = 2_000

# =============================================================================
# Streaming Speech Clients (reconnect policy)
# =============================================================================

RECONNECT_DELAY_MS: Final[int] = 3_000
MAX_RECONNECT_ATTEMPTS: Final[int] = 5

LIVE_WS_MAX_MESSAGE_BYTES: Final[int] = 2**22

GEMINI_LIVE_URL: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)
GEMINI_LIVE_MODEL_DEFAULT: Final[str] = "models/gemini-2.0-flash-live-001"
GEMINI_VOICE_DEFAULT: Final[str] = "Puck"

# Synthesis requests are phrased as an instruction to read text verbatim
SPEAK_PREFIX: Final[str] = "Please say the following out loud: "

# =============================================================================
# Reply Generation
# =============================================================================

# Used when REPLY_MODEL is unset, keyed by REPLY_PROVIDER
REPLY_MODEL_DEFAULTS: Final[dict[str, str]] = {
    "gemini": "gemini-2.0-flash",
    "openai": "gpt-4o-mini",
    "groq": "llama-3.1-8b-instant",
}
GEMINI_OPENAI_BASE_URL: Final[str] = (
    "https://generativelanguage.googleapis.com/v1beta/openai/"
)
GROQ_OPENAI_BASE_URL: Final[str] = "https://api.groq.com/openai/v1"

REPLY_MAX_TOKENS: Final[int] = 150
REPLY_TEMPERATURE: Final[float] = 0.7

# Prepended to every question sent to the reply model
REPLY_PROMPT_PREFIX: Final[str] = (
    "You are being interviewed for a job. Respond naturally and concisely "
    "(1-2 sentences max) to this question: "
)

# =============================================================================
# Fixed Utterances
# =============================================================================

REPEAT_QUESTION_UTTERANCE: Final[str] = "Can you repeat the question please?"
NO_AUDIO_UTTERANCE: Final[str] = (
    "Hey, can you come again please? I didn't catch that."
)

# =============================================================================
# Duplicate-Question Detection
# =============================================================================

DUPLICATE_OVERLAP_RATIO: Final[float] = 0.6
DUPLICATE_MIN_QUESTION_CHARS: Final[int] = 10
DUPLICATE_MIN_WORD_CHARS: Final[int] = 3

# =============================================================================
# Conversation History
# =============================================================================

MAX_CONTEXT_TURNS: Final[int] = 10
MAX_CONTEXT_CHARS: Final[int] = 6_000
