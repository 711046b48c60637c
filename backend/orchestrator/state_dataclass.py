"""
Authoritative coordinator state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.speak_origin import SpeakOrigin
from orchestrator.enums.state import State
from orchestrator.run_ids import RunIds
from spec import COOLDOWN_MS, SILENCE_TIMEOUT_MS, WATCHDOG_MS


# =============================================================================
# Timing configuration
# =============================================================================

@dataclass(frozen=True)
class TimingConfig:
    """Timer durations, fixed for the lifetime of a coordinator."""
    silence_timeout_ms: int = SILENCE_TIMEOUT_MS
    cooldown_ms: int = COOLDOWN_MS
    watchdog_ms: int = WATCHDOG_MS


# =============================================================================
# Coordinator State
# =============================================================================

@dataclass(frozen=True)
class OrchestratorState:
    """Immutable snapshot of all coordinator-owned state."""

    state: State = State.IDLE
    timing: TimingConfig = TimingConfig()
    active_runs: RunIds = RunIds()

    # --- Transcript accumulation ---
    # Appended in arrival order; never replaced or deduplicated.
    transcript_buffer: str = ""
    buffer_started_ms: int = 0

    # Question that produced the previous reply (duplicate detection)
    last_question: str = ""

    # --- Capture gate (mirrors the last SetCaptureGate emitted) ---
    gate_open: bool = False

    # --- No-audio watchdog ---
    # watchdog_enabled: eligible to arm when LISTENING (re)starts
    # watchdog_pending: a watchdog timer is currently scheduled
    watchdog_enabled: bool = True
    watchdog_pending: bool = False

    # --- Current speak() call ---
    speak_in_flight: bool = False
    speak_origin: SpeakOrigin | None = None
    speak_text: str = ""
    speak_started_ms: int = 0
    playback_pending: bool = False
    chunks_enqueued: int = 0

    # Frames handed to playback over the whole session (drain correlation)
    frames_enqueued_total: int = 0
