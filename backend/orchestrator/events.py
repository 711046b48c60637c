"""
Unified event definitions for the coordinator reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Timer events are constructed by the runtime; reply events carry run_id
for stale gating after a stop/start cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from audio.frames import AudioFrame
from orchestrator.enums.service import Service


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Host control
    # ------------------------------------------------------------------
    START = "START"
    STOP = "STOP"

    # ------------------------------------------------------------------
    # Streaming clients (connection lifecycle)
    # ------------------------------------------------------------------
    CLIENT_READY = "CLIENT_READY"
    CLIENT_ERROR = "CLIENT_ERROR"
    CLIENT_CLOSED = "CLIENT_CLOSED"

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------
    TRANSCRIPT_RECEIVED = "TRANSCRIPT_RECEIVED"

    # ------------------------------------------------------------------
    # Reply generation
    # ------------------------------------------------------------------
    REPLY_READY = "REPLY_READY"
    REPLY_FAILED = "REPLY_FAILED"

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------
    SYNTHESIS_AUDIO_CHUNK = "SYNTHESIS_AUDIO_CHUNK"
    SYNTHESIS_TURN_COMPLETE = "SYNTHESIS_TURN_COMPLETE"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    PLAYBACK_DRAINED = "PLAYBACK_DRAINED"
    PLAYBACK_FATAL = "PLAYBACK_FATAL"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    SILENCE_TIMEOUT = "SILENCE_TIMEOUT"
    COOLDOWN_TIMEOUT = "COOLDOWN_TIMEOUT"
    WATCHDOG_TIMEOUT = "WATCHDOG_TIMEOUT"
    SYNTHESIS_STALL_TIMEOUT = "SYNTHESIS_STALL_TIMEOUT"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class ServiceEvent(Event):
    """Base class for events produced by an external service adapter."""

    service: Service


# =============================================================================
# Host Control Events
# =============================================================================

@dataclass(frozen=True)
class Start(Event):
    """Host asked the coordinator to begin the conversation loop."""


@dataclass(frozen=True)
class Stop(Event):
    """Host asked the coordinator to tear everything down."""


# =============================================================================
# Streaming Client Events
# =============================================================================

@dataclass(frozen=True)
class ClientReady(ServiceEvent):
    """The service acknowledged session setup."""


@dataclass(frozen=True)
class ClientError(ServiceEvent):
    """
    A streaming client failed.

    terminal=True means reconnect attempts are exhausted and the client
    will not try again; the host decides whether to restart.
    """
    reason: str
    terminal: bool = False


@dataclass(frozen=True)
class ClientClosed(ServiceEvent):
    """Connection closed. expected=False means a reconnect is scheduled."""
    expected: bool = True


# =============================================================================
# Transcription Events
# =============================================================================

@dataclass(frozen=True)
class TranscriptReceived(ServiceEvent):
    """
    One speech-recognition update.

    Treated as incremental text to append, never as a replacement.
    """
    text: str
    is_final: bool = False


# =============================================================================
# Reply Generation Events
# =============================================================================

@dataclass(frozen=True)
class ReplyReady(ServiceEvent):
    """Reply generator returned text for run_id."""
    run_id: int
    text: str


@dataclass(frozen=True)
class ReplyFailed(ServiceEvent):
    """Reply generator failed for run_id (GenerationFailed)."""
    run_id: int
    reason: str


# =============================================================================
# Synthesis Events
# =============================================================================

@dataclass(frozen=True)
class SynthesisAudioChunk(ServiceEvent):
    """One decoded audio chunk of the current speak() call."""
    frame: AudioFrame


@dataclass(frozen=True)
class SynthesisTurnComplete(ServiceEvent):
    """Service marked the end of the current speak() call."""


@dataclass(frozen=True)
class SynthesisFailed(ServiceEvent):
    """speak() could not be sent (client not ready or send failed)."""
    reason: str


# =============================================================================
# Playback Events
# =============================================================================

@dataclass(frozen=True)
class PlaybackDrained(Event):
    """
    Playback queue emptied after playing at least one frame.

    frames_enqueued is the pipeline's running enqueue count at the moment
    it drained; a lower count than the coordinator has issued means more
    audio was queued after this drain.
    """
    frames_enqueued: int


@dataclass(frozen=True)
class PlaybackFatal(Event):
    """Consecutive playback failures aborted the remaining queue."""
    reason: str


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class SilenceTimeout(Event):
    """No transcript text for the silence window; utterance is complete."""


@dataclass(frozen=True)
class CooldownTimeout(Event):
    """Post-speech cooldown elapsed."""


@dataclass(frozen=True)
class WatchdogTimeout(Event):
    """No transcript at all since LISTENING began."""


@dataclass(frozen=True)
class SynthesisStallTimeout(Event):
    """No synthesis audio or turn-complete marker within the stall window."""
    speak_run_id: int
