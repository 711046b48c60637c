"""
Side-effect command definitions for the coordinator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from audio.frames import AudioFrame
from context.conversation import Role
from orchestrator.enums.service import Service
from orchestrator.enums.speak_origin import SpeakOrigin
from orchestrator.events import EventType

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Streaming clients
    CONNECT_CLIENTS = "CONNECT_CLIENTS"
    CLOSE_CLIENTS = "CLOSE_CLIENTS"

    # Capture
    START_CAPTURE = "START_CAPTURE"
    STOP_CAPTURE = "STOP_CAPTURE"
    SET_CAPTURE_GATE = "SET_CAPTURE_GATE"

    # Reply generation
    GENERATE_REPLY = "GENERATE_REPLY"

    # Synthesis / playback
    SPEAK = "SPEAK"
    ENQUEUE_PLAYBACK = "ENQUEUE_PLAYBACK"
    STOP_PLAYBACK = "STOP_PLAYBACK"

    # History
    COMMIT_TURN = "COMMIT_TURN"

    # Host notification
    NOTIFY_TERMINAL_ERROR = "NOTIFY_TERMINAL_ERROR"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Streaming Client Commands
# =============================================================================

@dataclass(frozen=True)
class ConnectClients(Command):
    """Open both streaming speech clients."""
    command_type: CommandType = CommandType.CONNECT_CLIENTS


@dataclass(frozen=True)
class CloseClients(Command):
    """Close both streaming speech clients (suppresses reconnect)."""
    command_type: CommandType = CommandType.CLOSE_CLIENTS


# =============================================================================
# Capture Commands
# =============================================================================

@dataclass(frozen=True)
class StartCapture(Command):
    """Start the capture pipeline, forwarding frames to transcription."""
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class StopCapture(Command):
    """Stop the capture pipeline and release the input source."""
    command_type: CommandType = CommandType.STOP_CAPTURE


@dataclass(frozen=True)
class SetCaptureGate(Command):
    """Open or close the feedback-loop gate."""
    open: bool
    command_type: CommandType = CommandType.SET_CAPTURE_GATE


# =============================================================================
# Reply Commands
# =============================================================================

@dataclass(frozen=True)
class GenerateReply(Command):
    """Ask the reply generator for an answer to prompt_text."""
    run_id: int
    prompt_text: str
    command_type: CommandType = CommandType.GENERATE_REPLY


# =============================================================================
# Synthesis / Playback Commands
# =============================================================================

@dataclass(frozen=True)
class Speak(Command):
    """Send one speak() request to the synthesis client."""
    run_id: int
    text: str
    origin: SpeakOrigin
    command_type: CommandType = CommandType.SPEAK


@dataclass(frozen=True)
class EnqueuePlayback(Command):
    """Append one synthesized frame to the playback FIFO."""
    frame: AudioFrame
    command_type: CommandType = CommandType.ENQUEUE_PLAYBACK


@dataclass(frozen=True)
class StopPlayback(Command):
    """Abort queued audio and stop the playback worker."""
    command_type: CommandType = CommandType.STOP_PLAYBACK


# =============================================================================
# History Commands
# =============================================================================

@dataclass(frozen=True)
class CommitTurn(Command):
    """Append a completed turn to the conversation history."""
    role: Role
    text: str
    started_at_ms: int
    ended_at_ms: int
    command_type: CommandType = CommandType.COMMIT_TURN


# =============================================================================
# Host Notification Commands
# =============================================================================

@dataclass(frozen=True)
class NotifyTerminalError(Command):
    """A client exhausted its reconnect budget; surface it to the host."""
    service: Service
    reason: str
    command_type: CommandType = CommandType.NOTIFY_TERMINAL_ERROR


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start (or restart) a named timer.

    On expiration, the runtime must inject the specified timeout event.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
