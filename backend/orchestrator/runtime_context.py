"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution and side effects (clients, pipelines, history).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from audio.frames import AudioFrame
    from context.conversation import ConversationHistory
    from orchestrator.enums.service import Service
    from session.connection_status import ConnectionState
    from session.voice_session import VoiceSession


# ---------------------------------------------------------------------
# Streaming client Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class TranscriptionClientProtocol(Protocol):
    @property
    def state(self) -> ConnectionState: ...
    async def connect(self) -> None: ...
    async def send_audio(self, frame: AudioFrame) -> None: ...
    async def close(self) -> None: ...


@runtime_checkable
class SynthesisClientProtocol(Protocol):
    """
    Streaming synthesis client.

    Contract:
    - speak() sends exactly one request and returns once it is sent
    - Audio arrives later as SynthesisAudioChunk events
    - Exactly one SynthesisTurnComplete ends a successful speak()
    - speak() raises TransportError when the client is not READY
    """

    @property
    def state(self) -> ConnectionState: ...
    async def connect(self) -> None: ...
    async def speak(self, text: str) -> None: ...
    async def close(self) -> None: ...


@runtime_checkable
class ReplyGeneratorProtocol(Protocol):
    async def generate_reply(
        self,
        prompt_text: str,
        history: list[dict[str, str]],
    ) -> str:
        """Return reply text or raise GenerationFailed."""


# ---------------------------------------------------------------------
# Audio pipeline Protocols
# ---------------------------------------------------------------------

class CaptureProtocol(Protocol):
    def start(self, on_frame: Callable[[AudioFrame], None]) -> None: ...
    def stop(self) -> None: ...
    def set_gate(self, open_: bool) -> None: ...


class PlaybackProtocol(Protocol):
    def start(self) -> None: ...
    async def stop(self) -> None: ...
    def enqueue(self, frame: AudioFrame) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    This object provides *live views* into session-owned resources
    so Runtime does not need to synchronize or cache anything.

    Runtime is allowed to:
    - Call clients and pipelines
    - Append to conversation history
    - Notify the host

    Runtime is NOT allowed to:
    - Mutate session state directly
    - Perform orchestration decisions
    """

    def __init__(self, session: VoiceSession) -> None:
        self.session = session

    # ----------------------------
    # Session metadata
    # ----------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    # ----------------------------
    # Streaming clients
    # ----------------------------

    @property
    def transcription(self) -> TranscriptionClientProtocol:
        return self.session.transcription

    @property
    def synthesis(self) -> SynthesisClientProtocol:
        return self.session.synthesis

    @property
    def reply_generator(self) -> ReplyGeneratorProtocol:
        return self.session.reply_generator

    # ----------------------------
    # Audio pipelines
    # ----------------------------

    @property
    def capture(self) -> CaptureProtocol:
        return self.session.capture

    @property
    def playback(self) -> PlaybackProtocol:
        return self.session.playback

    # ----------------------------
    # History / host
    # ----------------------------

    @property
    def history(self) -> ConversationHistory:
        return self.session.history

    def notify_terminal_error(self, service: Service, reason: str) -> None:
        self.session.on_terminal_error(service, reason)
