"""
Voice session container.

- Owns the conversation history
- Holds the wired clients, pipelines and runtime for one conversation
- Owned and mutated by SessionGateway
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

from context.conversation import ConversationHistory
from orchestrator.enums.service import Service
from orchestrator.runtime import Runtime


def _ignore_terminal_error(service: Service, reason: str) -> None:  # pylint: disable=unused-argument
    return None


@dataclass
class VoiceSession:
    """Mutable runtime container for a single conversation."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Conversation history (append-only)
    # ------------------------------------------------------------------

    history: ConversationHistory = field(default_factory=ConversationHistory)

    # ------------------------------------------------------------------
    # Runtime (executes commands + owns authoritative state)
    # ------------------------------------------------------------------

    runtime: Runtime | None = None

    # ------------------------------------------------------------------
    # Audio pipelines
    # ------------------------------------------------------------------

    capture: Any = None    # Type: CapturePipeline in practice
    playback: Any = None   # Type: PlaybackPipeline in practice

    # ------------------------------------------------------------------
    # Service clients (concrete, side-effectful)
    # ------------------------------------------------------------------

    transcription: Any = None
    synthesis: Any = None
    reply_generator: Any = None

    # ------------------------------------------------------------------
    # Host notification
    # ------------------------------------------------------------------

    on_terminal_error: Callable[[Service, str], None] = _ignore_terminal_error

    # ------------------------------------------------------------------
    # Wiring helpers (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_clients(self, *, transcription: Any, synthesis: Any) -> None:
        """Attach the two streaming speech clients."""
        self.transcription = transcription
        self.synthesis = synthesis

    def attach_reply_generator(self, generator: Any) -> None:
        self.reply_generator = generator

    def attach_pipelines(self, *, capture: Any, playback: Any) -> None:
        self.capture = capture
        self.playback = playback

    def attach_runtime(self, runtime: Runtime) -> None:
        """
        Attach the runtime executor.

        Called by SessionGateway during session bootstrap, before any
        client or pipeline is created (they call back into it).
        """
        self.runtime = runtime

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        context: dict[str, Any] = {"session_id": self.session_id}
        if self.runtime is not None:
            context["state"] = self.runtime.state.state.value
        if self.transcription is not None:
            context["transcription_connection"] = self.transcription.state.value
        if self.synthesis is not None:
            context["synthesis_connection"] = self.synthesis.state.value
        return context
