"""
Session gateway.

Host-facing boundary for one conversation:
- start(): build the session, wire clients and pipelines, dispatch Start
- stop():  dispatch Stop, shut the runtime down, log history stats

Audio devices and the LLM client are injected so the same wiring runs
against real sound devices or in-memory fakes.

Contains no orchestration logic.
"""

from __future__ import annotations

import time
from typing import Any, Callable
from uuid import uuid4

from adapters.asr.gemini_live import GeminiTranscriptionClient
from adapters.live.client import ConnectFn
from adapters.llm.reply import ReplyGenerator
from adapters.tts.gemini_live import GeminiSynthesisClient
from audio.capture import AudioInputSource, CapturePipeline
from audio.playback import AudioOutputSink, PlaybackPipeline
from config import AppConfig
from observability.logger import log_event
from orchestrator.enums.service import Service
from orchestrator.events import Event, EventType, Start, Stop
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import OrchestratorState, TimingConfig
from session.voice_session import VoiceSession


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def _log_terminal_error(service: Service, reason: str) -> None:
    log_event({
        "ts_ms": _now_ms(),
        "event_type": "client_terminal_error",
        "component": "gateway",
        "service": service.value,
        "reason": reason,
    }, level="error")


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """One gateway == one conversation."""

    def __init__(
        self,
        *,
        config: AppConfig,
        llm_client: Any,  # Type: openai.AsyncOpenAI
        input_source: AudioInputSource,
        output_sink: AudioOutputSink,
        uplink_sink: AudioOutputSink | None = None,
        on_terminal_error: Callable[[Service, str], None] = _log_terminal_error,
        connect_fn: ConnectFn | None = None,
    ) -> None:
        self._config = config
        self._llm_client = llm_client
        self._input_source = input_source
        self._output_sink = output_sink
        self._uplink_sink = uplink_sink
        self._on_terminal_error = on_terminal_error
        self._connect_fn = connect_fn
        self.session: VoiceSession | None = None

    async def start(self) -> VoiceSession:
        """Build and start a conversation. Idempotent while running."""
        if self.session is not None:
            return self.session

        config = self._config
        session = VoiceSession(
            session_id=_new_session_id(),
            on_terminal_error=self._on_terminal_error,
        )

        # Create runtime first: every client and pipeline calls back into it
        runtime = Runtime(
            initial_state=OrchestratorState(
                timing=TimingConfig(
                    silence_timeout_ms=config.silence_timeout_ms,
                    cooldown_ms=config.cooldown_ms,
                    watchdog_ms=config.watchdog_ms,
                ),
            ),
            context=RuntimeExecutionContext(session=session),
        )
        session.attach_runtime(runtime)

        assert config.gemini_api_key is not None, "GEMINI_API_KEY missing"
        session.attach_clients(
            transcription=GeminiTranscriptionClient(
                emit_event=runtime.handle_event,
                api_key=config.gemini_api_key,
                model=config.gemini_model,
                connect_fn=self._connect_fn,
            ),
            synthesis=GeminiSynthesisClient(
                emit_event=runtime.handle_event,
                api_key=config.gemini_api_key,
                model=config.gemini_model,
                voice=config.gemini_voice,
                default_rate_hz=config.tts_sample_rate,
                connect_fn=self._connect_fn,
            ),
        )
        session.attach_reply_generator(
            ReplyGenerator(
                client=self._llm_client,
                model=config.reply_model,
                provider=config.reply_provider,
            )
        )
        session.attach_pipelines(
            capture=CapturePipeline(
                self._input_source,
                target_rate_hz=config.audio_sample_rate,
                frame_duration_ms=config.capture_frame_ms,
            ),
            playback=PlaybackPipeline(
                self._output_sink,
                self._uplink_sink,
                on_drained=runtime.notify_playback_drained,
                on_fatal=runtime.notify_playback_fatal,
                gain=config.output_gain,
            ),
        )

        self.session = session
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_STARTED",
            "component": "gateway",
            "reply_provider": config.reply_provider,
            "uplink": self._uplink_sink is not None,
            **session.log_context(),
        })

        await self._dispatch(Start(event_type=EventType.START, ts_ms=_now_ms()))
        return session

    async def stop(self) -> None:
        """Tear the conversation down. Safe to call more than once."""
        session = self.session
        if session is None:
            return
        self.session = None

        await self._dispatch(Stop(event_type=EventType.STOP, ts_ms=_now_ms()), session)

        runtime = session.runtime
        if runtime is not None:
            await runtime.shutdown()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_ENDED",
            "component": "gateway",
            "session_id": session.session_id,
            **session.history.stats(),
        })

    async def _dispatch(self, event: Event, session: VoiceSession | None = None) -> None:
        target = session or self.session
        if target is None or target.runtime is None:
            return
        await target.runtime.handle_event(event)
