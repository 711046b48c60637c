"""
Pure coordinator reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Reducer owns timer semantics; runtime must not cancel timers implicitly.

from __future__ import annotations

from dataclasses import replace
from typing import Any

from context.questions import is_same_question
from orchestrator.commands import (
    CancelTimer,
    CloseClients,
    Command,
    CommitTurn,
    ConnectClients,
    EnqueuePlayback,
    GenerateReply,
    LogEvent,
    NotifyTerminalError,
    SetCaptureGate,
    Speak,
    StartCapture,
    StartTimer,
    StopCapture,
    StopPlayback,
)
from orchestrator.enums.service import Service
from orchestrator.enums.speak_origin import SpeakOrigin
from orchestrator.enums.state import State
from orchestrator.events import (
    ClientClosed,
    ClientError,
    ClientReady,
    CooldownTimeout,
    Event,
    EventType,
    PlaybackDrained,
    PlaybackFatal,
    ReplyFailed,
    ReplyReady,
    SilenceTimeout,
    Start,
    Stop,
    SynthesisAudioChunk,
    SynthesisFailed,
    SynthesisStallTimeout,
    SynthesisTurnComplete,
    TranscriptReceived,
    WatchdogTimeout,
)
from orchestrator.run_ids import RunIds
from orchestrator.state_dataclass import OrchestratorState
from spec import (
    IMMEDIATE_TIMER_MS,
    NO_AUDIO_UTTERANCE,
    REPEAT_QUESTION_UTTERANCE,
    SYNTHESIS_STALL_TIMEOUT_MS,
)


# =============================================================================
# Timer IDs
# =============================================================================

TIMER_SILENCE = "silence_timeout"
TIMER_COOLDOWN = "cooldown"
TIMER_WATCHDOG = "no_audio_watchdog"
TIMER_SYNTHESIS_STALL = "synthesis_stall"

ALL_TIMERS = (
    TIMER_SILENCE,
    TIMER_COOLDOWN,
    TIMER_WATCHDOG,
    TIMER_SYNTHESIS_STALL,
)


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: OrchestratorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
    *,
    level: str = "info",
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "level": level,
            "component": "coordinator",
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "run_ids": {
                "reply": state.active_runs.reply,
                "speak": state.active_runs.speak,
            },
            "gate_open": state.gate_open,
            "buffer_chars": len(state.transcript_buffer),
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: OrchestratorState,
    event: Event,
    reason: str,
    *,
    level: str = "debug",
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}, level=level),)


def _state_changed(
    old: OrchestratorState,
    new: OrchestratorState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": old.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _append_text(buffer: str, text: str) -> str:
    """Append a transcript fragment, collapsing whitespace at the seam."""
    return " ".join(f"{buffer} {text}".split())


def _bump_reply(runs: RunIds) -> RunIds:
    return replace(runs, reply=runs.reply + 1)


def _bump_speak(runs: RunIds) -> RunIds:
    return replace(runs, speak=runs.speak + 1)


# =============================================================================
# Transition helpers
# =============================================================================

def _begin_speaking(
    state: OrchestratorState,
    event: Event,
    *,
    text: str,
    origin: SpeakOrigin,
    source: str,
    extra: tuple[Command, ...] = (),
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Close the capture gate and issue exactly one speak().

    A second speak while one is outstanding is an AlreadySpeaking
    contract violation: logged at warn, no-op.
    """
    if state.speak_in_flight:
        return state, _logs_last(extra + (
            _log(
                state,
                event,
                "already_speaking",
                {"origin": origin.value, "source": source},
                level="warn",
            ),
        ))

    new_runs = _bump_speak(state.active_runs)
    new_state = replace(
        state,
        state=State.SPEAKING,
        active_runs=new_runs,
        gate_open=False,
        watchdog_pending=False,
        speak_in_flight=True,
        speak_origin=origin,
        speak_text=text,
        speak_started_ms=event.ts_ms,
        playback_pending=False,
        chunks_enqueued=0,
    )

    return new_state, _logs_last(extra + (
        SetCaptureGate(open=False),
        CancelTimer(timer_id=TIMER_SILENCE),
        CancelTimer(timer_id=TIMER_WATCHDOG),
        Speak(run_id=new_runs.speak, text=text, origin=origin),
        StartTimer(
            timer_id=TIMER_SYNTHESIS_STALL,
            duration_ms=SYNTHESIS_STALL_TIMEOUT_MS,
            timeout_event_type=EventType.SYNTHESIS_STALL_TIMEOUT,
        ),
        _log(
            new_state,
            event,
            "speak",
            {
                "origin": origin.value,
                "speak_run_id": new_runs.speak,
                "text_len": len(text),
            },
        ),
        _state_changed(state, new_state, event, source),
    ))


def _enter_cooldown(
    state: OrchestratorState,
    event: Event,
    *,
    source: str,
    level: str = "info",
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Hold the gate closed for the cooldown interval.

    The watchdog becomes eligible again after this cooldown unless the
    turn being closed was the watchdog's own repeat prompt.
    """
    cmds: list[Command] = []

    if state.speak_text:
        cmds.append(
            CommitTurn(
                role="agent",
                text=state.speak_text,
                started_at_ms=state.speak_started_ms,
                ended_at_ms=event.ts_ms,
            )
        )

    rearm = state.speak_origin is not SpeakOrigin.NO_AUDIO

    new_state = replace(
        state,
        state=State.COOLDOWN,
        gate_open=False,
        watchdog_enabled=state.watchdog_enabled or rearm,
        watchdog_pending=False,
        speak_in_flight=False,
        speak_origin=None,
        speak_text="",
        speak_started_ms=0,
        playback_pending=False,
        chunks_enqueued=0,
    )

    cmds.extend([
        SetCaptureGate(open=False),
        CancelTimer(timer_id=TIMER_SYNTHESIS_STALL),
        CancelTimer(timer_id=TIMER_WATCHDOG),
        StartTimer(
            timer_id=TIMER_COOLDOWN,
            duration_ms=state.timing.cooldown_ms,
            timeout_event_type=EventType.COOLDOWN_TIMEOUT,
        ),
        _log(
            new_state,
            event,
            "enter_cooldown",
            {
                "source": source,
                "cooldown_ms": state.timing.cooldown_ms,
                "watchdog_rearms": new_state.watchdog_enabled,
            },
            level=level,
        ),
        _state_changed(state, new_state, event, source),
    ])
    return new_state, _logs_last(tuple(cmds))


def _speak_finished(
    state: OrchestratorState,
    event: Event,
    *,
    source: str,
    level: str = "info",
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    The current speak() produced all the audio it ever will.

    Cooldown starts now if nothing is left to play, otherwise on drain.
    """
    if not state.playback_pending:
        return _enter_cooldown(state, event, source=source, level=level)

    new_state = replace(state, speak_in_flight=False)
    return new_state, (
        CancelTimer(timer_id=TIMER_SYNTHESIS_STALL),
        _log(
            new_state,
            event,
            "speak_finished_awaiting_drain",
            {"source": source, "chunks": state.chunks_enqueued},
            level=level,
        ),
    )


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: OrchestratorState,
    event: Event,
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Pure reducer entrypoint.

    Dispatches on the event class; every handler returns the new state and
    the commands the runtime must execute, in order.
    """
    if isinstance(event, Start):
        return _on_start(state, event)
    if isinstance(event, Stop):
        return _on_stop(state, event)
    if isinstance(event, TranscriptReceived):
        return _on_transcript(state, event)
    if isinstance(event, SilenceTimeout):
        return _on_silence_timeout(state, event)
    if isinstance(event, WatchdogTimeout):
        return _on_watchdog_timeout(state, event)
    if isinstance(event, ReplyReady):
        return _on_reply_ready(state, event)
    if isinstance(event, ReplyFailed):
        return _on_reply_failed(state, event)
    if isinstance(event, SynthesisAudioChunk):
        return _on_synthesis_chunk(state, event)
    if isinstance(event, SynthesisTurnComplete):
        return _on_synthesis_complete(state, event)
    if isinstance(event, SynthesisFailed):
        return _on_synthesis_failed(state, event)
    if isinstance(event, SynthesisStallTimeout):
        return _on_synthesis_stall(state, event)
    if isinstance(event, PlaybackDrained):
        return _on_playback_drained(state, event)
    if isinstance(event, PlaybackFatal):
        return _on_playback_fatal(state, event)
    if isinstance(event, CooldownTimeout):
        return _on_cooldown_timeout(state, event)
    if isinstance(event, ClientReady):
        return state, (
            _log(state, event, "client_ready", {"service": event.service.value}),
        )
    if isinstance(event, ClientError):
        return _on_client_error(state, event)
    if isinstance(event, ClientClosed):
        return _on_client_closed(state, event)

    return _ignore(state, event, "unhandled_event", level="warn")


# =============================================================================
# Host control
# =============================================================================

def _on_start(
    state: OrchestratorState, event: Start
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.IDLE:
        return _ignore(state, event, "already_started", level="warn")

    new_state = replace(
        state,
        state=State.LISTENING,
        transcript_buffer="",
        buffer_started_ms=0,
        last_question="",
        gate_open=True,
        watchdog_enabled=True,
        watchdog_pending=True,
    )
    return new_state, _logs_last((
        StartCapture(),
        ConnectClients(),
        SetCaptureGate(open=True),
        StartTimer(
            timer_id=TIMER_WATCHDOG,
            duration_ms=state.timing.watchdog_ms,
            timeout_event_type=EventType.WATCHDOG_TIMEOUT,
        ),
        _log(new_state, event, "start"),
        _state_changed(state, new_state, event, "start"),
    ))


def _on_stop(
    state: OrchestratorState, event: Stop
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is State.IDLE:
        return _ignore(state, event, "not_running")

    # Bump run ids so results of in-flight work are recognized as stale.
    new_state = OrchestratorState(
        state=State.IDLE,
        timing=state.timing,
        active_runs=_bump_speak(_bump_reply(state.active_runs)),
    )
    cancels = tuple(CancelTimer(timer_id=t) for t in ALL_TIMERS)
    return new_state, _logs_last(cancels + (
        SetCaptureGate(open=False),
        StopCapture(),
        StopPlayback(),
        CloseClients(),
        _log(
            new_state,
            event,
            "stop",
            {"discarded_buffer_chars": len(state.transcript_buffer)},
        ),
        _state_changed(state, new_state, event, "stop"),
    ))


# =============================================================================
# Transcription
# =============================================================================

def _on_transcript(
    state: OrchestratorState, event: TranscriptReceived
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is State.IDLE:
        return _ignore(state, event, "idle")
    if not event.text.strip():
        return _ignore(state, event, "empty_transcript")

    started_ms = state.buffer_started_ms if state.transcript_buffer else event.ts_ms
    new_state = replace(
        state,
        transcript_buffer=_append_text(state.transcript_buffer, event.text),
        buffer_started_ms=started_ms,
    )

    if state.state is not State.LISTENING:
        # Kept for replay once LISTENING resumes; no silence timer now so
        # at most one reply generation is ever in flight.
        return new_state, (
            _log(
                new_state,
                event,
                "transcript_deferred",
                {"text_len": len(event.text), "is_final": event.is_final},
            ),
        )

    cmds: list[Command] = [
        StartTimer(
            timer_id=TIMER_SILENCE,
            duration_ms=state.timing.silence_timeout_ms,
            timeout_event_type=EventType.SILENCE_TIMEOUT,
        ),
    ]
    if state.watchdog_pending:
        new_state = replace(new_state, watchdog_pending=False)
        cmds.append(CancelTimer(timer_id=TIMER_WATCHDOG))

    cmds.append(
        _log(
            new_state,
            event,
            "transcript_buffered",
            {"text_len": len(event.text), "is_final": event.is_final},
        )
    )
    return new_state, _logs_last(tuple(cmds))


def _on_silence_timeout(
    state: OrchestratorState, event: SilenceTimeout
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.LISTENING:
        return _ignore(state, event, "not_listening")
    if not state.transcript_buffer:
        return _ignore(state, event, "empty_buffer")

    question = state.transcript_buffer
    interviewer_turn = CommitTurn(
        role="interviewer",
        text=question,
        started_at_ms=state.buffer_started_ms,
        ended_at_ms=event.ts_ms,
    )
    cleared = replace(state, transcript_buffer="", buffer_started_ms=0)

    if is_same_question(state.last_question, question):
        return _begin_speaking(
            cleared,
            event,
            text=REPEAT_QUESTION_UTTERANCE,
            origin=SpeakOrigin.REPEAT_QUESTION,
            source="duplicate_question",
            extra=(
                interviewer_turn,
                _log(
                    cleared,
                    event,
                    "duplicate_question",
                    {"question_len": len(question)},
                ),
            ),
        )

    new_runs = _bump_reply(state.active_runs)
    new_state = replace(
        cleared,
        state=State.AWAITING_REPLY,
        active_runs=new_runs,
        last_question=question,
        watchdog_pending=False,
    )
    return new_state, _logs_last((
        CancelTimer(timer_id=TIMER_WATCHDOG),
        # History is snapshotted for the generator before the question lands in it
        GenerateReply(run_id=new_runs.reply, prompt_text=question),
        interviewer_turn,
        _log(
            new_state,
            event,
            "generate_reply",
            {"reply_run_id": new_runs.reply, "question_len": len(question)},
        ),
        _state_changed(state, new_state, event, "silence_timeout"),
    ))


def _on_watchdog_timeout(
    state: OrchestratorState, event: WatchdogTimeout
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.LISTENING or not state.watchdog_pending:
        return _ignore(state, event, "stale_watchdog")
    if state.transcript_buffer:
        return _ignore(
            replace(state, watchdog_pending=False), event, "transcript_pending"
        )

    disarmed = replace(state, watchdog_enabled=False, watchdog_pending=False)
    return _begin_speaking(
        disarmed,
        event,
        text=NO_AUDIO_UTTERANCE,
        origin=SpeakOrigin.NO_AUDIO,
        source="watchdog",
        extra=(
            _log(
                disarmed,
                event,
                "watchdog_fired",
                {"watchdog_ms": state.timing.watchdog_ms},
                level="warn",
            ),
        ),
    )


# =============================================================================
# Reply generation
# =============================================================================

def _on_reply_ready(
    state: OrchestratorState, event: ReplyReady
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if event.run_id != state.active_runs.reply:
        return _ignore(state, event, "stale_reply")
    if state.state is not State.AWAITING_REPLY:
        return _ignore(state, event, "not_awaiting_reply", level="warn")

    text = event.text.strip()
    if not text:
        return _enter_cooldown(state, event, source="empty_reply", level="warn")

    return _begin_speaking(
        state,
        event,
        text=text,
        origin=SpeakOrigin.REPLY,
        source="reply_ready",
    )


def _on_reply_failed(
    state: OrchestratorState, event: ReplyFailed
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if event.run_id != state.active_runs.reply:
        return _ignore(state, event, "stale_reply")
    if state.state is not State.AWAITING_REPLY:
        return _ignore(state, event, "not_awaiting_reply", level="warn")

    new_state, cmds = _enter_cooldown(state, event, source="reply_failed", level="warn")
    return new_state, _logs_last(cmds + (
        _log(new_state, event, "reply_failed", {"reason": event.reason}, level="warn"),
    ))


# =============================================================================
# Synthesis
# =============================================================================

def _on_synthesis_chunk(
    state: OrchestratorState, event: SynthesisAudioChunk
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.SPEAKING or not state.speak_in_flight:
        return _ignore(state, event, "no_speak_in_flight")

    new_state = replace(
        state,
        playback_pending=True,
        chunks_enqueued=state.chunks_enqueued + 1,
        frames_enqueued_total=state.frames_enqueued_total + 1,
    )
    return new_state, (
        EnqueuePlayback(frame=event.frame),
        StartTimer(
            timer_id=TIMER_SYNTHESIS_STALL,
            duration_ms=SYNTHESIS_STALL_TIMEOUT_MS,
            timeout_event_type=EventType.SYNTHESIS_STALL_TIMEOUT,
        ),
        _log(
            new_state,
            event,
            "enqueue_playback",
            {
                "chunk": new_state.chunks_enqueued,
                "bytes": len(event.frame.pcm_bytes),
            },
            level="debug",
        ),
    )


def _on_synthesis_complete(
    state: OrchestratorState, event: SynthesisTurnComplete
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.SPEAKING or not state.speak_in_flight:
        return _ignore(state, event, "no_speak_in_flight")
    return _speak_finished(state, event, source="synthesis_complete")


def _on_synthesis_failed(
    state: OrchestratorState, event: SynthesisFailed
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.SPEAKING or not state.speak_in_flight:
        return _ignore(state, event, "no_speak_in_flight")
    new_state, cmds = _speak_finished(
        state, event, source="synthesis_failed", level="warn"
    )
    return new_state, _logs_last(cmds + (
        _log(new_state, event, "synthesis_failed", {"reason": event.reason}, level="warn"),
    ))


def _on_synthesis_stall(
    state: OrchestratorState, event: SynthesisStallTimeout
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if (
        event.speak_run_id != state.active_runs.speak
        or state.state is not State.SPEAKING
        or not state.speak_in_flight
    ):
        return _ignore(state, event, "stale_stall_timer")
    return _speak_finished(state, event, source="synthesis_stall", level="warn")


# =============================================================================
# Playback
# =============================================================================

def _on_playback_drained(
    state: OrchestratorState, event: PlaybackDrained
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.SPEAKING:
        return _ignore(state, event, "not_speaking")

    if event.frames_enqueued < state.frames_enqueued_total:
        # Posted before the latest chunk was queued
        return _ignore(state, event, "stale_drain")

    if state.speak_in_flight:
        # Playback caught up with synthesis; more audio may still arrive.
        new_state = replace(state, playback_pending=False)
        return new_state, (
            _log(new_state, event, "drained_while_synthesizing", level="debug"),
        )

    return _enter_cooldown(state, event, source="playback_drained")


def _on_playback_fatal(
    state: OrchestratorState, event: PlaybackFatal
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.SPEAKING:
        return _ignore(state, event, "not_speaking")

    new_state, cmds = _enter_cooldown(
        state, event, source="playback_fatal", level="warn"
    )
    return new_state, _logs_last(cmds + (
        _log(new_state, event, "playback_fatal", {"reason": event.reason}, level="error"),
    ))


# =============================================================================
# Cooldown
# =============================================================================

def _on_cooldown_timeout(
    state: OrchestratorState, event: CooldownTimeout
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    if state.state is not State.COOLDOWN:
        return _ignore(state, event, "not_in_cooldown")

    new_state = replace(state, state=State.LISTENING, gate_open=True)
    cmds: list[Command] = [SetCaptureGate(open=True)]

    if new_state.transcript_buffer:
        # Text that arrived during SPEAKING/COOLDOWN is processed right away.
        cmds.append(
            StartTimer(
                timer_id=TIMER_SILENCE,
                duration_ms=IMMEDIATE_TIMER_MS,
                timeout_event_type=EventType.SILENCE_TIMEOUT,
            )
        )
        cmds.append(
            _log(
                new_state,
                event,
                "replay_buffered_text",
                {"buffer_chars": len(new_state.transcript_buffer)},
            )
        )
    elif new_state.watchdog_enabled:
        new_state = replace(new_state, watchdog_pending=True)
        cmds.append(
            StartTimer(
                timer_id=TIMER_WATCHDOG,
                duration_ms=state.timing.watchdog_ms,
                timeout_event_type=EventType.WATCHDOG_TIMEOUT,
            )
        )

    cmds.append(_state_changed(state, new_state, event, "cooldown_elapsed"))
    return new_state, _logs_last(tuple(cmds))


# =============================================================================
# Streaming clients
# =============================================================================

def _on_client_error(
    state: OrchestratorState, event: ClientError
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    details = {
        "service": event.service.value,
        "reason": event.reason,
        "terminal": event.terminal,
    }
    if not event.terminal:
        return state, (_log(state, event, "client_error", details, level="warn"),)

    cmds: tuple[Command, ...] = (
        NotifyTerminalError(service=event.service, reason=event.reason),
        _log(state, event, "client_terminal_error", details, level="error"),
    )
    if event.service is Service.SYNTHESIS and state.speak_in_flight:
        new_state, more = _speak_finished(
            state, event, source="synthesis_client_lost", level="warn"
        )
        return new_state, _logs_last(cmds + more)
    return state, cmds


def _on_client_closed(
    state: OrchestratorState, event: ClientClosed
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    details = {"service": event.service.value, "expected": event.expected}
    if event.expected:
        return state, (_log(state, event, "client_closed", details),)

    log = _log(state, event, "client_connection_lost", details, level="warn")
    if (
        event.service is Service.SYNTHESIS
        and state.state is State.SPEAKING
        and state.speak_in_flight
    ):
        # The turn-complete marker for this speak() can no longer arrive.
        new_state, cmds = _speak_finished(
            state, event, source="synthesis_connection_lost", level="warn"
        )
        return new_state, _logs_last(cmds + (log,))
    return state, (log,)
