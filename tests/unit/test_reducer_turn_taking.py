# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

from audio.frames import AudioFrame
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
from orchestrator.reducer import (
    TIMER_COOLDOWN,
    TIMER_SILENCE,
    TIMER_SYNTHESIS_STALL,
    TIMER_WATCHDOG,
    reduce,
)
from orchestrator.state_dataclass import OrchestratorState
from spec import IMMEDIATE_TIMER_MS, NO_AUDIO_UTTERANCE, REPEAT_QUESTION_UTTERANCE


# ---------------------------------------------------------------------
# Event helpers (mirror runtime construction)
# ---------------------------------------------------------------------

def start(ts_ms: int = 0) -> Start:
    return Start(ts_ms=ts_ms, event_type=EventType.START)


def stop(ts_ms: int = 0) -> Stop:
    return Stop(ts_ms=ts_ms, event_type=EventType.STOP)


def transcript(text: str, ts_ms: int = 0) -> TranscriptReceived:
    return TranscriptReceived(
        ts_ms=ts_ms,
        event_type=EventType.TRANSCRIPT_RECEIVED,
        service=Service.TRANSCRIPTION,
        text=text,
    )


def silence(ts_ms: int = 0) -> SilenceTimeout:
    return SilenceTimeout(ts_ms=ts_ms, event_type=EventType.SILENCE_TIMEOUT)


def watchdog(ts_ms: int = 0) -> WatchdogTimeout:
    return WatchdogTimeout(ts_ms=ts_ms, event_type=EventType.WATCHDOG_TIMEOUT)


def cooldown_done(ts_ms: int = 0) -> CooldownTimeout:
    return CooldownTimeout(ts_ms=ts_ms, event_type=EventType.COOLDOWN_TIMEOUT)


def reply_ready(run_id: int, text: str = "I like building things.") -> ReplyReady:
    return ReplyReady(
        ts_ms=0,
        event_type=EventType.REPLY_READY,
        service=Service.REPLY,
        run_id=run_id,
        text=text,
    )


def reply_failed(run_id: int) -> ReplyFailed:
    return ReplyFailed(
        ts_ms=0,
        event_type=EventType.REPLY_FAILED,
        service=Service.REPLY,
        run_id=run_id,
        reason="boom",
    )


def chunk(seq: int = 1) -> SynthesisAudioChunk:
    return SynthesisAudioChunk(
        ts_ms=0,
        event_type=EventType.SYNTHESIS_AUDIO_CHUNK,
        service=Service.SYNTHESIS,
        frame=AudioFrame(pcm_bytes=b"\x01\x00" * 240, sample_rate_hz=24000, sequence_num=seq),
    )


def turn_complete() -> SynthesisTurnComplete:
    return SynthesisTurnComplete(
        ts_ms=0,
        event_type=EventType.SYNTHESIS_TURN_COMPLETE,
        service=Service.SYNTHESIS,
    )


def drained(frames_enqueued: int) -> PlaybackDrained:
    return PlaybackDrained(
        ts_ms=0,
        event_type=EventType.PLAYBACK_DRAINED,
        frames_enqueued=frames_enqueued,
    )


# ---------------------------------------------------------------------
# Command helpers
# ---------------------------------------------------------------------

def of_type(commands: tuple[Command, ...], cls: type) -> list:
    return [c for c in commands if isinstance(c, cls)]


def decisions(commands: tuple[Command, ...]) -> list[str]:
    return [c.event["decision"] for c in commands if isinstance(c, LogEvent)]


def started_timers(commands: tuple[Command, ...]) -> dict[str, int]:
    return {c.timer_id: c.duration_ms for c in of_type(commands, StartTimer)}


def cancelled_timers(commands: tuple[Command, ...]) -> set[str]:
    return {c.timer_id for c in of_type(commands, CancelTimer)}


def run(state: OrchestratorState, *events: Event) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """Feed events in order; return final state and all commands emitted."""
    all_cmds: list[Command] = []
    for event in events:
        state, cmds = reduce(state, event)
        all_cmds.extend(cmds)
    return state, tuple(all_cmds)


def listening() -> OrchestratorState:
    state, _ = reduce(OrchestratorState(), start())
    return state


def speaking_reply() -> OrchestratorState:
    state, _ = run(listening(), transcript("Tell me about yourself"), silence())
    state, _ = reduce(state, reply_ready(state.active_runs.reply))
    return state


# ---------------------------------------------------------------------
# Start / Stop
# ---------------------------------------------------------------------

def test_start_enters_listening_and_arms_watchdog():
    state, cmds = reduce(OrchestratorState(), start())

    assert state.state is State.LISTENING
    assert state.gate_open is True
    assert state.watchdog_pending is True
    assert of_type(cmds, StartCapture)
    assert of_type(cmds, ConnectClients)
    assert of_type(cmds, SetCaptureGate)[0].open is True
    assert TIMER_WATCHDOG in started_timers(cmds)


def test_start_twice_is_ignored():
    state = listening()
    new_state, cmds = reduce(state, start())

    assert new_state == state
    assert decisions(cmds) == ["ignore"]


def test_stop_from_speaking_tears_everything_down():
    state = speaking_reply()
    new_state, cmds = reduce(state, stop())

    assert new_state.state is State.IDLE
    assert new_state.transcript_buffer == ""
    assert new_state.active_runs.reply > state.active_runs.reply
    assert new_state.active_runs.speak > state.active_runs.speak
    assert {TIMER_SILENCE, TIMER_COOLDOWN, TIMER_WATCHDOG, TIMER_SYNTHESIS_STALL} <= cancelled_timers(cmds)
    assert of_type(cmds, StopCapture)
    assert of_type(cmds, StopPlayback)
    assert of_type(cmds, CloseClients)


def test_stop_when_idle_is_ignored():
    state, cmds = reduce(OrchestratorState(), stop())
    assert state.state is State.IDLE
    assert decisions(cmds) == ["ignore"]


# ---------------------------------------------------------------------
# Transcript accumulation and silence
# ---------------------------------------------------------------------

def test_transcripts_append_and_restart_silence_timer():
    state, cmds = run(listening(), transcript("Tell me", ts_ms=100), transcript(" about yourself", ts_ms=200))

    assert state.transcript_buffer == "Tell me about yourself"
    assert state.buffer_started_ms == 100
    assert len(of_type(cmds, StartTimer)) == 2
    assert all(c.timer_id == TIMER_SILENCE for c in of_type(cmds, StartTimer))


def test_first_transcript_cancels_watchdog():
    state, cmds = reduce(listening(), transcript("Hello there"))

    assert state.watchdog_pending is False
    assert TIMER_WATCHDOG in cancelled_timers(cmds)


def test_silence_timeout_generates_exactly_one_reply():
    state, _ = reduce(listening(), transcript("What is your greatest strength?", ts_ms=10))
    state, cmds = reduce(state, silence(ts_ms=9000))

    assert state.state is State.AWAITING_REPLY
    assert state.transcript_buffer == ""
    assert state.last_question == "What is your greatest strength?"

    replies = of_type(cmds, GenerateReply)
    assert len(replies) == 1
    assert replies[0].run_id == state.active_runs.reply
    assert replies[0].prompt_text == "What is your greatest strength?"

    turns = of_type(cmds, CommitTurn)
    assert [(t.role, t.started_at_ms, t.ended_at_ms) for t in turns] == [("interviewer", 10, 9000)]

    # Snapshot for the generator happens before the question joins history
    assert cmds.index(replies[0]) < cmds.index(turns[0])


def test_silence_timeout_with_empty_buffer_is_ignored():
    state, cmds = reduce(listening(), silence())
    assert state.state is State.LISTENING
    assert not of_type(cmds, GenerateReply)


def test_transcript_while_awaiting_reply_is_buffered_without_timer():
    state, _ = run(listening(), transcript("First question here"), silence())
    state, cmds = reduce(state, transcript("And also this"))

    assert state.state is State.AWAITING_REPLY
    assert state.transcript_buffer == "And also this"
    assert not of_type(cmds, StartTimer)

    # A late silence timeout can never start a second generation
    state, cmds = reduce(state, silence())
    assert not of_type(cmds, GenerateReply)


def test_empty_transcript_is_ignored():
    state = listening()
    new_state, cmds = reduce(state, transcript("   "))
    assert new_state == state
    assert decisions(cmds) == ["ignore"]


# ---------------------------------------------------------------------
# Reply -> speak -> playback -> cooldown
# ---------------------------------------------------------------------

def test_reply_ready_closes_gate_and_speaks_once():
    state, _ = run(listening(), transcript("Why this company?"), silence())
    state, cmds = reduce(state, reply_ready(state.active_runs.reply, "  Because I love it.  "))

    assert state.state is State.SPEAKING
    assert state.gate_open is False
    assert state.speak_in_flight is True

    speaks = of_type(cmds, Speak)
    assert len(speaks) == 1
    assert speaks[0].text == "Because I love it."
    assert speaks[0].origin is SpeakOrigin.REPLY

    gate = of_type(cmds, SetCaptureGate)
    assert gate and gate[0].open is False
    assert cmds.index(gate[0]) < cmds.index(speaks[0])
    assert TIMER_SYNTHESIS_STALL in started_timers(cmds)


def test_stale_reply_is_ignored():
    state, _ = run(listening(), transcript("Why this company?"), silence())
    new_state, cmds = reduce(state, reply_ready(state.active_runs.reply - 1))

    assert new_state == state
    assert not of_type(cmds, Speak)


def test_reply_after_stop_is_ignored():
    state, _ = run(listening(), transcript("Why this company?"), silence())
    old_run = state.active_runs.reply
    state, _ = run(state, stop(), start())
    new_state, cmds = reduce(state, reply_ready(old_run))

    assert new_state.state is State.LISTENING
    assert not of_type(cmds, Speak)


def test_empty_reply_goes_to_cooldown():
    state, _ = run(listening(), transcript("Why this company?"), silence())
    state, cmds = reduce(state, reply_ready(state.active_runs.reply, "   "))

    assert state.state is State.COOLDOWN
    assert not of_type(cmds, Speak)
    assert TIMER_COOLDOWN in started_timers(cmds)


def test_reply_failure_goes_to_cooldown():
    state, _ = run(listening(), transcript("Why this company?"), silence())
    state, cmds = reduce(state, reply_failed(state.active_runs.reply))

    assert state.state is State.COOLDOWN
    assert state.gate_open is False
    assert "reply_failed" in decisions(cmds)


def test_chunks_are_enqueued_in_order():
    state, cmds = run(speaking_reply(), chunk(1), chunk(2), chunk(3))

    enqueued = [c.frame.sequence_num for c in of_type(cmds, EnqueuePlayback)]
    assert enqueued == [1, 2, 3]
    assert state.chunks_enqueued == 3
    assert state.playback_pending is True


def test_turn_complete_waits_for_drain_before_cooldown():
    state, _ = run(speaking_reply(), chunk(1), chunk(2))
    state, cmds = reduce(state, turn_complete())

    assert state.state is State.SPEAKING
    assert state.speak_in_flight is False
    assert TIMER_COOLDOWN not in started_timers(cmds)

    state, cmds = reduce(state, drained(2))
    assert state.state is State.COOLDOWN
    assert started_timers(cmds)[TIMER_COOLDOWN] == state.timing.cooldown_ms

    agent_turns = [t for t in of_type(cmds, CommitTurn) if t.role == "agent"]
    assert len(agent_turns) == 1
    assert agent_turns[0].text == "I like building things."


def test_drain_before_turn_complete_keeps_speaking():
    state, _ = run(speaking_reply(), chunk(1), drained(1))
    assert state.state is State.SPEAKING
    assert state.playback_pending is False

    state, _ = reduce(state, turn_complete())
    assert state.state is State.COOLDOWN


def test_drain_posted_before_a_later_chunk_is_ignored():
    state, _ = run(speaking_reply(), chunk(1))
    # Pipeline drained after one frame, but chunk 2 is handled first
    stale = drained(1)
    state, _ = run(state, chunk(2), stale)
    assert state.playback_pending is True

    state, cmds = reduce(state, turn_complete())
    assert state.state is State.SPEAKING
    assert TIMER_COOLDOWN not in started_timers(cmds)

    state, cmds = reduce(state, drained(2))
    assert state.state is State.COOLDOWN
    assert started_timers(cmds)[TIMER_COOLDOWN] == state.timing.cooldown_ms


def test_stale_drain_is_logged_as_ignored():
    state, _ = run(speaking_reply(), chunk(1), chunk(2), turn_complete())
    state, cmds = reduce(state, drained(1))

    assert state.state is State.SPEAKING
    [log] = of_type(cmds, LogEvent)
    assert log.event["decision"] == "ignore"
    assert log.event["details"] == {"reason": "stale_drain"}


def test_drain_count_spans_speaks_within_a_session():
    state, _ = run(speaking_reply(), chunk(1), chunk(2), turn_complete(), drained(2))
    assert state.state is State.COOLDOWN
    assert state.chunks_enqueued == 0
    assert state.frames_enqueued_total == 2


def test_turn_complete_without_audio_goes_straight_to_cooldown():
    state, _ = reduce(speaking_reply(), turn_complete())
    assert state.state is State.COOLDOWN


def test_playback_fatal_goes_to_cooldown():
    state, _ = run(speaking_reply(), chunk(1))
    state, cmds = reduce(
        state,
        PlaybackFatal(ts_ms=0, event_type=EventType.PLAYBACK_FATAL, reason="device gone"),
    )

    assert state.state is State.COOLDOWN
    assert "playback_fatal" in decisions(cmds)


def test_synthesis_failure_goes_to_cooldown():
    state, _ = reduce(
        speaking_reply(),
        SynthesisFailed(
            ts_ms=0,
            event_type=EventType.SYNTHESIS_FAILED,
            service=Service.SYNTHESIS,
            reason="not ready",
        ),
    )
    assert state.state is State.COOLDOWN


def test_stall_timeout_for_current_speak_ends_it():
    state = speaking_reply()
    new_state, _ = reduce(
        state,
        SynthesisStallTimeout(
            ts_ms=0,
            event_type=EventType.SYNTHESIS_STALL_TIMEOUT,
            speak_run_id=state.active_runs.speak,
        ),
    )
    assert new_state.state is State.COOLDOWN


def test_stale_stall_timeout_is_ignored():
    state = speaking_reply()
    new_state, _ = reduce(
        state,
        SynthesisStallTimeout(
            ts_ms=0,
            event_type=EventType.SYNTHESIS_STALL_TIMEOUT,
            speak_run_id=state.active_runs.speak - 1,
        ),
    )
    assert new_state == state


def test_synthesis_connection_lost_mid_speak_ends_it():
    state, _ = reduce(
        speaking_reply(),
        ClientClosed(
            ts_ms=0,
            event_type=EventType.CLIENT_CLOSED,
            service=Service.SYNTHESIS,
            expected=False,
        ),
    )
    assert state.state is State.COOLDOWN


def test_chunk_outside_speaking_is_ignored():
    state = listening()
    new_state, cmds = reduce(state, chunk(1))
    assert new_state == state
    assert not of_type(cmds, EnqueuePlayback)


# ---------------------------------------------------------------------
# Cooldown
# ---------------------------------------------------------------------

def test_cooldown_keeps_gate_closed_then_reopens():
    state, _ = reduce(speaking_reply(), turn_complete())
    assert state.state is State.COOLDOWN
    assert state.gate_open is False

    state, cmds = reduce(state, cooldown_done())
    assert state.state is State.LISTENING
    assert state.gate_open is True
    assert of_type(cmds, SetCaptureGate)[0].open is True
    assert TIMER_WATCHDOG in started_timers(cmds)


def test_text_buffered_during_speaking_is_replayed_after_cooldown():
    state, _ = run(speaking_reply(), transcript("Next question please"), turn_complete())
    assert state.transcript_buffer == "Next question please"

    state, cmds = reduce(state, cooldown_done())
    assert state.state is State.LISTENING
    assert started_timers(cmds) == {TIMER_SILENCE: IMMEDIATE_TIMER_MS}

    state, cmds = reduce(state, silence())
    assert state.state is State.AWAITING_REPLY
    assert of_type(cmds, GenerateReply)[0].prompt_text == "Next question please"


def test_cooldown_timeout_outside_cooldown_is_ignored():
    state = listening()
    new_state, _ = reduce(state, cooldown_done())
    assert new_state == state


# ---------------------------------------------------------------------
# Duplicate question
# ---------------------------------------------------------------------

def test_repeated_question_asks_for_repeat_instead_of_generating():
    state, _ = run(speaking_reply(), turn_complete(), cooldown_done())
    state, cmds = run(
        state,
        transcript("Here's the question one more time: tell me about yourself."),
        silence(),
    )

    assert not of_type(cmds, GenerateReply)
    speaks = of_type(cmds, Speak)
    assert len(speaks) == 1
    assert speaks[0].text == REPEAT_QUESTION_UTTERANCE
    assert speaks[0].origin is SpeakOrigin.REPEAT_QUESTION
    assert state.state is State.SPEAKING
    assert state.last_question == "Tell me about yourself"


def test_different_question_generates_reply():
    state, _ = run(speaking_reply(), turn_complete(), cooldown_done())
    state, cmds = run(state, transcript("What is your favorite color?"), silence())

    assert len(of_type(cmds, GenerateReply)) == 1
    assert state.state is State.AWAITING_REPLY


# ---------------------------------------------------------------------
# No-audio watchdog
# ---------------------------------------------------------------------

def test_watchdog_speaks_no_audio_prompt():
    state, cmds = reduce(listening(), watchdog())

    speaks = of_type(cmds, Speak)
    assert len(speaks) == 1
    assert speaks[0].text == NO_AUDIO_UTTERANCE
    assert speaks[0].origin is SpeakOrigin.NO_AUDIO
    assert state.state is State.SPEAKING
    assert state.watchdog_enabled is False


def test_watchdog_not_rearmed_after_its_own_prompt():
    state, _ = run(listening(), watchdog(), turn_complete())
    assert state.state is State.COOLDOWN

    state, cmds = reduce(state, cooldown_done())
    assert state.state is State.LISTENING
    assert TIMER_WATCHDOG not in started_timers(cmds)
    assert state.watchdog_pending is False

    # Remains silent forever: at most one prompt
    state, cmds = reduce(state, watchdog())
    assert not of_type(cmds, Speak)


def test_watchdog_rearmed_after_a_full_reply_cooldown():
    state, _ = run(listening(), watchdog(), turn_complete(), cooldown_done())
    state, _ = run(state, transcript("Tell me about yourself"), silence())
    state, _ = run(state, reply_ready(state.active_runs.reply), turn_complete())
    state, cmds = reduce(state, cooldown_done())

    assert TIMER_WATCHDOG in started_timers(cmds)
    assert state.watchdog_pending is True


def test_watchdog_after_transcript_is_stale():
    state, _ = reduce(listening(), transcript("Hi there, welcome"))
    new_state, cmds = reduce(state, watchdog())
    assert new_state == state
    assert not of_type(cmds, Speak)


# ---------------------------------------------------------------------
# At most one speak
# ---------------------------------------------------------------------

def test_second_speak_while_in_flight_is_a_warned_noop():
    state = speaking_reply()
    # Force the watchdog path while a speak is outstanding
    forced = replace(state, state=State.LISTENING, watchdog_pending=True)
    new_state, cmds = reduce(forced, watchdog())

    assert not of_type(cmds, Speak)
    warns = [c for c in cmds if isinstance(c, LogEvent) and c.event["decision"] == "already_speaking"]
    assert warns and warns[0].event["level"] == "warn"
    assert new_state.active_runs.speak == state.active_runs.speak


# ---------------------------------------------------------------------
# Client errors
# ---------------------------------------------------------------------

def test_terminal_client_error_notifies_host():
    state = listening()
    new_state, cmds = reduce(
        state,
        ClientError(
            ts_ms=0,
            event_type=EventType.CLIENT_ERROR,
            service=Service.TRANSCRIPTION,
            reason="reconnect attempts exhausted",
            terminal=True,
        ),
    )

    notes = of_type(cmds, NotifyTerminalError)
    assert len(notes) == 1
    assert notes[0].service is Service.TRANSCRIPTION
    assert new_state.state is State.LISTENING


def test_non_terminal_client_error_only_logs():
    state = listening()
    new_state, cmds = reduce(
        state,
        ClientError(
            ts_ms=0,
            event_type=EventType.CLIENT_ERROR,
            service=Service.SYNTHESIS,
            reason="connect failed",
        ),
    )
    assert new_state == state
    assert all(isinstance(c, LogEvent) for c in cmds)
