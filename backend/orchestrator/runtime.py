"""
Runtime execution shell for a single conversation.

Responsibilities:
- Own coordinator state
- Call pure reducer
- Execute commands with side effects (clients, pipelines, history)
- Forward captured frames to the transcription client in order
- Schedule and cancel timers
- Convert timer expiry into events
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Coroutine

from audio.frames import AudioFrame
from context.conversation import ConversationTurn
from errors import AlreadySpeaking, GenerationFailed, TransportError
from observability.logger import log_event
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
from orchestrator.events import (
    CooldownTimeout,
    Event,
    EventType,
    PlaybackDrained,
    PlaybackFatal,
    ReplyFailed,
    ReplyReady,
    SilenceTimeout,
    SynthesisFailed,
    SynthesisStallTimeout,
    WatchdogTimeout,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from spec import SHUTDOWN_GRACE_MS


if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single conversation.

    Responsibilities:
    - Own the authoritative coordinator state
    - Act as the universal event sink for the conversation
      (host control, client events, playback callbacks, timer events)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects
    - Schedule and cancel timers
    - Convert timer expiry into events

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - Events are processed one at a time, in arrival order
    - All side effects occur *after* state has been updated
    - Runtime never performs orchestration logic itself
    - Timers emit events back into handle_event (single entry point)

    Long-running side effects (connect, close, speak, reply generation)
    run as background tasks and report back through handle_event, so no
    command ever waits on another event.
    """

    def __init__(
        self,
        *,
        initial_state: OrchestratorState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._lock = asyncio.Lock()
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

        # Captured frames waiting to be sent to transcription
        self._uplink: asyncio.Queue[AudioFrame] = asyncio.Queue()
        self._uplink_task: asyncio.Task[None] | None = None

        # speak run id currently held by the synthesis client (None = free)
        self._speak_outstanding: int | None = None

    @property
    def state(self) -> OrchestratorState:
        """
        Return the current immutable coordinator state.

        Consumers must never modify this state directly.
        """
        return self._state

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the coordinator pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Atomically swap in the new coordinator state
        3. Execute all emitted commands sequentially

        All event sources converge here:
        - Host (start / stop)
        - Streaming clients and reply generator
        - Playback pipeline callbacks
        - Timers
        """
        async with self._lock:
            new_state, commands = reduce(self._state, event)
            self._state = new_state
            if not new_state.speak_in_flight:
                # The reducer ended (or never began) a speak; free the slot
                self._speak_outstanding = None

            for cmd in commands:
                await self._execute_command(cmd)

    def post_event(self, event: Event) -> None:
        """Schedule handle_event from synchronous callback code."""
        self._spawn(self.handle_event(event), name=f"event:{event.event_type.value}")

    def notify_playback_drained(self, frames_enqueued: int) -> None:
        self.post_event(
            PlaybackDrained(
                event_type=EventType.PLAYBACK_DRAINED,
                ts_ms=_now_ms(),
                frames_enqueued=frames_enqueued,
            )
        )

    def notify_playback_fatal(self, reason: str) -> None:
        self.post_event(
            PlaybackFatal(
                event_type=EventType.PLAYBACK_FATAL,
                ts_ms=_now_ms(),
                reason=reason,
            )
        )

    async def shutdown(self, *, grace_ms: int = SHUTDOWN_GRACE_MS) -> None:
        """
        Clean shutdown of runtime.

        Cancels all in-flight timers, gives background tasks (client close
        in particular) grace_ms to finish, then cancels the rest.
        Called by the session after Stop was handled.
        """
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)
        self._stop_uplink()

        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=grace_ms / 1000.0)
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({**cmd.event, "session_id": self._ctx.session_id})

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        elif isinstance(cmd, StartCapture):
            self._start_uplink()
            self._ctx.playback.start()
            self._ctx.capture.start(self._on_capture_frame)

        elif isinstance(cmd, StopCapture):
            self._ctx.capture.stop()
            self._stop_uplink()

        elif isinstance(cmd, SetCaptureGate):
            self._ctx.capture.set_gate(cmd.open)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "capture_gate_set",
                "component": "runtime",
                "session_id": self._ctx.session_id,
                "gate_open": cmd.open,
            }, level="debug")

        elif isinstance(cmd, ConnectClients):
            self._spawn(self._connect_clients(), name="connect_clients")

        elif isinstance(cmd, CloseClients):
            self._speak_outstanding = None
            self._spawn(self._close_clients(), name="close_clients")

        elif isinstance(cmd, GenerateReply):
            # Snapshot now: the question itself is committed right after
            history = self._ctx.history.serialize()
            self._spawn(
                self._generate_reply(cmd.run_id, cmd.prompt_text, history),
                name=f"reply:{cmd.run_id}",
            )

        elif isinstance(cmd, Speak):
            if self._speak_outstanding is not None:
                err = AlreadySpeaking(
                    f"speak {cmd.run_id} requested while "
                    f"speak {self._speak_outstanding} is in flight"
                )
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "speak_rejected",
                    "component": "runtime",
                    "session_id": self._ctx.session_id,
                    "speak_run_id": cmd.run_id,
                    "error": str(err),
                }, level="warn")
                return

            self._speak_outstanding = cmd.run_id
            self._spawn(self._speak(cmd), name=f"speak:{cmd.run_id}")

        elif isinstance(cmd, EnqueuePlayback):
            self._ctx.playback.start()
            self._ctx.playback.enqueue(cmd.frame)

        elif isinstance(cmd, StopPlayback):
            await self._ctx.playback.stop()

        elif isinstance(cmd, CommitTurn):
            self._ctx.history.append(
                ConversationTurn(
                    role=cmd.role,
                    text=cmd.text,
                    started_at_ms=cmd.started_at_ms,
                    ended_at_ms=cmd.ended_at_ms,
                )
            )
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "turn_committed",
                "component": "runtime",
                "session_id": self._ctx.session_id,
                "role": cmd.role,
                "text_len": len(cmd.text),
                "history_turns": len(self._ctx.history),
            })

        elif isinstance(cmd, NotifyTerminalError):
            try:
                self._ctx.notify_terminal_error(cmd.service, cmd.reason)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "terminal_error_callback_failed",
                    "component": "runtime",
                    "session_id": self._ctx.session_id,
                    "error": repr(e),
                }, level="error")

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_IMPLEMENTED",
                "component": "runtime",
                "session_id": self._ctx.session_id,
                "command_type": type(cmd).__name__,
            }, level="error")

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _connect_clients(self) -> None:
        await asyncio.gather(
            self._ctx.transcription.connect(),
            self._ctx.synthesis.connect(),
        )

    async def _close_clients(self) -> None:
        await asyncio.gather(
            self._ctx.transcription.close(),
            self._ctx.synthesis.close(),
        )

    async def _generate_reply(
        self,
        run_id: int,
        prompt_text: str,
        history: list[dict[str, str]],
    ) -> None:
        started = _now_ms()
        try:
            text = await self._ctx.reply_generator.generate_reply(prompt_text, history)
        except GenerationFailed as e:
            reason = str(e) or type(e).__name__
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = repr(e)
        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "reply_generated",
                "component": "runtime",
                "session_id": self._ctx.session_id,
                "reply_run_id": run_id,
                "latency_ms": _now_ms() - started,
                "text_len": len(text),
            })
            await self.handle_event(
                ReplyReady(
                    event_type=EventType.REPLY_READY,
                    ts_ms=_now_ms(),
                    service=Service.REPLY,
                    run_id=run_id,
                    text=text,
                )
            )
            return

        await self.handle_event(
            ReplyFailed(
                event_type=EventType.REPLY_FAILED,
                ts_ms=_now_ms(),
                service=Service.REPLY,
                run_id=run_id,
                reason=reason,
            )
        )

    async def _speak(self, cmd: Speak) -> None:
        try:
            await self._ctx.synthesis.speak(cmd.text)
        except TransportError as e:
            reason = str(e) or "synthesis client not ready"
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = repr(e)
        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "speak_sent",
                "component": "runtime",
                "session_id": self._ctx.session_id,
                "speak_run_id": cmd.run_id,
                "origin": cmd.origin.value,
                "text_len": len(cmd.text),
            })
            return

        await self.handle_event(
            SynthesisFailed(
                event_type=EventType.SYNTHESIS_FAILED,
                ts_ms=_now_ms(),
                service=Service.SYNTHESIS,
                reason=reason,
            )
        )

    # ------------------------------------------------------------------
    # Capture -> transcription uplink
    # ------------------------------------------------------------------

    def _on_capture_frame(self, frame: AudioFrame) -> None:
        self._uplink.put_nowait(frame)

    def _start_uplink(self) -> None:
        if self._uplink_task is not None and not self._uplink_task.done():
            return
        self._uplink_task = asyncio.create_task(
            self._forward_uplink(), name="transcription_uplink"
        )

    def _stop_uplink(self) -> None:
        task = self._uplink_task
        self._uplink_task = None
        if task is not None and not task.done():
            task.cancel()
        while not self._uplink.empty():
            self._uplink.get_nowait()

    async def _forward_uplink(self) -> None:
        while True:
            frame = await self._uplink.get()
            try:
                await self._ctx.transcription.send_audio(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "transcription_send_failed",
                    "component": "runtime",
                    "session_id": self._ctx.session_id,
                    "sequence_num": frame.sequence_num,
                    "error": repr(e),
                }, level="warn")

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire,
        maintaining the single event entry point invariant.
        """
        # Cancel existing timer if present (idempotent)
        self._cancel_timer(timer_id)

        # Captured at start so a late stall timer is recognized as stale
        speak_run_id = self._state.active_runs.speak

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                # Timer was cancelled - this is normal
                return

            # Expired: this timer no longer counts as in flight
            if self._timers.get(timer_id) is asyncio.current_task():
                del self._timers[timer_id]

            event = self._construct_timeout_event(
                timer_id=timer_id,
                timeout_event_type=timeout_event_type,
                speak_run_id=speak_run_id,
            )
            await self.handle_event(event)

        self._timers[timer_id] = asyncio.create_task(
            _timer_task(), name=f"timer:{timer_id}"
        )

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _construct_timeout_event(
        self,
        *,
        timer_id: str,
        timeout_event_type: EventType,
        speak_run_id: int,
    ) -> Event:
        """Construct the timeout event the reducer asked for."""
        ts = _now_ms()

        if timeout_event_type is EventType.SILENCE_TIMEOUT:
            return SilenceTimeout(event_type=timeout_event_type, ts_ms=ts)

        if timeout_event_type is EventType.COOLDOWN_TIMEOUT:
            return CooldownTimeout(event_type=timeout_event_type, ts_ms=ts)

        if timeout_event_type is EventType.WATCHDOG_TIMEOUT:
            return WatchdogTimeout(event_type=timeout_event_type, ts_ms=ts)

        if timeout_event_type is EventType.SYNTHESIS_STALL_TIMEOUT:
            return SynthesisStallTimeout(
                event_type=timeout_event_type,
                ts_ms=ts,
                speak_run_id=speak_run_id,
            )

        raise ValueError(
            f"Unknown timeout event type: {timeout_event_type} "
            f"for timer_id: {timer_id}"
        )
