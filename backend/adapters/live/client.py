"""
Persistent Gemini Live streaming client (shared connection lifecycle).

Core model:
- One WebSocket per client, CONVERSATION-scoped, stays open across turns.
- A setup message is sent right after the socket opens; the client is
  READY only once the server acknowledges it (setupComplete).
- An unexpected drop (or a send that finds the socket broken) schedules
  a reconnect after a fixed delay. At most MAX_RECONNECT_ATTEMPTS
  consecutive reconnects are made; READY resets the budget. Exhaustion
  is reported once as a terminal ClientError.
- close() is final: it suppresses any further reconnect.

Design constraints:
- Client must not call reducer directly.
- Client must not own coordinator state transitions.
- Subclasses only describe their setup message and how they read
  serverContent; everything else lives here.
"""

from __future__ import annotations

import asyncio
import functools
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Coroutine

from websockets.asyncio.client import connect as ws_connect

from errors import TransportError
from observability.logger import log_event
from orchestrator.enums.service import Service
from orchestrator.events import (
    ClientClosed,
    ClientError,
    ClientReady,
    Event,
    EventType,
)
from orchestrator.retry import (
    FailureType,
    RetryAttempt,
    get_retry_delay_ms,
    next_attempt,
    reset_attempt,
    should_retry,
)
from session.connection_status import ConnectionState
from spec import (
    GEMINI_LIVE_URL,
    LIVE_WS_MAX_MESSAGE_BYTES,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_DELAY_MS,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


ConnectFn = Callable[[str], Awaitable[Any]]

default_connect: ConnectFn = functools.partial(
    ws_connect,
    max_size=LIVE_WS_MAX_MESSAGE_BYTES,
)


class GeminiLiveClient(ABC):
    """
    Base class for the transcription and synthesis clients.

    Public interface:
    - state: current ConnectionState
    - connect(): open the socket and send setup (returns once sent)
    - close(): close the socket; no reconnect afterwards
    """

    service: Service

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Coroutine[Any, Any, None]],
        api_key: str,
        model: str,
        url: str = GEMINI_LIVE_URL,
        connect_fn: ConnectFn | None = None,
        reconnect_delay_ms: int = RECONNECT_DELAY_MS,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        self._emit = emit_event
        self._api_key = api_key
        self._model = model
        self._url = url
        self._connect_fn = connect_fn or default_connect
        self._reconnect_delay_ms = reconnect_delay_ms
        self._max_reconnect_attempts = max_reconnect_attempts

        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._recv_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._attempt: RetryAttempt = reset_attempt()
        self._closing: bool = False

        self.connect_calls: int = 0

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _build_setup(self) -> dict[str, Any]:
        """Return the setup message sent right after the socket opens."""

    @abstractmethod
    async def _handle_server_content(self, content: dict[str, Any]) -> None:
        """Translate one serverContent payload into coordinator events."""

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempt(self) -> int:
        return self._attempt.attempt

    async def connect(self) -> None:
        if self._state is not ConnectionState.DISCONNECTED:
            return
        self._closing = False
        self._attempt = reset_attempt()
        await self._open()

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._state = ConnectionState.CLOSING

        reconnect = self._reconnect_task
        self._reconnect_task = None
        if reconnect is not None and not reconnect.done():
            reconnect.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._log("live_close_failed", {"error": repr(e)}, level="warn")

        recv = self._recv_task
        self._recv_task = None
        if recv is not None and not recv.done() and recv is not asyncio.current_task():
            recv.cancel()
            try:
                await recv
            except asyncio.CancelledError:
                pass

        self._state = ConnectionState.DISCONNECTED
        self._log("live_closed")
        await self._emit(
            ClientClosed(
                event_type=EventType.CLIENT_CLOSED,
                ts_ms=_now_ms(),
                service=self.service,
                expected=True,
            )
        )

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def _open(self) -> None:
        self._state = ConnectionState.CONNECTING
        self.connect_calls += 1
        self._log("live_connecting", {"attempt": self._attempt.attempt})

        try:
            ws = await self._connect_fn(f"{self._url}?key={self._api_key}")
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._on_failure(FailureType.CONNECT_FAILED, repr(e))
            return

        if self._closing:
            await ws.close()
            return

        try:
            await ws.send(json.dumps(self._build_setup()))
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._on_failure(FailureType.CONNECT_FAILED, f"setup send failed: {e!r}")
            return

        self._ws = ws
        self._recv_task = asyncio.create_task(
            self._receive_loop(ws), name=f"live_recv:{self.service.value}"
        )

    async def _receive_loop(self, ws: Any) -> None:
        reason = "connection closed by server"
        try:
            async for raw in ws:
                await self._handle_raw(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = repr(e)

        if self._closing or ws is not self._ws:
            return

        self._ws = None
        self._recv_task = None
        await self._on_failure(FailureType.CONNECTION_LOST, reason)

    async def _on_failure(self, failure_type: FailureType, reason: str) -> None:
        self._state = ConnectionState.DISCONNECTED
        if self._closing:
            return

        self._log(
            "live_connection_failed",
            {
                "failure_type": failure_type.value,
                "reason": reason,
                "attempt": self._attempt.attempt,
            },
            level="warn",
        )

        if not should_retry(
            attempt=self._attempt,
            max_attempts=self._max_reconnect_attempts,
        ):
            await self._emit(
                ClientError(
                    event_type=EventType.CLIENT_ERROR,
                    ts_ms=_now_ms(),
                    service=self.service,
                    reason=f"reconnect attempts exhausted: {reason}",
                    terminal=True,
                )
            )
            return

        self._attempt = next_attempt(self._attempt)
        if failure_type is not FailureType.CONNECT_FAILED:
            await self._emit(
                ClientClosed(
                    event_type=EventType.CLIENT_CLOSED,
                    ts_ms=_now_ms(),
                    service=self.service,
                    expected=False,
                )
            )
        else:
            await self._emit(
                ClientError(
                    event_type=EventType.CLIENT_ERROR,
                    ts_ms=_now_ms(),
                    service=self.service,
                    reason=reason,
                )
            )

        delay_ms = get_retry_delay_ms(
            attempt=self._attempt,
            base_delay_ms=self._reconnect_delay_ms,
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay_ms),
            name=f"live_reconnect:{self.service.value}",
        )

    async def _reconnect_after(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000.0)
        if self._closing:
            return
        await self._open()

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    async def _handle_raw(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                self._log("live_message_undecodable", {"error": str(e)}, level="warn")
                return

        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            self._log("live_message_invalid_json", {"error": str(e)}, level="warn")
            return
        if not isinstance(message, dict):
            return

        if "setupComplete" in message:
            self._state = ConnectionState.READY
            self._attempt = reset_attempt()
            self._log("live_ready")
            await self._emit(
                ClientReady(
                    event_type=EventType.CLIENT_READY,
                    ts_ms=_now_ms(),
                    service=self.service,
                )
            )
            return

        content = message.get("serverContent")
        if isinstance(content, dict):
            await self._handle_server_content(content)
            return

        if "goAway" in message:
            self._log("live_go_away", {"detail": message["goAway"]}, level="warn")
            return

        self._log("live_message_ignored", {"keys": sorted(message)}, level="debug")

    async def _send_json(self, payload: dict[str, Any]) -> None:
        """Send one message on a READY connection or raise TransportError."""
        ws = self._ws
        if self._state is not ConnectionState.READY or ws is None:
            raise TransportError(
                f"{self.service.value.lower()} client not ready ({self._state.value})"
            )
        try:
            await ws.send(json.dumps(payload))
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._on_send_failed(ws, e)
            raise TransportError(f"send failed: {e!r}") from e

    async def _on_send_failed(self, ws: Any, error: Exception) -> None:
        """A send on a broken socket counts as a lost connection."""
        if self._closing or ws is not self._ws:
            return
        self._ws = None
        recv = self._recv_task
        self._recv_task = None
        if recv is not None and not recv.done():
            recv.cancel()
        try:
            await ws.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("live_close_failed", {"error": repr(e)}, level="debug")
        await self._on_failure(FailureType.SEND_FAILED, repr(error))

    def _log(
        self,
        event_type: str,
        details: dict[str, Any] | None = None,
        *,
        level: str = "info",
    ) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "component": f"live_{self.service.value.lower()}",
            "connection_state": self._state.value,
            **(details or {}),
        }, level=level)
