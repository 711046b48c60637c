# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import json
from typing import Any, Callable

import numpy as np
import pytest

import session.gateway as gateway_mod
from audio.frames import AudioFrame
from config import AppConfig
from orchestrator.enums.state import State
from session.connection_status import ConnectionState
from session.gateway import SessionGateway


class FakeInputSource:
    sample_rate_hz = 16000

    def __init__(self) -> None:
        self.on_block: Callable[[np.ndarray], None] | None = None
        self.stopped = False

    def start(self, on_block: Callable[[np.ndarray], None]) -> None:
        self.on_block = on_block

    def stop(self) -> None:
        self.stopped = True


class FakeOutputSink:
    sample_rate_hz = 24000

    def __init__(self) -> None:
        self.closed = False

    async def write(self, frame: AudioFrame) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeWebSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))
        if "setup" in self.sent[-1]:
            self._incoming.put_nowait(json.dumps({"setupComplete": {}}))

    async def close(self) -> None:
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


def make_config() -> AppConfig:
    return AppConfig(
        env="test",
        log_level="INFO",
        gemini_api_key="test-key",
        gemini_model="models/test-live",
        gemini_voice="Puck",
        reply_provider="gemini",
        reply_model="test-model",
        openai_api_key=None,
        groq_api_key=None,
        audio_sample_rate=16000,
        tts_sample_rate=24000,
        capture_frame_ms=100,
        output_gain=1.0,
        input_device=None,
        output_device=None,
        uplink_device=None,
        silence_timeout_ms=8000,
        cooldown_ms=15000,
        watchdog_ms=15000,
    )


def test_gateway_start_and_stop_lifecycle(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []

    def fake_log_event(payload: dict[str, Any], *, level: str = "info") -> None:  # pylint: disable=unused-argument
        emitted.append(payload)

    monkeypatch.setattr(gateway_mod, "log_event", fake_log_event)

    sockets: list[FakeWebSocket] = []

    async def connect_fn(url: str) -> FakeWebSocket:  # pylint: disable=unused-argument
        ws = FakeWebSocket()
        sockets.append(ws)
        return ws

    source, sink = FakeInputSource(), FakeOutputSink()

    async def runner():
        gw = SessionGateway(
            config=make_config(),
            llm_client=object(),
            input_source=source,
            output_sink=sink,
            connect_fn=connect_fn,
        )
        session = await gw.start()
        assert await gw.start() is session

        for _ in range(200):
            if (
                session.transcription.state is ConnectionState.READY
                and session.synthesis.state is ConnectionState.READY
            ):
                break
            await asyncio.sleep(0.005)

        state_while_running = session.runtime.state.state
        transcription_ready = session.transcription.state
        await gw.stop()
        await gw.stop()
        return gw, session, state_while_running, transcription_ready

    gw, session, state_while_running, transcription_ready = asyncio.run(runner())

    assert gw.session is None
    assert state_while_running is State.LISTENING
    assert transcription_ready is ConnectionState.READY
    assert session.runtime.state.state is State.IDLE
    assert len(sockets) == 2
    assert source.on_block is not None and source.stopped
    assert sink.closed

    types = [e["event_type"] for e in emitted]
    assert types.count("SESSION_STARTED") == 1
    assert types.count("SESSION_ENDED") == 1
    ended = next(e for e in emitted if e["event_type"] == "SESSION_ENDED")
    assert ended["session_id"] == session.session_id
    assert ended["total_turns"] == 0
