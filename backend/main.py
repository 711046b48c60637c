"""
Process entry point.

Loads .env, builds the sound devices and runs one conversation until
SIGINT/SIGTERM or a terminal client error.
"""

from __future__ import annotations

import asyncio
import signal
import time

from dotenv import load_dotenv

from adapters.llm.reply import build_llm_client
from audio.devices import SoundDeviceInputSource, SoundDeviceOutputSink, resolve_device
from config import AppConfig
from observability.logger import log_event, set_min_level
from orchestrator.enums.service import Service
from session.gateway import SessionGateway


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


async def run(config: AppConfig) -> None:
    loop = asyncio.get_running_loop()
    done = asyncio.Event()

    def _on_terminal_error(service: Service, reason: str) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "client_terminal_error",
            "component": "main",
            "service": service.value,
            "reason": reason,
        }, level="error")
        done.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, done.set)

    uplink = None
    if config.uplink_device is not None:
        uplink = SoundDeviceOutputSink(
            device=resolve_device(config.uplink_device, kind="output"),
            name="uplink",
        )

    gateway = SessionGateway(
        config=config,
        llm_client=build_llm_client(config),
        input_source=SoundDeviceInputSource(
            device=resolve_device(config.input_device, kind="input"),
            loop=loop,
        ),
        output_sink=SoundDeviceOutputSink(
            device=resolve_device(config.output_device, kind="output"),
        ),
        uplink_sink=uplink,
        on_terminal_error=_on_terminal_error,
    )

    await gateway.start()
    try:
        await done.wait()
    finally:
        await gateway.stop()


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()
    set_min_level(config.log_level)
    if not config.gemini_api_key:
        raise SystemExit("GEMINI_API_KEY environment variable not set")
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
