"""
Streaming speech synthesis over a Gemini Live session.

speak(text) sends one user turn asking the model to read `text` aloud.
The reply arrives as modelTurn inlineData audio parts (base64 PCM16LE,
rate in the MIME tag), followed by a turnComplete marker.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from adapters.live.client import GeminiLiveClient, _now_ms
from audio import codec
from errors import MalformedAudio, TransportError
from observability.metrics import discard_timer, start_timer, stop_timer
from orchestrator.enums.service import Service
from orchestrator.events import EventType, SynthesisAudioChunk, SynthesisTurnComplete
from spec import GEMINI_VOICE_DEFAULT, SPEAK_PREFIX, SYNTHESIS_SAMPLE_RATE_HZ


class GeminiSynthesisClient(GeminiLiveClient):
    """
    Synthesis client.

    Contract:
    - speak() raises TransportError when not READY or the send fails
    - Every audio part becomes one SynthesisAudioChunk, in arrival order
    - Malformed audio parts are logged and dropped
    - turnComplete becomes exactly one SynthesisTurnComplete
    """

    service = Service.SYNTHESIS

    def __init__(
        self,
        *,
        voice: str = GEMINI_VOICE_DEFAULT,
        default_rate_hz: int = SYNTHESIS_SAMPLE_RATE_HZ,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._voice = voice
        self._default_rate_hz = default_rate_hz
        self._chunk_seq: int = 0
        self._first_audio_timer: str | None = None
        self.malformed_chunks: int = 0

    def _build_setup(self) -> dict[str, Any]:
        return {
            "setup": {
                "model": self._model,
                "generation_config": {
                    "response_modalities": ["AUDIO"],
                    "speech_config": {
                        "voice_config": {
                            "prebuilt_voice_config": {
                                "voice_name": self._voice,
                            },
                        },
                    },
                },
            }
        }

    async def speak(self, text: str) -> None:
        self._chunk_seq = 0
        self._drop_first_audio_timer()
        # Started before the send: audio may arrive while the send is awaited
        self._first_audio_timer = start_timer("synthesis_time_to_first_audio")
        payload = {
            "clientContent": {
                "turns": [{
                    "role": "user",
                    "parts": [{"text": f"{SPEAK_PREFIX}{text}"}],
                }],
                "turnComplete": True,
            },
        }
        try:
            await self._send_json(payload)
        except TransportError:
            self._drop_first_audio_timer()
            raise
        self._log("synthesis_requested", {"text_len": len(text)})

    async def _handle_server_content(self, content: dict[str, Any]) -> None:
        model_turn = content.get("modelTurn")
        if isinstance(model_turn, dict):
            for part in model_turn.get("parts") or []:
                await self._handle_part(part)

        if content.get("interrupted"):
            self._log("synthesis_interrupted", level="warn")

        if content.get("turnComplete"):
            self._drop_first_audio_timer()
            self._log("synthesis_turn_complete", {"chunks": self._chunk_seq})
            await self._emit(
                SynthesisTurnComplete(
                    event_type=EventType.SYNTHESIS_TURN_COMPLETE,
                    ts_ms=_now_ms(),
                    service=self.service,
                )
            )

    async def _handle_part(self, part: Any) -> None:
        if not isinstance(part, dict):
            return
        inline = part.get("inlineData")
        if not isinstance(inline, dict):
            return
        mime = inline.get("mimeType") or ""
        if not mime.startswith("audio/"):
            return

        try:
            frame = codec.decode(
                inline.get("data"),
                codec.parse_rate(mime, self._default_rate_hz),
                ts_ms=_now_ms(),
            )
        except MalformedAudio as e:
            self.malformed_chunks += 1
            self._log("synthesis_chunk_malformed", {"error": str(e)}, level="warn")
            return

        self._chunk_seq += 1
        if self._chunk_seq == 1:
            self._stop_first_audio_timer()
        frame = replace(frame, sequence_num=self._chunk_seq)
        await self._emit(
            SynthesisAudioChunk(
                event_type=EventType.SYNTHESIS_AUDIO_CHUNK,
                ts_ms=frame.ts_ms,
                service=self.service,
                frame=frame,
            )
        )

    def _stop_first_audio_timer(self) -> None:
        timer_id = self._first_audio_timer
        self._first_audio_timer = None
        if timer_id is not None:
            stop_timer(timer_id, component="synthesis", details={"voice": self._voice})

    def _drop_first_audio_timer(self) -> None:
        timer_id = self._first_audio_timer
        self._first_audio_timer = None
        if timer_id is not None:
            discard_timer(timer_id)
