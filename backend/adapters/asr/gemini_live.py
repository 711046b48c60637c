"""
Streaming transcription over a Gemini Live session.

Audio is pushed as realtimeInput chunks; the service returns
inputTranscription fragments, each forwarded as one TranscriptReceived.
Fragments are incremental: the coordinator appends, never replaces.
"""

from __future__ import annotations

from typing import Any

from adapters.live.client import GeminiLiveClient, _now_ms
from audio import codec
from audio.frames import AudioFrame
from errors import TransportError
from orchestrator.enums.service import Service
from orchestrator.events import EventType, TranscriptReceived
from session.connection_status import ConnectionState


class GeminiTranscriptionClient(GeminiLiveClient):
    """
    Transcription client.

    send_audio() before READY drops the frame (debug log); it never
    raises into the capture path.
    """

    service = Service.TRANSCRIPTION

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.frames_sent: int = 0
        self.frames_dropped: int = 0

    def _build_setup(self) -> dict[str, Any]:
        return {
            "setup": {
                "model": self._model,
                "generation_config": {
                    "response_modalities": ["TEXT"],
                },
                "input_audio_transcription": {},
            }
        }

    async def send_audio(self, frame: AudioFrame) -> None:
        if self.state is not ConnectionState.READY:
            self.frames_dropped += 1
            self._log(
                "transcription_frame_dropped",
                {"sequence_num": frame.sequence_num, "reason": "not_ready"},
                level="debug",
            )
            return

        payload = {
            "realtimeInput": {
                "mediaChunks": [{
                    "mimeType": codec.mime_type(frame.sample_rate_hz),
                    "data": codec.encode(frame),
                }],
            },
        }
        try:
            await self._send_json(payload)
        except TransportError as e:
            self.frames_dropped += 1
            self._log(
                "transcription_frame_dropped",
                {"sequence_num": frame.sequence_num, "reason": str(e)},
                level="warn",
            )
            return
        self.frames_sent += 1

    async def _handle_server_content(self, content: dict[str, Any]) -> None:
        transcription = content.get("inputTranscription")
        if not isinstance(transcription, dict):
            return

        text = transcription.get("text") or transcription.get("transcript") or ""
        if not text:
            return

        await self._emit(
            TranscriptReceived(
                event_type=EventType.TRANSCRIPT_RECEIVED,
                ts_ms=_now_ms(),
                service=self.service,
                text=text,
                is_final=bool(transcription.get("finished", False)),
            )
        )
