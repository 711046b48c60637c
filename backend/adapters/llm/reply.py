"""Reply generator (OpenAI-compatible chat completions)."""
from __future__ import annotations

import time
from typing import Any

from openai import AsyncOpenAI

from adapters.llm.prompts import SYSTEM_PROMPT_VERSION, build_messages
from config import AppConfig
from errors import GenerationFailed
from observability.logger import log_event
from observability.metrics import timed
from spec import (
    GEMINI_OPENAI_BASE_URL,
    GROQ_OPENAI_BASE_URL,
    REPLY_MAX_TOKENS,
    REPLY_TEMPERATURE,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class ReplyGenerator:
    """
    Streaming reply generator.

    Design notes:
    - One request per question; the coordinator guarantees at most one
      is outstanding.
    - Streams the completion and returns the joined text.
    - Raises GenerationFailed on any vendor error or an empty reply.
    - Does NOT retry, time out, or decide what happens next.
    """

    def __init__(
        self,
        *,
        client: Any,
        model: str,
        provider: str,
        max_tokens: int = REPLY_MAX_TOKENS,
        temperature: float = REPLY_TEMPERATURE,
    ) -> None:
        self._client = client
        self._model = model
        self._provider = provider
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate_reply(
        self,
        prompt_text: str,
        history: list[dict[str, str]],
    ) -> str:
        messages = build_messages(prompt_text, history)

        try:
            kwargs: dict[str, Any] = dict(
                model=self._model,
                messages=messages,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                stream=True,
            )
            with timed("reply_generation_latency", component="reply", details={"model": self._model}):
                stream = await self._client.chat.completions.create(**kwargs)

                parts: list[str] = []
                async for chunk in stream:
                    delta = self._extract_delta(chunk)
                    if delta:
                        parts.append(delta)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise GenerationFailed(f"{type(exc).__name__}: {exc}") from exc

        text = "".join(parts).strip()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "reply_completion_done",
            "component": "reply",
            "provider": self._provider,
            "model": self._model,
            "system_prompt_version": SYSTEM_PROMPT_VERSION,
            "history_messages": len(history),
            "text_len": len(text),
        })

        if not text:
            raise GenerationFailed("empty reply")
        return text

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """
        Extract token delta from vendor response (OpenAI format).
        """
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""


def build_llm_client(config: AppConfig) -> AsyncOpenAI:
    """Build an LLM client for the provider selected by environment variables."""
    provider = config.reply_provider.lower()
    if provider == "groq":
        return AsyncOpenAI(
            api_key=config.groq_api_key,
            base_url=GROQ_OPENAI_BASE_URL,
        )
    if provider == "openai":
        return AsyncOpenAI(api_key=config.openai_api_key)

    return AsyncOpenAI(
        api_key=config.gemini_api_key,
        base_url=GEMINI_OPENAI_BASE_URL,
    )
