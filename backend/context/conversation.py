"""
Conversation history management.

Responsibilities:
- Store ordered interviewer/agent turns (append-only, immutable turns)
- Provide conversation statistics
- Provide a bounded role/content representation for the reply generator
  (max MAX_CONTEXT_TURNS turns and MAX_CONTEXT_CHARS characters, newest kept)

Non-responsibilities:
- No reducer logic
- No prompt formatting
- No orchestration decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event
from spec import MAX_CONTEXT_CHARS, MAX_CONTEXT_TURNS


Role = Literal["interviewer", "agent"]

# Reply generator's view: the interviewer is the "user", we are the "assistant"
_LLM_ROLES: dict[str, str] = {
    "interviewer": "user",
    "agent": "assistant",
}


@dataclass(frozen=True)
class ConversationTurn:
    """Single completed utterance by either party."""
    role: Role
    text: str
    started_at_ms: int
    ended_at_ms: int


class ConversationHistory:
    """
    Append-only conversation history owned by the coordinator runtime.

    Invariants:
    - Turns are stored in the order they were committed
    - Stored turns are never modified or removed
    """

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, turn: ConversationTurn) -> None:
        if turn.ended_at_ms < turn.started_at_ms:
            log_event({
                "ts_ms": turn.ended_at_ms,
                "event_type": "history_turn_clock_skew",
                "component": "history",
                "role": turn.role,
                "started_at_ms": turn.started_at_ms,
                "ended_at_ms": turn.ended_at_ms,
            }, level="warn")
        self._turns.append(turn)

    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def serialize(self) -> list[dict[str, str]]:
        """
        Newest turns in role/content form, bounded by turn count and
        total characters. A single oversized newest turn is still kept.

        Output format:
        [
          {"role": "user", "content": "..."},
          {"role": "assistant", "content": "..."},
        ]
        """
        kept: list[ConversationTurn] = []
        total_chars = 0
        for turn in reversed(self._turns):
            if len(kept) >= MAX_CONTEXT_TURNS:
                break
            if kept and total_chars + len(turn.text) > MAX_CONTEXT_CHARS:
                break
            kept.append(turn)
            total_chars += len(turn.text)

        return [
            {"role": _LLM_ROLES[t.role], "content": t.text}
            for t in reversed(kept)
        ]

    def stats(self) -> dict[str, int]:
        """Totals for logging at shutdown."""
        interviewer = sum(1 for t in self._turns if t.role == "interviewer")
        agent = len(self._turns) - interviewer
        duration_ms = 0
        if self._turns:
            duration_ms = self._turns[-1].ended_at_ms - self._turns[0].started_at_ms
        return {
            "total_turns": len(self._turns),
            "interviewer_turns": interviewer,
            "agent_turns": agent,
            "history_chars": sum(len(t.text) for t in self._turns),
            "duration_ms": duration_ms,
        }

    def __len__(self) -> int:
        return len(self._turns)
