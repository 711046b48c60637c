"""
Authoritative coordinator state enumeration.

Rules:
- This enum defines ONLY the control-plane states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    Turn-taking states for a single conversation.

    These states represent orchestration intent, NOT connection status
    and NOT adapter lifecycles. Exactly one holds at a time.
    """

    IDLE = "IDLE"
    LISTENING = "LISTENING"
    AWAITING_REPLY = "AWAITING_REPLY"
    SPEAKING = "SPEAKING"
    COOLDOWN = "COOLDOWN"
