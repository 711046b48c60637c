"""
Why the agent is speaking.

Only REPLY turns are answers to a question; the two fixed prompts are
repeat requests and are tracked separately for watchdog re-arming.
"""

from __future__ import annotations

from enum import Enum


class SpeakOrigin(str, Enum):
    """Source of the text handed to the synthesis client."""

    REPLY = "REPLY"
    REPEAT_QUESTION = "REPEAT_QUESTION"
    NO_AUDIO = "NO_AUDIO"
