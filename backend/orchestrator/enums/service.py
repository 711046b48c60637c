"""
Service enumeration for external collaborators.

Rules:
- This enum identifies external services only.
- It must NOT encode behavior or lifecycle rules.
"""

from __future__ import annotations

from enum import Enum


class Service(str, Enum):
    """
    External services driven by the coordinator.

    TRANSCRIPTION and SYNTHESIS each own one persistent streaming
    connection. REPLY is the request/response reply generator.
    """

    TRANSCRIPTION = "TRANSCRIPTION"
    SYNTHESIS = "SYNTHESIS"
    REPLY = "REPLY"
