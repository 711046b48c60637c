"""
Error taxonomy for the conversation coordinator.

Every failure path has a defined fall-through; none of these is allowed
to terminate the process. Adapters convert them into events at their
boundary, the reducer decides what happens next.
"""

from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for all coordinator errors."""


class TransportError(CoordinatorError):
    """
    Streaming connection dropped or could not be opened.

    Recovered locally by the client's bounded reconnect.
    """


class MalformedAudio(CoordinatorError):
    """Audio payload could not be decoded. The frame is dropped."""


class AlreadySpeaking(CoordinatorError):
    """A speak() was requested while another one is still in flight."""


class GenerationFailed(CoordinatorError):
    """The reply generator failed or produced no text."""


class PlaybackFatal(CoordinatorError):
    """Consecutive playback failures exhausted the failure budget."""
