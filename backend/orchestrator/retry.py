"""
Reconnect policy helpers for the streaming speech clients.

Purpose:
- Centralize bounded-reconnect rules
- Keep the clients' reconnect decisions deterministic and testable

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from spec import MAX_RECONNECT_ATTEMPTS, RECONNECT_DELAY_MS


# =============================================================================
# Failure Types
# =============================================================================

class FailureType(str, Enum):
    """
    Failure classification used by the reconnect policy.

    CONNECT_FAILED:
        Opening the socket or sending the setup message failed.

    CONNECTION_LOST:
        An established connection closed without close() being called.

    SEND_FAILED:
        A send on an established connection raised; treated as a lost
        connection.

    Notes:
    - close() is NOT a failure and must never trigger a reconnect.
    - All failure types share the same bounded budget.
    """

    CONNECT_FAILED = "connect_failed"
    CONNECTION_LOST = "connection_lost"
    SEND_FAILED = "send_failed"


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable reconnect attempt counter.

    Semantics:
    - attempt == 0: no reconnect scheduled since the last READY.
    - attempt >= 1: the Nth consecutive reconnect attempt.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh attempt counter (used on every READY)."""
    return RetryAttempt(attempt=0)


# =============================================================================
# Policy
# =============================================================================

def should_retry(
    *,
    attempt: RetryAttempt,
    max_attempts: int = MAX_RECONNECT_ATTEMPTS,
) -> bool:
    """
    Returns True if another reconnect may be scheduled.

    attempt = number of reconnects already performed since the last READY.
    """
    return attempt.attempt < max_attempts


def get_retry_delay_ms(
    *,
    attempt: RetryAttempt,  # pylint: disable=unused-argument
    base_delay_ms: int = RECONNECT_DELAY_MS,
) -> int:
    """
    Returns the delay before the next reconnect.

    Fixed delay for every attempt.
    """
    return base_delay_ms
