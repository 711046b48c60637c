"""
Connection state tracking for the streaming speech clients.

Connection lifecycle is tracked separately from the coordinator state
machine: LISTENING can occur with any ConnectionState.
"""
from enum import Enum


class ConnectionState(Enum):
    """
    Streaming client connection lifecycle.

    DISCONNECTED -> CONNECTING -> READY (setup acknowledged)
    READY -> CLOSING -> DISCONNECTED on close()
    READY -> DISCONNECTED -> CONNECTING on an unexpected drop (reconnect)
    """
    DISCONNECTED = "DISCONNECTED"  # No socket (never opened, closed, or waiting to reconnect)
    CONNECTING = "CONNECTING"      # Socket opening or setup not yet acknowledged
    READY = "READY"                # Setup acknowledged; requests accepted
    CLOSING = "CLOSING"            # close() in progress; no reconnect
