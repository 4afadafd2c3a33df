# =============================================================================
# Stream Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .constants import CLIENT_CLOSE_REASON, WS_CLOSE_NORMAL


class ConnectionState(str, Enum):
    """Lifecycle state of a single connection.

    Typical flow: IDLE -> CONNECTING -> CONNECTED -> CLOSING -> IDLE.
    RECONNECTING follows a remote close when auto-reconnect is on.
    FAILED is reached only when the retry budget is exhausted and is
    left by calling ``connect()`` again.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSING = "closing"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class CloseMessage:
    """WebSocket close code and reason.

    Sent by the client on a graceful close and handed to ``on_close``
    when the server closes the socket.
    """

    code: int = WS_CLOSE_NORMAL
    reason: str = CLIENT_CLOSE_REASON
