# =============================================================================
# Stream Client -- Error Types
# =============================================================================


class StreamClientError(Exception):
    """Base exception for all stream client errors."""


class StreamConnectionError(StreamClientError):
    """Connection-related errors (failed to connect, bad handshake status)."""


class NotConnectedError(StreamClientError):
    """Raised when sending on a connection that has no live channel."""


class UnsupportedOperationError(StreamClientError):
    """The transport cannot perform the requested operation."""


class RetriesExceededError(StreamClientError):
    """The retry budget of the current ``connect()`` cycle is used up."""

    def __init__(self, max_retries: int) -> None:
        self.max_retries = max_retries
        super().__init__(f"Max retries ({max_retries}) exceeded, not reconnecting")
