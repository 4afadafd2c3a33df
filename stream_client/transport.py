# =============================================================================
# Stream Client -- Transport Interface
# =============================================================================
#
# What the lifecycle engine needs from a transport: open a channel, send,
# release the channel, report whether it is open.  Each transport owns
# its handle; the engine holds no transport-specific state.
# =============================================================================

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .config import ConnectionPolicy


class ChannelSink(Protocol):
    """Receiver of everything a transport observes on an open channel."""

    @property
    def accepting(self) -> bool:
        """False once the owner started closing; reads must stop."""
        ...

    def deliver(self, data: Any) -> None: ...

    def remote_closed(self, info: Any, error: Exception | None = None) -> None: ...


class Transport(ABC):
    """A single reusable channel slot.

    At most one handle is live at a time.  ``open()`` is a no-op while a
    handle is present, and concurrent opens are serialized by the
    implementation.  All methods run on the loop thread.
    """

    def __init__(self, policy: ConnectionPolicy) -> None:
        self.policy = policy

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @property
    def resume_token(self) -> str | None:
        """Cursor a new session can resume from, if the transport has one."""
        return None

    @abstractmethod
    async def open(self, sink: ChannelSink) -> bool:
        """Open a channel and start feeding *sink*.

        Returns:
            True if a new channel was opened, False if one was already open.

        Raises:
            Exception: Any transport failure; the engine turns it into a retry.
        """

    @abstractmethod
    async def send(self, data: Any) -> None: ...

    @abstractmethod
    def close_channel(self) -> None:
        """Release the local channel immediately.  Safe to call repeatedly."""

    async def close(self) -> None:
        """Graceful shutdown.  Transports with a closing handshake override this."""
        self.close_channel()

    @abstractmethod
    def close_info(self) -> Any:
        """Value handed to ``on_close`` after a client-initiated close."""
