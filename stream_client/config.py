# =============================================================================
# Stream Client -- Configuration
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from .constants import (
    AUTO_RECONNECT,
    CONNECTION_TIMEOUT,
    MAX_RETRIES,
    RETRY_INTERVAL,
    UNBOUNDED,
)
from .monitor import ConnectionMonitor


def _noop(*args: Any) -> None:
    return None


class ExecutionContext:
    """Scheduler and network worker shared by every connection built from it.

    Args:
        loop: Event loop that runs connect attempts, backoff delays,
            receive loops and callbacks.
        http: Shared HTTP client for event-stream connections.  When
            omitted one is created on first use and closed by
            :meth:`aclose`.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.loop = loop
        self._http = http
        self._owns_http = http is None
        self._shutdown = False

    @property
    def accepting_work(self) -> bool:
        return not self._shutdown and not self.loop.is_closed()

    def shutdown(self) -> None:
        """Stop accepting new connect attempts.  Safe from any thread."""
        self._shutdown = True

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared HTTP client.  Must be first touched from the loop thread."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(CONNECTION_TIMEOUT, read=None),
                follow_redirects=True,
            )
        return self._http

    def in_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> bool:
        """Run *fn* on the loop thread.

        Runs inline when already on the loop.  Returns False when the
        context no longer accepts work.
        """
        if not self.accepting_work:
            return False
        if self.in_loop_thread():
            fn(*args)
            return True
        try:
            self.loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            # Loop closed between the check and the call
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None


@dataclass(frozen=True)
class ConnectionPolicy:
    """Immutable settings for one logical stream.

    Attributes:
        url: Target URL (``ws://``/``wss://`` or ``http://``/``https://``).
        context: Scheduler loop and shared HTTP worker.
        monitor: Registry used for bulk teardown at shutdown.
        retry_interval: Seconds to wait before each retry or reconnect.
        max_retries: Attempts allowed per ``connect()`` cycle, counting
            the first (0 behaves like 1), or ``UNBOUNDED`` (-1) for no limit.
        auto_reconnect: Reconnect when the remote end drops a live channel.
        connect_timeout: Seconds allowed for the opening handshake.
        headers: Extra request headers sent when opening the channel.
        last_event_id: Initial resume cursor for event streams.
        on_open: Called after every successful connect.
        on_event: Called with each inbound frame or event, in order.
        on_close: Called when a live channel ends.  Receives the
            :class:`~stream_client.types.CloseMessage` for WebSockets or
            the last event id for event streams.
        on_error: Called with the exception of a failed attempt or a
            failing ``on_event`` callback.
        on_failed_attempt: Called after each failed connect attempt.
        on_retries_exceeded: Called once when the retry budget runs out.

    Callbacks run on the loop thread and must not block.
    """

    url: str
    context: ExecutionContext
    monitor: ConnectionMonitor = field(default_factory=ConnectionMonitor)
    retry_interval: float = RETRY_INTERVAL
    max_retries: int = MAX_RETRIES
    auto_reconnect: bool = AUTO_RECONNECT
    connect_timeout: float = CONNECTION_TIMEOUT
    headers: dict[str, str] = field(default_factory=dict)
    last_event_id: str | None = None
    on_open: Callable[[], Any] = _noop
    on_event: Callable[[Any], Any] = _noop
    on_close: Callable[[Any], Any] = _noop
    on_error: Callable[[Exception], Any] = _noop
    on_failed_attempt: Callable[[], Any] = _noop
    on_retries_exceeded: Callable[[], Any] = _noop

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("url is required")
        if self.retry_interval < 0:
            raise ValueError(f"retry_interval must be >= 0, got {self.retry_interval}")
        if self.max_retries < UNBOUNDED:
            raise ValueError(
                f"max_retries must be >= 0 or UNBOUNDED ({UNBOUNDED}), got {self.max_retries}"
            )
        if self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be > 0, got {self.connect_timeout}")

    @property
    def unbounded(self) -> bool:
        return self.max_retries == UNBOUNDED
