# =============================================================================
# Stream Client -- Client Facade
# =============================================================================
#
# Owns the shared scheduler loop, HTTP worker and connection monitor, and
# hands out fluent builders for WebSocket and event-stream connections.
# =============================================================================

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Generic, TypeVar

import httpx

from ._logging import logger
from .config import ConnectionPolicy, ExecutionContext
from .connection import StreamConnection
from .constants import (
    AUTO_RECONNECT,
    CONNECTION_TIMEOUT,
    MAX_RETRIES,
    RETRY_INTERVAL,
    SHUTDOWN_TIMEOUT,
)
from .monitor import ConnectionMonitor
from .sse import SseConnection
from .ws import WsConnection

C = TypeVar("C", bound=StreamConnection)


class ConnectionBuilder(Generic[C]):
    """Fluent builder for a single connection.

    Starts from the defaults of the owning :class:`StreamClient`.

    Example::

        conn = (
            client.sse("http://localhost:9000/events")
            .max_retries(5)
            .on_event(lambda event: print(event.id, event.data))
            .connect()
        )
    """

    def __init__(
        self,
        client: StreamClient,
        url: str,
        factory: Callable[[ConnectionPolicy], C],
    ) -> None:
        self._factory = factory
        self._headers: dict[str, str] = {}
        self._options: dict[str, Any] = {
            "url": url,
            "context": client.context,
            "monitor": client.monitor,
            "retry_interval": client.retry_interval,
            "max_retries": client.max_retries,
            "auto_reconnect": client.auto_reconnect,
            "connect_timeout": client.connect_timeout,
        }

    def _set(self, key: str, value: Any) -> ConnectionBuilder[C]:
        self._options[key] = value
        return self

    def retry_interval(self, seconds: float) -> ConnectionBuilder[C]:
        return self._set("retry_interval", seconds)

    def max_retries(self, retries: int) -> ConnectionBuilder[C]:
        return self._set("max_retries", retries)

    def auto_reconnect(self, enabled: bool = True) -> ConnectionBuilder[C]:
        return self._set("auto_reconnect", enabled)

    def connect_timeout(self, seconds: float) -> ConnectionBuilder[C]:
        return self._set("connect_timeout", seconds)

    def last_event_id(self, event_id: str | None) -> ConnectionBuilder[C]:
        return self._set("last_event_id", event_id)

    def header(self, name: str, value: str) -> ConnectionBuilder[C]:
        self._headers[name] = value
        return self

    def on_open(self, fn: Callable[[], Any]) -> ConnectionBuilder[C]:
        return self._set("on_open", fn)

    def on_event(self, fn: Callable[[Any], Any]) -> ConnectionBuilder[C]:
        return self._set("on_event", fn)

    def on_close(self, fn: Callable[[Any], Any]) -> ConnectionBuilder[C]:
        return self._set("on_close", fn)

    def on_error(self, fn: Callable[[Exception], Any]) -> ConnectionBuilder[C]:
        return self._set("on_error", fn)

    def on_failed_attempt(self, fn: Callable[[], Any]) -> ConnectionBuilder[C]:
        return self._set("on_failed_attempt", fn)

    def on_retries_exceeded(self, fn: Callable[[], Any]) -> ConnectionBuilder[C]:
        return self._set("on_retries_exceeded", fn)

    def build(self) -> C:
        """Create the connection without connecting."""
        policy = ConnectionPolicy(headers=dict(self._headers), **self._options)
        return self._factory(policy)

    def connect(self) -> C:
        """Create the connection and start connecting in the background."""
        conn = self.build()
        conn.connect()
        return conn


class StreamClient:
    """Entry point that owns the resources shared by all connections.

    Without a *loop* the client starts its own event loop on a daemon
    thread; ``shutdown()`` closes every open connection and stops it.
    With a *loop* (for use inside an asyncio application) the caller
    keeps ownership and should ``await client.aclose()`` instead.

    Args:
        retry_interval: Default seconds between attempts.
        max_retries: Default retry budget, ``-1`` for unbounded.
        auto_reconnect: Default reconnect-on-remote-close behavior.
        connect_timeout: Default handshake timeout in seconds.
        http: Shared HTTP client for event streams.
        loop: Externally owned event loop to schedule work on.

    Example::

        with StreamClient() as client:
            client.ws("ws://localhost:9000/ws").on_event(print).connect()
            ...
    """

    def __init__(
        self,
        *,
        retry_interval: float = RETRY_INTERVAL,
        max_retries: int = MAX_RETRIES,
        auto_reconnect: bool = AUTO_RECONNECT,
        connect_timeout: float = CONNECTION_TIMEOUT,
        http: httpx.AsyncClient | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.retry_interval = retry_interval
        self.max_retries = max_retries
        self.auto_reconnect = auto_reconnect
        self.connect_timeout = connect_timeout
        self.monitor = ConnectionMonitor()

        self._thread: threading.Thread | None = None
        if loop is None:
            loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._run_loop, args=(loop,), daemon=True, name="stream-client"
            )
            self._thread.start()
        self.context = ExecutionContext(loop, http)

    # -- Builders -------------------------------------------------------------

    def ws(self, url: str) -> ConnectionBuilder[WsConnection]:
        return ConnectionBuilder(self, url, WsConnection)

    def sse(self, url: str) -> ConnectionBuilder[SseConnection]:
        return ConnectionBuilder(self, url, SseConnection)

    # -- Lifecycle ------------------------------------------------------------

    def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Close all open connections and stop the background loop.

        Connections waiting to retry are not registered with the monitor;
        they see the stopped context when they wake and give up.
        """
        self.monitor.shutdown_all()
        self.context.shutdown()
        if self._thread is None:
            return

        loop = self.context.loop
        if loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self._drain(timeout), loop)
        try:
            future.result(timeout=timeout + 1.0)
        except Exception as exc:
            logger.warning("Error while draining connections: %s", exc)
        loop.call_soon_threadsafe(loop.stop)
        self._thread.join(timeout=timeout)
        self._thread = None

    async def aclose(self) -> None:
        """Close all open connections on an externally owned loop."""
        self.monitor.shutdown_all()
        self.context.shutdown()
        await asyncio.sleep(0)
        await self.context.aclose()

    def __enter__(self) -> StreamClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # -- Internal -------------------------------------------------------------

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        """Background thread: run the scheduler loop until stopped."""
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    async def _drain(self, timeout: float) -> None:
        """Give pending closes time to finish, cancel what is left."""
        await asyncio.sleep(0)
        current = asyncio.current_task()
        pending = [t for t in asyncio.all_tasks() if t is not current]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
        await self.context.aclose()
