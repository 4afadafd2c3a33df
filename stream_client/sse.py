# =============================================================================
# Stream Client -- Server-Sent Events Transport
# =============================================================================
#
# Binds the lifecycle engine to a unidirectional text/event-stream
# response.  The id of every delivered event is kept so a reconnect can
# resume with Last-Event-ID.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Coroutine

import httpx

from ._logging import logger
from .config import ConnectionPolicy
from .connection import StreamConnection
from .constants import SSE_CONTENT_TYPE, SSE_DEFAULT_EVENT, SSE_LAST_EVENT_ID_HEADER
from .errors import StreamConnectionError, UnsupportedOperationError
from .transport import ChannelSink, Transport


@dataclass(frozen=True, slots=True)
class EventData:
    """A single server-sent event.

    Attributes:
        data: Event payload; multiple ``data:`` lines are joined with ``\\n``.
        event: Event type, ``"message"`` when the server sets none.
        id: Last event id seen on the stream, ``None`` if never set.
        retry: Reconnection time in milliseconds advertised by the server.
    """

    data: str
    event: str = SSE_DEFAULT_EVENT
    id: str | None = None
    retry: int | None = None


class ServerSentEventDecoder:
    """Incremental line decoder for the ``text/event-stream`` format.

    Feed one line at a time (without the line terminator).  A blank line
    dispatches the buffered event.  The last event id persists across
    events until the server sends a new one.
    """

    def __init__(self, last_event_id: str | None = None) -> None:
        self._last_event_id = last_event_id or ""
        self._event = ""
        self._data: list[str] = []
        self._retry: int | None = None

    def decode(self, line: str) -> EventData | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self._last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _dispatch(self) -> EventData | None:
        if not self._data:
            self._event = ""
            return None
        event = EventData(
            data="\n".join(self._data),
            event=self._event or SSE_DEFAULT_EVENT,
            id=self._last_event_id or None,
            retry=self._retry,
        )
        self._event = ""
        self._data = []
        return event


class EventStreamTransport(Transport):
    """Event-stream channel slot on the shared ``httpx.AsyncClient``."""

    def __init__(self, policy: ConnectionPolicy) -> None:
        super().__init__(policy)
        self.last_event_id: str | None = policy.last_event_id
        self._response: httpx.Response | None = None
        self._reader: asyncio.Task[None] | None = None
        self._open_lock = asyncio.Lock()
        self._background_tasks: set[asyncio.Task[Any]] = set()

    @property
    def is_open(self) -> bool:
        return self._response is not None and not self._response.is_closed

    @property
    def resume_token(self) -> str | None:
        return self.last_event_id

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": SSE_CONTENT_TYPE, "Cache-Control": "no-cache"}
        headers.update(self.policy.headers)
        if self.last_event_id:
            headers[SSE_LAST_EVENT_ID_HEADER] = self.last_event_id
        return headers

    async def open(self, sink: ChannelSink) -> bool:
        async with self._open_lock:
            if self._response is not None:
                return False

            http = self.policy.context.http
            logger.info("Connecting to %s (last event id: %s)", self.policy.url, self.last_event_id)
            request = http.build_request(
                "GET",
                self.policy.url,
                headers=self._headers(),
                timeout=httpx.Timeout(self.policy.connect_timeout, read=None),
            )
            response = await http.send(request, stream=True)
            if response.is_error:
                await response.aclose()
                raise StreamConnectionError(
                    f"{self.policy.url} returned HTTP {response.status_code}"
                )

            self._response = response
            self._reader = asyncio.get_running_loop().create_task(
                self._read_loop(response, sink)
            )
            return True

    async def send(self, data: Any) -> None:
        raise UnsupportedOperationError("Event streams are receive-only")

    def close_channel(self) -> None:
        response, self._response = self._response, None
        reader, self._reader = self._reader, None
        if reader is not None and reader is not _current_task():
            reader.cancel()
        if response is not None:
            self._fire_task(response.aclose())

    def close_info(self) -> str | None:
        return self.last_event_id

    async def _read_loop(self, response: httpx.Response, sink: ChannelSink) -> None:
        """Decode events and deliver them until the stream ends."""
        decoder = ServerSentEventDecoder(self.last_event_id)
        error: Exception | None = None
        try:
            async for line in response.aiter_lines():
                if self._response is not response or not sink.accepting:
                    return
                event = decoder.decode(line)
                if event is None:
                    continue
                # Record before delivery so a failing callback cannot lose the
                # cursor.  An empty "id:" field clears it.
                self.last_event_id = event.id
                sink.deliver(event)
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.warning("Event stream from %s failed: %s", self.policy.url, exc)
            error = exc
        else:
            logger.info("Event stream from %s closed by the server", self.policy.url)

        if self._response is not response:
            return
        self.close_channel()
        sink.remote_closed(self.last_event_id, error)

    def _fire_task(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        try:
            task = self.policy.context.loop.create_task(coro)
        except RuntimeError:
            coro.close()
            return
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class SseConnection(StreamConnection):
    """Server-Sent Events connection that resumes from the last event id.

    ``on_event`` receives :class:`EventData`; ``on_close`` and ``close()``
    give back the last delivered event id.
    """

    def __init__(self, policy: ConnectionPolicy) -> None:
        super().__init__(policy, EventStreamTransport(policy))

    @property
    def last_event_id(self) -> str | None:
        return self._transport.last_event_id
