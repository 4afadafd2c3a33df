"""Resilient client for server-pushed streams (WebSocket and Server-Sent Events).

Connections reconnect on their own after network failures, with a fixed
backoff and a bounded retry budget.  Event streams resume from the last
delivered event id.

Threaded usage::

    from stream_client import StreamClient

    client = StreamClient(retry_interval=1.0, max_retries=5)
    conn = (
        client.sse("http://localhost:9000/events")
        .on_event(lambda event: print(event.id, event.data))
        .connect()
    )
    ...
    resume_from = conn.close()
    client.shutdown()

Inside an asyncio application::

    client = StreamClient(loop=asyncio.get_running_loop())
    ws = client.ws("ws://localhost:9000/ws").on_event(print).connect()
    await ws.send_text("hello")
    ...
    await client.aclose()
"""

from ._version import __version__
from .client import ConnectionBuilder, StreamClient
from .config import ConnectionPolicy, ExecutionContext
from .connection import StreamConnection
from .constants import UNBOUNDED
from .errors import (
    NotConnectedError,
    RetriesExceededError,
    StreamClientError,
    StreamConnectionError,
    UnsupportedOperationError,
)
from .monitor import ConnectionMonitor
from .sse import EventData, EventStreamTransport, ServerSentEventDecoder, SseConnection
from .transport import ChannelSink, Transport
from .types import CloseMessage, ConnectionState
from .ws import WebSocketTransport, WsConnection

__all__ = [
    "__version__",
    "StreamClient",
    "ConnectionBuilder",
    "ConnectionPolicy",
    "ExecutionContext",
    "ConnectionMonitor",
    "StreamConnection",
    "WsConnection",
    "SseConnection",
    "Transport",
    "ChannelSink",
    "WebSocketTransport",
    "EventStreamTransport",
    "ServerSentEventDecoder",
    "EventData",
    "CloseMessage",
    "ConnectionState",
    "UNBOUNDED",
    "StreamClientError",
    "StreamConnectionError",
    "NotConnectedError",
    "UnsupportedOperationError",
    "RetriesExceededError",
]
