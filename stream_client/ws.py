# =============================================================================
# Stream Client -- WebSocket Transport
# =============================================================================
#
# Binds the lifecycle engine to a bidirectional, message-oriented channel.
# Frames go to on_event in receive order; a close the client did not
# start triggers a reconnect.
# =============================================================================

from __future__ import annotations

import asyncio

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from ._logging import logger
from .config import ConnectionPolicy
from .connection import StreamConnection
from .constants import CLOSE_TIMEOUT, MAX_MESSAGE_SIZE, WS_CLOSE_NO_STATUS
from .errors import NotConnectedError
from .transport import ChannelSink, Transport
from .types import CloseMessage


class WebSocketTransport(Transport):
    """WebSocket channel slot on top of ``websockets``.

    ``send()`` and the graceful ``close()`` share one lock so a close
    frame never interleaves with an outgoing message.
    """

    def __init__(self, policy: ConnectionPolicy) -> None:
        super().__init__(policy)
        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._open_lock = asyncio.Lock()
        self._io_lock = asyncio.Lock()
        self.close_message = CloseMessage()

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    @property
    def channel(self) -> ClientConnection | None:
        return self._ws

    async def open(self, sink: ChannelSink) -> bool:
        async with self._open_lock:
            if self._ws is not None:
                return False

            logger.info("Connecting to %s", self.policy.url)
            ws = await connect(
                self.policy.url,
                additional_headers=self.policy.headers or None,
                open_timeout=self.policy.connect_timeout,
                close_timeout=CLOSE_TIMEOUT,
                max_size=MAX_MESSAGE_SIZE,
            )
            self._ws = ws
            self.close_message = CloseMessage()
            self._recv_task = asyncio.get_running_loop().create_task(
                self._recv_loop(ws, sink)
            )
            return True

    async def send(self, data: str | bytes) -> None:
        async with self._io_lock:
            ws = self._ws
            if ws is None or ws.state is not State.OPEN:
                raise NotConnectedError(f"Not connected to {self.policy.url}")
            try:
                await ws.send(data)
            except ConnectionClosed as exc:
                raise NotConnectedError(f"Connection to {self.policy.url} closed") from exc

    async def close(self) -> None:
        """Send a close frame, then release the channel."""
        ws = self._detach()
        if ws is None:
            return
        message = self.close_message
        async with self._io_lock:
            try:
                await ws.close(message.code, message.reason)
            except Exception as exc:
                logger.debug("Close handshake failed: %s", exc)
                ws.transport.abort()

    def close_channel(self) -> None:
        ws = self._detach()
        if ws is not None:
            ws.transport.abort()

    def close_info(self) -> CloseMessage:
        return self.close_message

    def _detach(self) -> ClientConnection | None:
        ws, self._ws = self._ws, None
        self._recv_task = None
        return ws

    async def _recv_loop(self, ws: ClientConnection, sink: ChannelSink) -> None:
        """Forward frames until the socket closes."""
        error: Exception | None = None
        try:
            async for message in ws:
                if self._ws is not ws or not sink.accepting:
                    return
                sink.deliver(message)
        except ConnectionClosed as exc:
            logger.debug("WebSocket closed: %s", exc)
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.warning("Receive loop error: %s", exc)
            error = exc

        if self._ws is not ws:
            # Closed by the client
            return

        info = CloseMessage(ws.close_code or WS_CLOSE_NO_STATUS, ws.close_reason or "")
        logger.info(
            "Connection to %s closed by peer (code=%d reason=%s)",
            self.policy.url,
            info.code,
            info.reason,
        )
        self.close_channel()
        sink.remote_closed(info, error)


class WsConnection(StreamConnection):
    """WebSocket connection with automatic reconnection.

    Inbound text frames arrive at ``on_event`` as ``str``, binary frames
    as ``bytes``.  ``on_close`` receives a :class:`CloseMessage`.
    """

    def __init__(self, policy: ConnectionPolicy) -> None:
        super().__init__(policy, WebSocketTransport(policy))

    @property
    def channel(self) -> ClientConnection | None:
        return self._transport.channel

    def close(self, message: CloseMessage | None = None) -> None:
        """Close with a close frame carrying *message* (default 1000)."""
        self._transport.close_message = message or CloseMessage()
        super().close()

    async def send_text(self, message: str) -> None:
        await self.send(message)

    async def send_binary(self, data: bytes | bytearray | memoryview) -> None:
        await self.send(bytes(data))
