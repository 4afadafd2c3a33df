# =============================================================================
# Stream Client -- Connection Lifecycle
# =============================================================================
#
# Transport-independent connect / retry / reconnect policy.  Attempts are
# discrete tasks scheduled on the context loop; a failed attempt schedules
# the next one instead of recursing.
# =============================================================================

from __future__ import annotations

import asyncio
import concurrent.futures
import uuid
import weakref
from dataclasses import dataclass
from typing import Any, Callable

from ._logging import logger
from .config import ConnectionPolicy
from .constants import CLOSE_TIMEOUT, CONNECTION_ID_LENGTH
from .errors import NotConnectedError, RetriesExceededError
from .transport import Transport
from .types import ConnectionState


@dataclass(frozen=True, slots=True)
class _Attempt:
    """One scheduled connect attempt."""

    number: int
    delay: float
    is_reconnection: bool


class StreamConnection:
    """One logical stream kept alive across network failures.

    ``connect()`` and ``close()`` may be called from any thread; they
    return immediately and the work runs on the policy's event loop.
    Callbacks are invoked from that loop only, so a connection never runs
    two callbacks at the same time and events arrive in receive order.

    Args:
        policy: Target, retry budget and callbacks.
        transport: Channel implementation (WebSocket or event stream).
    """

    def __init__(self, policy: ConnectionPolicy, transport: Transport) -> None:
        self.id = uuid.uuid4().hex[:CONNECTION_ID_LENGTH]
        self._policy = policy
        self._transport = transport

        self._state = ConnectionState.IDLE
        self._retries = 0
        self._shutting_down = False
        self._live = False
        self._last_error: Exception | None = None

        self._tasks: set[asyncio.Task[Any]] = set()

    # -- Properties -----------------------------------------------------------

    @property
    def policy(self) -> ConnectionPolicy:
        return self._policy

    @property
    def url(self) -> str:
        return self._policy.url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return not self._shutting_down and self._transport.is_open

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    # -- Public API -----------------------------------------------------------

    def connect(self) -> StreamConnection:
        """Start a new connect cycle with a fresh retry budget."""
        self._shutting_down = False
        if not self._policy.context.call_soon(self._begin):
            logger.warning("Scheduler shut down, not connecting to %s", self.url)
        return self

    def close(self) -> str | None:
        """Stop the connection and cancel any pending reconnect.

        An attempt that is already running is not interrupted; it sees the
        shutdown flag when it finishes and releases its channel.

        From another thread this waits until the loop has taken the
        resume token, so the token never names an event that ``on_event``
        is still handling.

        Returns:
            The resume token of the transport (the last delivered event id
            for event streams, ``None`` for WebSockets).
        """
        self._shutting_down = True
        context = self._policy.context
        if context.in_loop_thread():
            token = self._transport.resume_token
            self._close_on_loop()
            return token

        captured: concurrent.futures.Future[str | None] = concurrent.futures.Future()
        if not context.call_soon(self._capture_and_close, captured):
            logger.debug("Scheduler shut down, releasing %s in place", self.id)
            self._policy.monitor.remove(self.id)
            self._transport.close_channel()
            return self._transport.resume_token
        try:
            return captured.result(timeout=CLOSE_TIMEOUT)
        except concurrent.futures.TimeoutError:
            logger.warning("Scheduler busy, resume token of %s may be stale", self.id)
            return self._transport.resume_token

    async def send(self, data: Any) -> None:
        """Send *data* on the open channel.

        Raises:
            NotConnectedError: No channel is open.
        """
        if self._shutting_down or not self._transport.is_open:
            raise NotConnectedError(f"Not connected to {self.url}")
        await self._transport.send(data)

    def retry(self) -> bool:
        """Schedule another attempt after the retry interval."""
        return self.try_connect(False, self._policy.retry_interval)

    def reconnect(self) -> bool:
        """React to the loss of a live channel."""
        if not self._policy.auto_reconnect:
            logger.info("Connection to %s closed, auto-reconnect disabled", self.url)
            return False
        return self.try_connect(True, self._policy.retry_interval)

    def try_connect(self, is_reconnection: bool, delay: float) -> bool:
        """Gate and schedule one connect attempt.

        Must run on the loop thread.

        Returns:
            True if an attempt was scheduled.
        """
        policy = self._policy
        self._retries += 1
        # A budget of zero still allows the first attempt
        budget = max(policy.max_retries, 1)
        if not policy.unbounded and self._retries > budget:
            self._last_error = RetriesExceededError(policy.max_retries)
            logger.error("%s", self._last_error)
            self._set_state(ConnectionState.FAILED)
            self._invoke("on_retries_exceeded")
            return False

        if self._shutting_down or (is_reconnection and not policy.auto_reconnect):
            return False

        attempt = _Attempt(self._retries, delay, is_reconnection)
        if not policy.context.call_soon(self._launch, attempt):
            logger.warning("Scheduler service shut down, not reconnecting to %s", self.url)
            return False

        logger.info(
            "Connecting to %s in %.2fs (attempt %d of %s)",
            self.url,
            delay,
            attempt.number,
            "inf" if policy.unbounded else budget,
        )
        if not self._transport.is_open:
            self._set_state(
                ConnectionState.RECONNECTING if delay > 0 else ConnectionState.CONNECTING
            )
        return True

    # -- ChannelSink ----------------------------------------------------------

    @property
    def accepting(self) -> bool:
        return not self._shutting_down

    def deliver(self, data: Any) -> None:
        try:
            self._policy.on_event(data)
        except Exception as exc:
            logger.error("on_event callback failed on %s: %s", self.id, exc)
            self._invoke("on_error", exc)

    def remote_closed(self, info: Any, error: Exception | None = None) -> None:
        self._policy.monitor.remove(self.id)
        was_live, self._live = self._live, False
        if self._shutting_down:
            return

        if error is not None:
            self._last_error = error
            self._invoke("on_error", error)
        self._set_state(ConnectionState.IDLE)
        if was_live:
            self._invoke("on_close", info)
        self.reconnect()

    # -- Internal: attempts ---------------------------------------------------

    def _begin(self) -> None:
        self._retries = 0
        self.try_connect(False, 0)

    def _launch(self, attempt: _Attempt) -> None:
        task = self._policy.context.loop.create_task(self._run_attempt(attempt))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_attempt(self, attempt: _Attempt) -> None:
        if attempt.delay > 0:
            await asyncio.sleep(attempt.delay)

        if (
            self._shutting_down
            or not self._policy.context.accepting_work
            or (attempt.is_reconnection and not self._policy.auto_reconnect)
        ):
            logger.debug("Skipping attempt %d on %s", attempt.number, self.id)
            return
        if self._transport.is_open:
            logger.debug("Already connected to %s (%s)", self.url, self.id)
            self._retries = 0
            return

        self._set_state(ConnectionState.CONNECTING)
        try:
            opened = await self._transport.open(self)
        except Exception as exc:
            logger.warning("Failed to connect to %s: %s", self.url, exc)
            self._last_error = exc
            self._invoke("on_failed_attempt")
            self._invoke("on_error", exc)
            self._transport.close_channel()
            self.retry()
            return

        self._retries = 0
        if not opened:
            # Another attempt won the race for the channel
            if self._transport.is_open and self._live:
                self._set_state(ConnectionState.CONNECTED)
            return
        if self._shutting_down or not self._policy.context.accepting_work:
            # close() or client shutdown ran while the handshake was in flight
            self._transport.close_channel()
            self._set_state(ConnectionState.IDLE)
            return

        self._live = True
        self._policy.monitor.add(self.id, _teardown(self))
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to %s (%s)", self.url, self.id)
        self._invoke("on_open")

    # -- Internal: close ------------------------------------------------------

    def _capture_and_close(self, captured: concurrent.futures.Future[str | None]) -> None:
        captured.set_result(self._transport.resume_token)
        self._close_on_loop()

    def _close_on_loop(self) -> None:
        self._policy.monitor.remove(self.id)
        was_live, self._live = self._live, False
        if not (was_live or self._transport.is_open):
            self._transport.close_channel()
            self._set_state(ConnectionState.IDLE)
            return

        self._set_state(ConnectionState.CLOSING)
        task = self._policy.context.loop.create_task(self._finish_close(was_live))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _finish_close(self, was_live: bool) -> None:
        try:
            await self._transport.close()
        except Exception as exc:
            logger.warning("Error while closing %s: %s", self.id, exc)
            self._transport.close_channel()
        if self._shutting_down:
            self._set_state(ConnectionState.IDLE)
        if was_live:
            self._invoke("on_close", self._transport.close_info())
        logger.info("Disconnected from %s (%s)", self.url, self.id)

    # -- Internal: helpers ----------------------------------------------------

    def _invoke(self, name: str, *args: Any) -> None:
        try:
            getattr(self._policy, name)(*args)
        except Exception as exc:
            logger.error("%s callback failed on %s: %s", name, self.id, exc)

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("%s state: %s -> %s", self.id, old.value, new_state.value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.url} {self._state.value}>"


def _teardown(connection: StreamConnection) -> Callable[[], None]:
    """Monitor action that closes *connection* without keeping it alive."""
    ref = weakref.ref(connection)

    def action() -> None:
        conn = ref()
        if conn is not None:
            conn.close()

    return action
