"""Shared fixtures for stream client tests."""

import asyncio
import socket

import pytest

from stream_client.config import ConnectionPolicy, ExecutionContext
from stream_client.errors import NotConnectedError
from stream_client.transport import Transport


class FakeTransport(Transport):
    """In-memory transport driven by the test.

    ``failures`` opens fail before one succeeds; ``-1`` fails forever.
    """

    def __init__(self, policy, failures: int = 0):
        super().__init__(policy)
        self.failures = failures
        self.open_calls = 0
        self.close_calls = 0
        self.graceful_closes = 0
        self.sent = []
        self.sink = None
        self.gate: asyncio.Event | None = None
        self._opened = False
        self._lock = asyncio.Lock()

    @property
    def is_open(self):
        return self._opened

    async def open(self, sink):
        async with self._lock:
            self.open_calls += 1
            if self.gate is not None:
                await self.gate.wait()
            if self._opened:
                return False
            if self.failures != 0:
                if self.failures > 0:
                    self.failures -= 1
                raise ConnectionRefusedError("connection refused")
            self._opened = True
            self.sink = sink
            return True

    async def send(self, data):
        if not self._opened:
            raise NotConnectedError("not connected")
        self.sent.append(data)

    async def close(self):
        if self._opened:
            self.graceful_closes += 1
        self.close_channel()

    def close_channel(self):
        self.close_calls += 1
        self._opened = False

    def close_info(self):
        return "client-close"

    # -- Test helpers ---------------------------------------------------------

    def push(self, data):
        self.sink.deliver(data)

    def drop(self, info="server-close", error=None):
        """Simulate the peer closing the channel."""
        self._opened = False
        self.sink.remote_closed(info, error)


@pytest.fixture()
def make_policy():
    """Build a policy on the running loop with fast retries."""

    def factory(url="ws://test/stream", **kwargs):
        kwargs.setdefault("retry_interval", 0.01)
        kwargs.setdefault(
            "context", ExecutionContext(asyncio.get_running_loop())
        )
        return ConnectionPolicy(url=url, **kwargs)

    return factory


@pytest.fixture()
def wait_until():
    """Poll *predicate* on the loop until it holds or *timeout* expires."""

    async def waiter(predicate, timeout: float = 3.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return waiter


@pytest.fixture()
def unused_port():
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
