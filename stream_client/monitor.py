# =============================================================================
# Stream Client -- Connection Monitor
# =============================================================================
#
# Registry of live connections and their teardown actions, drained on
# shutdown so no socket or stream outlives the client.
# =============================================================================

from __future__ import annotations

import threading
from typing import Any, Callable

from ._logging import logger

TeardownAction = Callable[[], Any]


class ConnectionMonitor:
    """Thread-safe mapping of connection id to teardown action.

    Connections register themselves once a channel is open and
    unregister when it is released.  ``shutdown_all()`` runs every
    registered action and leaves the registry empty, so the monitor can
    keep serving connections created afterwards.
    """

    def __init__(self) -> None:
        self._connections: dict[str, TeardownAction] = {}
        self._lock = threading.Lock()

    def add(self, connection_id: str, action: TeardownAction) -> None:
        with self._lock:
            self._connections[connection_id] = action

    def remove(self, connection_id: str) -> None:
        with self._lock:
            self._connections.pop(connection_id, None)

    def shutdown_all(self) -> int:
        """Run every teardown action and clear the registry.

        Actions run outside the lock because they call back into
        ``remove()``.  A failing action is logged and the rest still run.

        Returns:
            Number of actions invoked.
        """
        with self._lock:
            actions = list(self._connections.items())
            self._connections.clear()

        for connection_id, action in actions:
            try:
                action()
            except Exception as exc:
                logger.error("Error closing connection %s: %s", connection_id, exc)

        if actions:
            logger.info("Closed %d connection(s)", len(actions))
        return len(actions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections
