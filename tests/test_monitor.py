"""Tests for the connection monitor registry."""

import threading
from unittest.mock import MagicMock

from stream_client.monitor import ConnectionMonitor


class TestRegistry:
    def test_add_and_remove(self):
        monitor = ConnectionMonitor()
        monitor.add("abc", lambda: None)
        assert "abc" in monitor
        assert len(monitor) == 1

        monitor.remove("abc")
        assert "abc" not in monitor
        assert len(monitor) == 0

    def test_remove_missing_is_noop(self):
        monitor = ConnectionMonitor()
        monitor.remove("missing")
        assert len(monitor) == 0

    def test_reused_id_last_write_wins(self):
        monitor = ConnectionMonitor()
        calls = []
        monitor.add("abc", lambda: calls.append("first"))
        monitor.add("abc", lambda: calls.append("second"))
        assert len(monitor) == 1

        monitor.shutdown_all()
        assert calls == ["second"]


class TestShutdownAll:
    def test_runs_every_action_and_clears(self):
        monitor = ConnectionMonitor()
        closed = []
        for conn_id in ("a", "b", "c"):
            monitor.add(conn_id, lambda conn_id=conn_id: closed.append(conn_id))

        assert monitor.shutdown_all() == 3
        assert sorted(closed) == ["a", "b", "c"]
        assert len(monitor) == 0

    def test_failing_action_does_not_stop_others(self):
        monitor = ConnectionMonitor()
        closed = []

        def boom():
            raise RuntimeError("teardown failed")

        monitor.add("a", lambda: closed.append("a"))
        monitor.add("b", boom)
        monitor.add("c", lambda: closed.append("c"))

        monitor.shutdown_all()
        assert sorted(closed) == ["a", "c"]
        assert len(monitor) == 0

    def test_action_may_remove_itself(self):
        monitor = ConnectionMonitor()
        monitor.add("a", lambda: monitor.remove("a"))
        # Would deadlock if actions ran under the lock
        assert monitor.shutdown_all() == 1

    def test_reusable_after_shutdown(self):
        monitor = ConnectionMonitor()
        monitor.add("a", lambda: None)
        monitor.shutdown_all()

        monitor.add("b", lambda: None)
        assert "b" in monitor
        assert monitor.shutdown_all() == 1

    def test_each_action_called_once(self):
        monitor = ConnectionMonitor()
        action = MagicMock()
        monitor.add("a", action)

        monitor.shutdown_all()
        monitor.shutdown_all()
        action.assert_called_once_with()

    def test_empty_shutdown(self):
        assert ConnectionMonitor().shutdown_all() == 0


class TestConcurrency:
    def test_concurrent_add_remove(self):
        monitor = ConnectionMonitor()
        start = threading.Barrier(8)

        def worker(n: int) -> None:
            start.wait()
            for i in range(500):
                key = f"{n}-{i}"
                monitor.add(key, lambda: None)
                if i % 2:
                    monitor.remove(key)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(monitor) == 8 * 250
