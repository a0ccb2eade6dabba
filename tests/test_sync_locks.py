"""Tests for per-ticket locks."""

import threading
import time

from tract_sync.sync.locks import TicketLocks


class TestTicketLocks:
    def test_hold_and_release(self):
        locks = TicketLocks()
        with locks.hold("APP-1"):
            assert locks.is_held("APP-1")
            assert not locks.is_held("APP-2")
        assert not locks.is_held("APP-1")

    def test_hold_several_ids(self):
        locks = TicketLocks()
        with locks.hold("APP-2", "APP-1", "APP-2"):
            assert locks.is_held("APP-1")
            assert locks.is_held("APP-2")
        assert not locks.is_held("APP-1")
        assert not locks.is_held("APP-2")

    def test_lock_reused_for_same_id(self):
        locks = TicketLocks()
        assert locks._lock_for("APP-1") is locks._lock_for("APP-1")
        assert locks._lock_for("APP-1") is not locks._lock_for("APP-2")

    def test_released_on_error(self):
        locks = TicketLocks()
        try:
            with locks.hold("APP-1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert not locks.is_held("APP-1")

    def test_same_id_serialized(self):
        locks = TicketLocks()
        events: list[str] = []
        entered = threading.Event()

        def slow():
            with locks.hold("APP-1"):
                entered.set()
                events.append("slow-start")
                time.sleep(0.05)
                events.append("slow-end")

        def fast():
            entered.wait()
            with locks.hold("APP-1"):
                events.append("fast")

        threads = [threading.Thread(target=slow), threading.Thread(target=fast)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert events == ["slow-start", "slow-end", "fast"]

    def test_different_ids_do_not_contend(self):
        locks = TicketLocks()
        with locks.hold("APP-1"):
            done = threading.Event()

            def other():
                with locks.hold("APP-2"):
                    done.set()

            thread = threading.Thread(target=other)
            thread.start()
            assert done.wait(timeout=5)
            thread.join(timeout=5)

    def test_overlapping_sets_do_not_deadlock(self):
        locks = TicketLocks()
        finished: list[str] = []

        def worker(name, ids):
            for _ in range(50):
                with locks.hold(*ids):
                    pass
            finished.append(name)

        a = threading.Thread(target=worker, args=("a", ("APP-1", "APP-2")))
        b = threading.Thread(target=worker, args=("b", ("APP-2", "APP-1")))
        a.start()
        b.start()
        a.join(timeout=5)
        b.join(timeout=5)

        assert sorted(finished) == ["a", "b"]
