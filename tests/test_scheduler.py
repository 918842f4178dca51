import threading
import time

import pytest

from quietdrop.deadlines import Deadline
from quietdrop.scheduler import DebounceScheduler
from quietdrop.timer import Clock, TimerState


class FakeClock(Clock):
    def __init__(self, t: float = 1000.0):
        self.t = t

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class Recorder:
    def __init__(self, fn=None):
        self.calls = []
        self.fn = fn
        self.cond = threading.Condition()

    def __call__(self, key, deadline):
        with self.cond:
            self.calls.append((key, deadline, time.time()))
            self.cond.notify_all()
        if self.fn:
            self.fn(key, deadline)

    def wait_for(self, n, timeout=2.0):
        with self.cond:
            return self.cond.wait_for(lambda: len(self.calls) >= n, timeout)

    @property
    def keys(self):
        return [c[0] for c in self.calls]


def test_fires_once_per_key_not_before_deadline():
    rec = Recorder()
    with DebounceScheduler(rec) as s:
        now = time.time()
        s.set("a", now + 0.05)
        s.set("b", now + 0.08)
        assert rec.wait_for(2)
        time.sleep(0.1)
    assert sorted(rec.keys) == ["a", "b"]
    for key, deadline, fired_at in rec.calls:
        assert fired_at >= deadline


def test_overwrite_fires_once_at_later_deadline():
    rec = Recorder()
    with DebounceScheduler(rec) as s:
        now = time.time()
        s.set("a", now + 0.05)
        s.set("a", now + 0.15)
        assert rec.wait_for(1)
        time.sleep(0.1)
    assert len(rec.calls) == 1
    key, deadline, fired_at = rec.calls[0]
    assert deadline == pytest.approx(now + 0.15)
    assert fired_at >= now + 0.15


def test_lowering_deadline_rearms_earlier():
    rec = Recorder()
    with DebounceScheduler(rec) as s:
        start = time.time()
        s.set("a", start + 0.5)
        time.sleep(0.05)
        s.set("a", time.time() + 0.01)
        assert rec.wait_for(1)
    elapsed = rec.calls[0][2] - start
    assert elapsed < 0.3
    assert len(rec.calls) == 1


def test_earliest_key_fires_first():
    rec = Recorder()
    with DebounceScheduler(rec) as s:
        now = time.time()
        t1 = threading.Thread(target=s.set, args=("a", now + 0.1))
        t2 = threading.Thread(target=s.set, args=("b", now + 0.02))
        for th in (t1, t2):
            th.start()
        for th in (t1, t2):
            th.join()
        assert rec.wait_for(2)
    assert rec.keys == ["b", "a"]


def test_new_nearer_key_wakes_loop():
    rec = Recorder()
    with DebounceScheduler(rec) as s:
        start = time.time()
        s.set("far", start + 1.0)
        time.sleep(0.02)
        s.set("near", time.time() + 0.02)
        assert rec.wait_for(1)
        assert rec.keys == ["near"]
        assert rec.calls[0][2] - start < 0.5
        assert s.pending == 1
        assert s.next_deadline() == Deadline("far", start + 1.0)


def test_callback_error_does_not_stop_loop():
    def boom(key, deadline):
        if len(rec.calls) == 1:
            raise RuntimeError("callback failed")

    rec = Recorder(boom)
    with DebounceScheduler(rec) as s:
        s.set("a", time.time() + 0.01)
        assert rec.wait_for(1)
        s.set("a", time.time() + 0.01)
        assert rec.wait_for(2)
    assert rec.keys == ["a", "a"]


def test_reentrant_set_from_callback():
    def again(key, deadline):
        if len(rec.calls) == 1:
            s.set(key, time.time() + 0.03)

    rec = Recorder(again)
    s = DebounceScheduler(rec)
    with s:
        s.set("a", time.time() + 0.01)
        assert rec.wait_for(2)
        time.sleep(0.1)
    assert rec.keys == ["a", "a"]
    assert rec.calls[1][2] >= rec.calls[1][1]


def test_reentrant_set_races_external_set():
    def again(key, deadline):
        if len(rec.calls) == 1:
            s.set(key, time.time() + 0.02)

    rec = Recorder(again)
    s = DebounceScheduler(rec)
    stop = threading.Event()

    def producer():
        while not stop.is_set():
            s.set("other", time.time() + 10)
            time.sleep(0.001)

    with s:
        th = threading.Thread(target=producer)
        th.start()
        s.set("a", time.time() + 0.01)
        assert rec.wait_for(2)
        stop.set()
        th.join()
    assert rec.keys == ["a", "a"]


def test_close_with_no_pending_entries_is_immediate():
    s = DebounceScheduler(Recorder())
    s.start()
    t0 = time.monotonic()
    s.close()
    assert time.monotonic() - t0 < 0.5
    s.close()


def test_close_waits_for_running_callback():
    entered = threading.Event()
    finished = threading.Event()

    def slow(key, deadline):
        entered.set()
        time.sleep(0.1)
        finished.set()

    s = DebounceScheduler(slow)
    s.start()
    s.set("a", time.time())
    assert entered.wait(2)
    s.close()
    assert finished.is_set()


def test_close_from_callback_does_not_deadlock():
    done = threading.Event()

    def closer(key, deadline):
        s.close()
        done.set()

    s = DebounceScheduler(closer)
    s.start()
    s.set("a", time.time())
    assert done.wait(2)
    s._thread.join(timeout=2)
    assert not s._thread.is_alive()


def test_set_after_close_is_ignored():
    rec = Recorder()
    s = DebounceScheduler(rec)
    s.start()
    s.close()
    s.set("a", time.time())
    assert s.pending == 0
    assert rec.calls == []


def test_wake_with_empty_store_goes_back_to_sleep():
    rec = Recorder()
    clock = FakeClock()
    s = DebounceScheduler(rec, clock=clock)
    assert s._next_due() is None
    assert s._timer.state is TimerState.IDLE
    assert rec.calls == []

    with s:
        # fire with nothing stored, then make sure the loop still serves entries
        s._timer.arm(0)
        s.set("a", clock.now())
        assert rec.wait_for(1)
    assert rec.keys == ["a"]


def test_entry_moved_later_after_fire_is_not_popped():
    rec = Recorder()
    clock = FakeClock()
    s = DebounceScheduler(rec, clock=clock)
    s.set("a", clock.now() + 10)
    clock.advance(20)
    # the loop consumed the firing, then a set moved the entry past now
    assert s._timer.poll()
    later = clock.now() + 30
    s._store.set("a", later)

    assert s._next_due() is None
    assert s.pending == 1
    assert s.next_deadline() == Deadline("a", later)
    assert s._timer.state is TimerState.ARMED
    assert s._timer.fire_at == later
    assert rec.calls == []

    clock.advance(30)
    assert s._next_due() == Deadline("a", later)
    assert s.pending == 0
