from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .deadlines import Deadline, DeadlineStore
from .timer import Clock, ReusableTimer, SystemClock
from .utils import fmt_duration

logger = logging.getLogger(__name__)

OnExpire = Callable[[str, float], None]


class DebounceScheduler:
    """Runs ``on_expire(key, deadline)`` once a key's deadline has passed.

    ``set`` may be called from any thread, including from inside
    ``on_expire``; the store and the timer are only touched under ``_lock``,
    and the lock is released while the callback runs. One background thread
    processes deadlines earliest first, one at a time.
    """

    def __init__(self, on_expire: OnExpire, *, clock: Optional[Clock] = None, name: str = "debounce-scheduler"):
        self._on_expire = on_expire
        self._clock = clock or SystemClock()
        self._name = name
        self._lock = threading.Lock()
        self._store = DeadlineStore()
        self._timer = ReusableTimer(self._clock)
        self._closed = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self) -> "DebounceScheduler":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._store)

    def next_deadline(self) -> Optional[Deadline]:
        with self._lock:
            return self._store.peek_earliest()

    def start(self) -> None:
        if self._closed.is_set():
            raise RuntimeError("scheduler is closed")
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def set(self, key: str, deadline: float) -> None:
        if self._closed.is_set():
            logger.warning("scheduler closed, dropping deadline for %s", key)
            return
        with self._lock:
            self._store.set(key, deadline)
            self._rearm()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        with self._lock:
            self._timer.stop()
            dropped = len(self._store)
        if dropped:
            logger.info("dropping %d pending deadline(s)", dropped)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _rearm(self) -> Optional[float]:
        """Arm the timer for the earliest entry; caller holds ``_lock``."""
        entry = self._store.peek_earliest()
        if entry is None:
            return None
        self._timer.arm_at(entry.deadline)
        return entry.deadline - self._clock.now()

    def _next_due(self) -> Optional[Deadline]:
        with self._lock:
            entry = self._store.peek_earliest()
            if entry is None:
                logger.debug("no deadlines, sleeping")
                return None
            if entry.deadline > self._clock.now():
                # moved later by a concurrent set after the timer fired
                self._rearm()
                return None
            return self._store.pop_earliest()

    def _run(self) -> None:
        while self._timer.wait(self._closed.is_set):
            entry = self._next_due()
            if entry is None:
                continue

            # no lock here, on_expire may call set()
            logger.debug("processing: %s", entry.key)
            try:
                self._on_expire(entry.key, entry.deadline)
            except Exception:
                logger.exception("error while processing %s", entry.key)

            with self._lock:
                delay = self._rearm()
            if delay is None:
                logger.debug("no more deadlines left, sleeping")
            else:
                logger.debug("next deadline in: %s", fmt_duration(delay))
        logger.debug("scheduler stopped")
