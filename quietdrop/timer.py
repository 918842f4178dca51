from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional


class Clock(ABC):
    @abstractmethod
    def now(self) -> float:
        ...


class SystemClock(Clock):
    """Wall clock, on the same scale as file modification times."""

    def now(self) -> float:
        return time.time()


class TimerState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"  # fired, not yet drained by the consumer


class ReusableTimer:
    """Single-shot alarm that can be rearmed without racing its own firing.

    One consumer observes firings through ``wait``/``poll``; any number of
    threads may ``arm`` or ``stop`` it. A firing that has happened but was
    not consumed is drained by the next ``arm``, so after ``arm`` returns the
    consumer can only be woken by the new schedule.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._cond = threading.Condition()
        self._state = TimerState.IDLE
        self._fire_at = 0.0
        # bootstrap into a drained, idle alarm
        self.arm(0)
        self.poll()

    @property
    def state(self) -> TimerState:
        with self._cond:
            self._check_fired()
            return self._state

    @property
    def drained(self) -> bool:
        return self.state is not TimerState.FIRED

    @property
    def fire_at(self) -> Optional[float]:
        with self._cond:
            return self._fire_at if self._state is TimerState.ARMED else None

    def arm(self, delay: float) -> None:
        self.arm_at(self._clock.now() + delay)

    def arm_at(self, when: float) -> None:
        with self._cond:
            self._cancel()
            self._fire_at = when
            self._state = TimerState.ARMED
            self._check_fired()
            self._cond.notify_all()

    def stop(self) -> None:
        with self._cond:
            self._cancel()
            self._cond.notify_all()

    def poll(self) -> bool:
        with self._cond:
            return self._consume()

    def wait(self, cancelled: Callable[[], bool]) -> bool:
        """Block until the current arm fires or ``cancelled()`` holds.

        Returns True for a firing (which is drained), False on cancellation.
        ``cancelled`` must become true before ``stop`` is called, ``stop`` is
        what wakes the waiter.
        """
        with self._cond:
            while True:
                if cancelled():
                    return False
                if self._consume():
                    return True
                timeout = None
                if self._state is TimerState.ARMED:
                    timeout = max(0.0, self._fire_at - self._clock.now())
                self._cond.wait(timeout)

    def _check_fired(self) -> None:
        if self._state is TimerState.ARMED and self._clock.now() >= self._fire_at:
            self._state = TimerState.FIRED

    def _consume(self) -> bool:
        self._check_fired()
        if self._state is TimerState.FIRED:
            self._state = TimerState.IDLE
            return True
        return False

    def _cancel(self) -> None:
        # an undelivered firing (ARMED and overdue, or FIRED) is dropped here
        self._state = TimerState.IDLE
