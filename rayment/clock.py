"""
Clock: injectable time source and sleep.

Lifecycles never call time.time() or time.sleep() directly; they ask a Clock.
SystemClock is the real one. ManualClock advances instantly on sleep so tests
can run deadlines and backoff without waiting.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Optional


class Clock(ABC):
    @abstractmethod
    def now(self) -> float:
        """Current Unix time in seconds."""
        ...

    @abstractmethod
    def sleep(self, seconds: float, stop: Optional[threading.Event] = None) -> bool:
        """
        Suspend for `seconds`. Returns True if `stop` was set (early wake-up),
        False if the full interval elapsed.
        """
        ...


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float, stop: Optional[threading.Event] = None) -> bool:
        seconds = max(0.0, seconds)
        if stop is None:
            time.sleep(seconds)
            return False
        return stop.wait(seconds)


class ManualClock(Clock):
    """Clock whose time only moves when sleep() or advance() is called."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float, stop: Optional[threading.Event] = None) -> bool:
        if stop is not None and stop.is_set():
            return True
        self.advance(max(0.0, seconds))
        return stop is not None and stop.is_set()
