from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    """One-shot delayed callbacks. Callbacks may run on any thread."""

    @abstractmethod
    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class _ThreadTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay_sec), callback)
        timer.daemon = True
        timer.start()
        return _ThreadTimerHandle(timer)
