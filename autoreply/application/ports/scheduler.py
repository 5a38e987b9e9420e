from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> bool:
        """
        Cancel the timer if it has not fired yet.
        Returns True only when this call prevented the callback from running.
        Safe to call any number of times, before or after the timer fired.
        """
        raise NotImplementedError


class SchedulerPort(ABC):
    @abstractmethod
    def now(self) -> float:
        """Current time as epoch seconds."""
        raise NotImplementedError

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        raise NotImplementedError
