"""Time sources. The registry only ever reads the clock."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall-clock time in whole Unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    A clock advanced explicitly by its owner.

    Used by tests and simulations to control registry time externally.
    """

    def __init__(self, start: int = 0) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError(
                f"Clock cannot move backwards: {timestamp} < {self._now}"
            )
        self._now = timestamp

    def advance(self, seconds: int) -> int:
        self.set(self._now + seconds)
        return self._now
