"""
Wall-clock source in epoch milliseconds. Services take a clock so tests can pin "now".
"""
import time
from typing import Optional

MS_PER_SECOND = 1000
MS_PER_HOUR = 60 * 60 * MS_PER_SECOND
MS_PER_DAY = 24 * MS_PER_HOUR


class Clock:
    """System wall clock."""

    def now_ms(self) -> int:
        return int(time.time() * MS_PER_SECOND)


class FrozenClock(Clock):
    """Settable clock for tests and dev tooling."""

    def __init__(self, now_ms: int):
        self._now = int(now_ms)

    def now_ms(self) -> int:
        return self._now

    def set(self, now_ms: int) -> None:
        self._now = int(now_ms)

    def advance(self, ms: int = 0, days: float = 0, hours: float = 0) -> int:
        self._now += int(ms + days * MS_PER_DAY + hours * MS_PER_HOUR)
        return self._now


system_clock = Clock()


def resolve_clock(clock: Optional[Clock]) -> Clock:
    return clock or system_clock
