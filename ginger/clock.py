from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.perf_counter().

    perf_counter is monotonic and has the highest available resolution, which
    matters for millisecond response times.
    """

    def now(self) -> float:
        return time.perf_counter()


def now_ms(clock: Clock) -> float:
    return clock.now() * 1000.0
