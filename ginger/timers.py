from __future__ import annotations

import heapq
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .clock import Clock, now_ms

logger = logging.getLogger(__name__)


@dataclass(order=True, slots=True)
class _Timer:
    due_ms: float
    seq: int
    callback: Callable[[], None] = field(compare=False)


class TimerQueue:
    """Cooperative one-shot timers.

    Nothing runs in the background: due callbacks fire from ``update()``, which
    the UI loop calls once per frame (tests call it after advancing a fake
    clock). Callbacks may schedule further timers; those fire in the same
    ``update()`` if they are already due.
    """

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock
        self._heap: list[_Timer] = []
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> float:
        """Schedule ``callback`` after ``delay_ms``. Returns the due time in ms."""

        due_ms = now_ms(self._clock) + max(0.0, float(delay_ms))
        heapq.heappush(self._heap, _Timer(due_ms, next(self._seq), callback))
        logger.debug("timer scheduled: delay=%.1fms due=%.1fms", delay_ms, due_ms)
        return due_ms

    def next_due_ms(self) -> float | None:
        return None if not self._heap else self._heap[0].due_ms

    def update(self, *, until_ms: float | None = None) -> int:
        """Fire every timer that is due. Returns how many fired.

        ``until_ms`` caps the due time considered (never beyond now).
        """

        limit_ms = now_ms(self._clock)
        if until_ms is not None:
            limit_ms = min(limit_ms, until_ms)
        fired = 0
        while self._heap and self._heap[0].due_ms <= limit_ms:
            timer = heapq.heappop(self._heap)
            timer.callback()
            fired += 1
        return fired

    def clear(self) -> None:
        self._heap.clear()
