"""
tasks/timers.py — Countdown timer for timeout-gated task states
"""

from __future__ import annotations

import time
from typing import Callable


class Countdown:
    """
    Elapsed-time counter with an adjustable top.

    overflow() is True once `top` seconds have elapsed since the last
    set_top()/reset(). A fresh Countdown has top 0 and overflows at once.
    """

    def __init__(self, top: float = 0.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._top = top
        self._start = clock()

    @property
    def top(self) -> float:
        return self._top

    def set_top(self, top: float) -> None:
        self._top = top
        self.reset()

    def reset(self) -> None:
        self._start = self._clock()

    def elapsed(self) -> float:
        return self._clock() - self._start

    def remaining(self) -> float:
        return max(self._top - self.elapsed(), 0.0)

    def overflow(self) -> bool:
        return self.elapsed() >= self._top
