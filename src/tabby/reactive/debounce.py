"""Debounce timer — a single-slot pending-deadline state machine.

States:
    idle
        Nothing scheduled.
    pending(deadline)
        Fire once the clock reaches ``deadline`` with no further ``schedule``.

``schedule`` from either state moves to ``pending(now + delay)``, so a burst
of events pushes the deadline out and fires once.  The clock is injected,
which lets tests step time without sleeping.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Callable

type DebounceState = Literal["idle", "pending"]


class DebounceTimer:
    """Cancel-and-reschedule timer.

    Args:
        delay_ms: Quiet window in milliseconds.
        clock: Monotonic clock returning seconds.

    """

    __slots__ = ("_clock", "_deadline", "delay")

    def __init__(self, delay_ms: int, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.delay = max(delay_ms, 0) / 1000
        self._clock = clock
        self._deadline: float | None = None

    @property
    def state(self) -> DebounceState:
        return "idle" if self._deadline is None else "pending"

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def schedule(self) -> float:
        """Move to ``pending(now + delay)``. Returns the new deadline."""
        self._deadline = self._clock() + self.delay
        return self._deadline

    def cancel(self) -> bool:
        """Return to idle. Returns True if a deadline was pending."""
        was_pending = self._deadline is not None
        self._deadline = None
        return was_pending

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative); ``None`` when idle."""
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def due(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def fire(self) -> bool:
        """Consume the deadline if it has passed. Returns True when it fired."""
        if not self.due():
            return False
        self._deadline = None
        return True
