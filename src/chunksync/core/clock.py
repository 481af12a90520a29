# src/chunksync/core/clock.py
"""Clock abstraction for timestamps and bounded waits.

Chunk timestamps, TTL expiry, rate-limit waits and lock retry pauses all
go through a Clock so tests can control time without sleeping.

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Abstract clock.

    Implementations:
    - SystemClock: Uses time.time() / time.sleep() (production)
    - MockClock: Returns controllable times (testing)
    """

    def time(self) -> float:
        """Return wall-clock time as epoch seconds (sub-millisecond precision)."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for `seconds`."""
        ...


class SystemClock:
    """Production clock backed by the time module."""

    def time(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class MockClock:
    """Controllable clock for deterministic testing.

    sleep() advances the mock time instead of blocking, and records every
    requested duration in `sleeps`.

    Example:
        clock = MockClock(start=1_000.0)
        store.acquire("key", ttl=10)
        clock.advance(11)
        store.acquire("key", ttl=10)  # lock expired, succeeds
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        """Initialize mock clock at a given epoch time.

        Args:
            start: Initial epoch seconds.
        """
        self._current = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self._current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self._current += seconds

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
