import time as time_module
from collections.abc import Callable
from datetime import datetime, timedelta


class Deadline:
    """A monotonic time budget shared by everything in one booking run."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time_module.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(float("inf"))

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def bounded(self, seconds: float) -> float:
        """Clamp a wait to what is left of the budget."""
        return min(seconds, self.remaining())

    def wall_clock(self, within: float | None = None) -> datetime:
        """Wall-clock time at which `within` seconds (or the whole budget) run out."""
        seconds = self.remaining() if within is None else self.bounded(within)
        if seconds == float("inf"):
            return datetime.max
        return datetime.now() + timedelta(seconds=seconds)
