import time


class SystemClock:
    """Wall-clock time source in seconds since the epoch."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """Clock that only moves when told to, used to simulate elapsed time."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += float(seconds)

    def set(self, timestamp: float) -> None:
        self._now = float(timestamp)
