from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, asdict
from typing import Callable, Iterable, Optional

from clock import SystemClock

logger = logging.getLogger(__name__)


def whole_seconds(value: float) -> int:
    """Return ``value`` rounded up to whole seconds for display.

    Remaining time is kept as float seconds; rounding to the millisecond
    first keeps float noise such as ``90.0000000001`` from showing as 91.
    """
    return max(0, math.ceil(round(value, 3)))


@dataclass(frozen=True)
class TimerSnapshot:
    is_active: bool
    is_paused: bool
    is_complete: bool
    remaining_seconds: int
    total_duration: int
    target_exercise_id: Optional[int] = None
    target_set_id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


CompletionHook = Callable[[TimerSnapshot], None]


class RestTimer:
    """Countdown for the rest period between two sets.

    Remaining time is derived from an absolute end instant rather than from a
    decrementing counter, so a process that was suspended for a while reads
    the correct value on its next poll. ``tick`` must be called periodically;
    it fires the completion hooks exactly once when the countdown hits zero.
    """

    def __init__(
        self,
        clock=None,
        on_complete: Iterable[CompletionHook] | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._hooks: list[CompletionHook] = list(on_complete or [])
        self._clear()

    def _clear(self) -> None:
        self.is_active = False
        self.is_paused = False
        self.is_complete = False
        self.total_duration = 0
        self.end_time: float | None = None
        self.paused_remaining: float | None = None
        self.started_at: float | None = None
        self.target_exercise_id: int | None = None
        self.target_set_id: int | None = None

    def add_listener(self, hook: CompletionHook) -> None:
        self._hooks.append(hook)

    # -- commands ----------------------------------------------------------

    def start(
        self,
        duration: int,
        exercise_id: int | None = None,
        set_id: int | None = None,
    ) -> None:
        """Start a rest period of ``duration`` seconds.

        Starting while another rest period is running replaces it exactly as
        ``stop`` followed by ``start`` would: the replaced countdown never
        signals completion.
        """
        duration = int(duration)
        if duration <= 0:
            raise ValueError("duration must be positive")
        with self._lock:
            self._clear()
            now = self.clock.now()
            self.is_active = True
            self.total_duration = duration
            self.started_at = now
            self.end_time = now + duration
            self.target_exercise_id = exercise_id
            self.target_set_id = set_id
        logger.debug("rest timer started for %ss (set %s)", duration, set_id)

    def pause(self) -> None:
        with self._lock:
            fired = self._poll_locked()
            if self.is_active and not self.is_paused and not self.is_complete:
                self.paused_remaining = self._remaining()
                self.end_time = None
                self.is_paused = True
        self._fire(fired)

    def resume(self) -> None:
        with self._lock:
            if not self.is_active or not self.is_paused:
                return
            self.end_time = self.clock.now() + (self.paused_remaining or 0.0)
            self.paused_remaining = None
            self.is_paused = False

    def stop(self) -> None:
        with self._lock:
            self._clear()

    def reset(self) -> None:
        with self._lock:
            if not self.is_active:
                return
            now = self.clock.now()
            self.is_paused = False
            self.is_complete = False
            self.paused_remaining = None
            self.started_at = now
            self.end_time = now + self.total_duration

    def add_time(self, seconds: int) -> None:
        """Extend (or with a negative value shorten) the current rest.

        The total shifts by the same amount; neither value drops below zero.
        """
        seconds = int(seconds)
        with self._lock:
            fired = self._poll_locked()
            if self.is_active and not self.is_complete:
                remaining = max(0.0, self._remaining() + seconds)
                self.total_duration = max(0, self.total_duration + seconds)
                if self.is_paused:
                    self.paused_remaining = remaining
                else:
                    self.end_time = self.clock.now() + remaining
        self._fire(fired)

    def tick(self) -> bool:
        """Recompute remaining time; return True on the completing poll only."""
        with self._lock:
            fired = self._poll_locked()
        self._fire(fired)
        return fired is not None

    # -- queries -----------------------------------------------------------

    @property
    def remaining_seconds(self) -> int:
        with self._lock:
            return whole_seconds(self._remaining())

    def rest_time(self, set_id: int | None = None) -> int | None:
        """Return seconds rested so far, or None when no rest is running.

        A rest that has run out counts as over, whether or not the completing
        poll has happened yet. With ``set_id`` the value is only returned when
        the running rest follows that set.
        """
        with self._lock:
            if not self.is_active or self.is_complete:
                return None
            if set_id is not None and set_id != self.target_set_id:
                return None
            remaining = whole_seconds(self._remaining())
            if remaining <= 0:
                return None
            return self.total_duration - remaining

    def snapshot(self) -> TimerSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "is_active": self.is_active,
                "is_paused": self.is_paused,
                "is_complete": self.is_complete,
                "total_duration": self.total_duration,
                "end_time": self.end_time,
                "paused_remaining": self.paused_remaining,
                "started_at": self.started_at,
                "target_exercise_id": self.target_exercise_id,
                "target_set_id": self.target_set_id,
            }

    def restore(self, data: dict) -> None:
        with self._lock:
            self._clear()
            self.is_active = bool(data.get("is_active", False))
            self.is_paused = bool(data.get("is_paused", False))
            self.is_complete = bool(data.get("is_complete", False))
            self.total_duration = int(data.get("total_duration", 0))
            self.end_time = data.get("end_time")
            self.paused_remaining = data.get("paused_remaining")
            self.started_at = data.get("started_at")
            self.target_exercise_id = data.get("target_exercise_id")
            self.target_set_id = data.get("target_set_id")
            if self.is_active and not self.is_complete:
                if self.is_paused and self.paused_remaining is None:
                    self.paused_remaining = float(self.total_duration)
                if not self.is_paused and self.end_time is None:
                    self.end_time = self.clock.now() + self.total_duration

    @classmethod
    def from_dict(
        cls,
        data: dict,
        clock=None,
        on_complete: Iterable[CompletionHook] | None = None,
    ) -> "RestTimer":
        timer = cls(clock, on_complete)
        timer.restore(data)
        return timer

    # -- internals ---------------------------------------------------------

    def _remaining(self) -> float:
        if not self.is_active or self.is_complete:
            return 0.0
        if self.is_paused:
            return self.paused_remaining or 0.0
        if self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.clock.now())

    def _snapshot_locked(self) -> TimerSnapshot:
        return TimerSnapshot(
            is_active=self.is_active,
            is_paused=self.is_paused,
            is_complete=self.is_complete,
            remaining_seconds=whole_seconds(self._remaining()),
            total_duration=self.total_duration,
            target_exercise_id=self.target_exercise_id,
            target_set_id=self.target_set_id,
        )

    def _poll_locked(self) -> TimerSnapshot | None:
        if not self.is_active or self.is_paused or self.is_complete:
            return None
        if whole_seconds(self._remaining()) > 0:
            return None
        self.is_complete = True
        self.end_time = None
        self.paused_remaining = None
        return self._snapshot_locked()

    def _fire(self, snapshot: TimerSnapshot | None) -> None:
        if snapshot is None:
            return
        logger.info("rest timer complete after %ss", snapshot.total_duration)
        for hook in list(self._hooks):
            try:
                hook(snapshot)
            except Exception:
                logger.exception("rest timer completion hook failed")
