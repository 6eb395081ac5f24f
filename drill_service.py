from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

from clock import SystemClock
from timer_service import whole_seconds

logger = logging.getLogger(__name__)

DEFAULT_COUNTDOWN_SECONDS = 5


class DrillPhase(str, Enum):
    READY = "ready"
    COUNTDOWN = "countdown"
    DRILL = "drill"
    COMPLETE = "complete"


RUNNING_PHASES = (DrillPhase.COUNTDOWN, DrillPhase.DRILL)


@dataclass(frozen=True)
class Drill:
    id: int
    name: str
    duration: int

    @classmethod
    def from_dict(cls, data: dict) -> "Drill":
        return cls(int(data["id"]), str(data["name"]), int(data["duration"]))


@dataclass(frozen=True)
class PhaseEndEvent:
    """A countdown or drill that just ended, naturally or by skip."""

    phase: DrillPhase
    drill: Optional[Drill]
    drill_index: Optional[int]
    next_phase: DrillPhase
    next_index: Optional[int]
    skipped: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["next_phase"] = self.next_phase.value
        return data


@dataclass(frozen=True)
class DrillSnapshot:
    phase: DrillPhase
    current_index: int
    current_drill: Optional[Drill]
    remaining_seconds: int
    phase_duration: int
    drill_count: int
    is_paused: bool
    is_exited: bool
    acknowledged: bool
    progress: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data


class DrillSequencer:
    """Run a fixed list of timed drills back to back after a lead-in.

    Phases move ``ready -> countdown -> drill(0) -> ... -> drill(n-1) ->
    complete``. Each phase records the instant it is due to end and every
    poll recomputes the remaining time from it, so a suspended host process
    catches up on its next ``tick``. Every phase end fires the
    ``on_phase_end`` hooks once; reaching ``complete`` also fires
    ``on_complete`` once.
    """

    def __init__(
        self,
        drills: Sequence[Drill | dict],
        clock=None,
        countdown_seconds: int = DEFAULT_COUNTDOWN_SECONDS,
        on_phase_end: Iterable[Callable[[PhaseEndEvent], None]] | None = None,
        on_complete: Iterable[Callable[[DrillSnapshot], None]] | None = None,
        on_exit: Iterable[Callable[[DrillSnapshot], None]] | None = None,
    ) -> None:
        items = tuple(d if isinstance(d, Drill) else Drill.from_dict(d) for d in drills)
        if not items:
            raise ValueError("drill list must not be empty")
        for drill in items:
            if drill.duration <= 0:
                raise ValueError(f"drill '{drill.name}' duration must be positive")
        if int(countdown_seconds) <= 0:
            raise ValueError("countdown_seconds must be positive")
        self.drills = items
        self.countdown_seconds = int(countdown_seconds)
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._phase_end_hooks = list(on_phase_end or [])
        self._complete_hooks = list(on_complete or [])
        self._exit_hooks = list(on_exit or [])
        self.phase = DrillPhase.READY
        self.current_index = 0
        self.phase_duration = self.countdown_seconds
        self.phase_end: float | None = None
        self.is_paused = False
        self.paused_remaining: float | None = None
        self.is_exited = False
        self.acknowledged = False

    # -- commands ----------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self.is_exited or self.phase is not DrillPhase.READY:
                return
            self.phase = DrillPhase.COUNTDOWN
            self.current_index = 0
            self.phase_duration = self.countdown_seconds
            self.phase_end = self.clock.now() + self.countdown_seconds
        logger.debug("drill sequence started with %d drills", len(self.drills))

    def tick(self) -> list[PhaseEndEvent]:
        with self._lock:
            events = self._poll_locked()
        self._dispatch(events)
        return events

    def pause(self) -> None:
        with self._lock:
            events = self._poll_locked()
            if self._running_locked():
                self.paused_remaining = self._remaining()
                self.phase_end = None
                self.is_paused = True
        self._dispatch(events)

    def resume(self) -> None:
        with self._lock:
            if self.is_exited or not self.is_paused:
                return
            self.phase_end = self.clock.now() + (self.paused_remaining or 0.0)
            self.paused_remaining = None
            self.is_paused = False

    def skip(self) -> PhaseEndEvent | None:
        """End the current phase now, as if its countdown had run out."""
        with self._lock:
            if self.is_exited or self.phase not in RUNNING_PHASES:
                return None
            event = self._advance_locked(skipped=True)
        self._dispatch([event])
        return event

    def exit(self) -> None:
        """Discard the sequence; nothing fires afterwards."""
        with self._lock:
            if self.is_exited:
                return
            self.is_exited = True
            self.phase_end = None
            self.is_paused = False
            self.paused_remaining = None
            snapshot = self._snapshot_locked()
        logger.info("drill sequence exited in phase %s", snapshot.phase.value)
        self._call(self._exit_hooks, snapshot)

    def acknowledge(self) -> bool:
        with self._lock:
            if (
                self.is_exited
                or self.phase is not DrillPhase.COMPLETE
                or self.acknowledged
            ):
                return False
            self.acknowledged = True
            return True

    # -- queries -----------------------------------------------------------

    @property
    def remaining_seconds(self) -> int:
        with self._lock:
            return whole_seconds(self._remaining())

    @property
    def current_drill(self) -> Drill | None:
        if self.phase is DrillPhase.DRILL:
            return self.drills[self.current_index]
        return None

    def snapshot(self) -> DrillSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "drills": [asdict(d) for d in self.drills],
                "countdown_seconds": self.countdown_seconds,
                "phase": self.phase.value,
                "current_index": self.current_index,
                "phase_duration": self.phase_duration,
                "phase_end": self.phase_end,
                "is_paused": self.is_paused,
                "paused_remaining": self.paused_remaining,
                "is_exited": self.is_exited,
                "acknowledged": self.acknowledged,
            }

    @classmethod
    def from_dict(cls, data: dict, clock=None, **hooks) -> "DrillSequencer":
        seq = cls(
            data["drills"],
            clock=clock,
            countdown_seconds=data.get("countdown_seconds", DEFAULT_COUNTDOWN_SECONDS),
            **hooks,
        )
        seq.phase = DrillPhase(data.get("phase", DrillPhase.READY.value))
        seq.current_index = int(data.get("current_index", 0))
        if not 0 <= seq.current_index < len(seq.drills):
            raise ValueError("current_index out of range")
        seq.phase_duration = int(data.get("phase_duration", seq.countdown_seconds))
        seq.phase_end = data.get("phase_end")
        seq.is_paused = bool(data.get("is_paused", False))
        seq.paused_remaining = data.get("paused_remaining")
        seq.is_exited = bool(data.get("is_exited", False))
        seq.acknowledged = bool(data.get("acknowledged", False))
        return seq

    # -- internals ---------------------------------------------------------

    def _running_locked(self) -> bool:
        return (
            not self.is_exited
            and not self.is_paused
            and self.phase in RUNNING_PHASES
        )

    def _remaining(self) -> float:
        if self.is_exited or self.phase is DrillPhase.COMPLETE:
            return 0.0
        if self.phase is DrillPhase.READY:
            return float(self.countdown_seconds)
        if self.is_paused:
            return self.paused_remaining or 0.0
        if self.phase_end is None:
            return 0.0
        return max(0.0, self.phase_end - self.clock.now())

    def _poll_locked(self) -> list[PhaseEndEvent]:
        if not self._running_locked():
            return []
        if whole_seconds(self._remaining()) > 0:
            return []
        return [self._advance_locked(skipped=False)]

    def _enter_drill(self, index: int, now: float) -> None:
        self.phase = DrillPhase.DRILL
        self.current_index = index
        self.phase_duration = self.drills[index].duration
        self.phase_end = now + self.phase_duration

    def _advance_locked(self, skipped: bool) -> PhaseEndEvent:
        ended = self.phase
        ended_index = self.current_index if ended is DrillPhase.DRILL else None
        ended_drill = self.current_drill
        now = self.clock.now()
        self.is_paused = False
        self.paused_remaining = None
        if ended is DrillPhase.COUNTDOWN:
            self._enter_drill(0, now)
        elif self.current_index < len(self.drills) - 1:
            self._enter_drill(self.current_index + 1, now)
        else:
            self.phase = DrillPhase.COMPLETE
            self.phase_end = None
            self.phase_duration = 0
        next_index = self.current_index if self.phase is DrillPhase.DRILL else None
        logger.debug(
            "drill phase %s ended (skipped=%s), now %s", ended.value, skipped, self.phase.value
        )
        return PhaseEndEvent(
            phase=ended,
            drill=ended_drill,
            drill_index=ended_index,
            next_phase=self.phase,
            next_index=next_index,
            skipped=skipped,
        )

    def _progress(self) -> float:
        if self.phase is DrillPhase.COMPLETE:
            return 100.0
        if self.phase is DrillPhase.DRILL:
            return round((self.current_index + 1) / len(self.drills) * 100, 1)
        return 0.0

    def _snapshot_locked(self) -> DrillSnapshot:
        return DrillSnapshot(
            phase=self.phase,
            current_index=self.current_index,
            current_drill=self.current_drill,
            remaining_seconds=whole_seconds(self._remaining()),
            phase_duration=self.phase_duration,
            drill_count=len(self.drills),
            is_paused=self.is_paused,
            is_exited=self.is_exited,
            acknowledged=self.acknowledged,
            progress=self._progress(),
        )

    def _call(self, hooks: list, payload) -> None:
        for hook in list(hooks):
            try:
                hook(payload)
            except Exception:
                logger.exception("drill sequencer hook failed")

    def _dispatch(self, events: list[PhaseEndEvent]) -> None:
        for event in events:
            self._call(self._phase_end_hooks, event)
            if event.next_phase is DrillPhase.COMPLETE:
                logger.info("drill sequence complete")
                self._call(self._complete_hooks, self.snapshot())
