import datetime
import logging
import re

import aiosqlite

from db import (
    WorkoutRepository,
    ExerciseRepository,
    SetRepository,
    AsyncSetRepository,
    SettingsRepository,
    NotificationRepository,
)
from drill_service import Drill
from timer_service import RestTimer

logger = logging.getLogger(__name__)

DRILL_CATEGORY = "ball_handling"
_SECONDS_RE = re.compile(r"^\s*(\d+)\s*sec", re.IGNORECASE)


class ActiveWorkoutService:
    """Connects the rest timer to the workout store during a session.

    Completing a set captures how long the user actually rested, writes the
    set through the async store and starts the next rest period. A failed
    write is reported as a notice; the timer moves on regardless.
    """

    def __init__(
        self,
        workouts: WorkoutRepository,
        exercises: ExerciseRepository,
        sets: SetRepository,
        async_sets: AsyncSetRepository,
        settings: SettingsRepository,
        timer: RestTimer,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self.workouts = workouts
        self.exercises = exercises
        self.sets = sets
        self.async_sets = async_sets
        self.settings = settings
        self.timer = timer
        self.notifications = notifications
        # A restored rest timer still points at the set that started it.
        self.last_completed_set_id: int | None = timer.target_set_id

    def start_workout(self, workout_id: int) -> dict:
        detail = self.workouts.fetch_detail(workout_id)
        if not detail["start_time"]:
            ts = datetime.datetime.now().isoformat(timespec="seconds")
            self.workouts.set_start_time(workout_id, ts)
            detail["start_time"] = ts
        return detail

    async def complete_set(
        self,
        exercise_id: int,
        set_id: int,
        reps: int,
        weight: float,
        rpe: int | None = None,
    ) -> dict:
        if reps <= 0:
            raise ValueError("reps must be positive")
        if weight < 0:
            raise ValueError("weight must be non-negative")
        if self.sets.fetch_exercise_id(set_id) != exercise_id:
            raise ValueError("set does not belong to exercise")

        rest_time = None
        if self.last_completed_set_id is not None:
            rest_time = self.timer.rest_time(self.last_completed_set_id)

        result = {"set_id": set_id, "rest_time": rest_time, "synced": True, "notice": None}
        try:
            await self.async_sets.complete(set_id, reps, weight, rpe, rest_time)
        except (aiosqlite.Error, ValueError) as e:
            logger.warning("could not save set %s: %s", set_id, e)
            result["synced"] = False
            result["notice"] = f"Set {set_id} was not saved: {e}"
            if self.notifications is not None:
                self.notifications.add(result["notice"])

        self.last_completed_set_id = set_id
        duration = self.settings.get_int("rest_timer_seconds", 90)
        self.timer.start(duration, exercise_id, set_id)
        return result

    def drills_for_workout(self, workout_id: int) -> list[Drill]:
        default = self.settings.get_int("drill_duration_seconds", 15)
        drills = []
        for ex in self.exercises.fetch_for_workout(workout_id, DRILL_CATEGORY):
            m = _SECONDS_RE.match(ex["target_reps"] or "")
            duration = int(m.group(1)) if m else default
            drills.append(Drill(ex["id"], ex["name"], duration if duration > 0 else default))
        return drills

    def complete_drills(self, workout_id: int) -> list[int]:
        """Mark every open set of the workout's drills as done."""
        done: list[int] = []
        for ex in self.exercises.fetch_for_workout(workout_id, DRILL_CATEGORY):
            for sid in self.sets.incomplete_ids(ex["id"]):
                self.sets.update(sid, 1, 0.0, completed=True)
                done.append(sid)
        return done

    def finish_workout(self, workout_id: int) -> dict:
        detail = self.workouts.fetch_detail(workout_id)
        now = datetime.datetime.now()
        minutes = 0
        if detail["start_time"]:
            started = datetime.datetime.fromisoformat(detail["start_time"])
            minutes = max(0, int((now - started).total_seconds() // 60))
        self.workouts.finish(workout_id, now.isoformat(timespec="seconds"), minutes)
        self.timer.stop()
        self.last_completed_set_id = None
        return {
            "id": workout_id,
            "duration_minutes": minutes,
            "progress": self.sets.workout_progress(workout_id),
        }
