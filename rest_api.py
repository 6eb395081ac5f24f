import asyncio
import datetime
import logging
import queue
import threading
from typing import List, Dict

from fastapi import (
    FastAPI,
    HTTPException,
    Body,
    APIRouter,
    WebSocket,
)
from pydantic import BaseModel

from clock import SystemClock
from db import (
    WorkoutRepository,
    ExerciseRepository,
    SetRepository,
    AsyncSetRepository,
    SettingsRepository,
    NotificationRepository,
    TimerPresetRepository,
    TimerStateRepository,
)
from drill_service import DrillSequencer, DrillSnapshot, PhaseEndEvent
from notification_service import NotificationService
from timer_service import RestTimer, TimerSnapshot
from workout_service import ActiveWorkoutService

logger = logging.getLogger(__name__)

REST_TIMER_KEY = "rest_timer"
DRILL_SEQUENCE_KEY = "drill_sequence"


class DrillIn(BaseModel):
    id: int
    name: str
    duration: int


class TimerTicker(threading.Thread):
    """Background thread polling the timers at a fixed cadence."""

    def __init__(self, api: "TimerAPI", interval_ms: int = 100) -> None:
        super().__init__(daemon=True)
        self.api = api
        self.interval = interval_ms / 1000.0
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.is_set():
            try:
                self.api.poll()
            except Exception:
                logger.exception("timer poll failed")
            self._stopped.wait(self.interval)

    def stop(self) -> None:
        self._stopped.set()


class TimerAPI:
    """Provides REST endpoints for the rest timer and drill sequencer."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
        *,
        clock=None,
        start_ticker: bool = False,
    ) -> None:
        self.db_path = db_path
        self.clock = clock or SystemClock()
        self.settings = SettingsRepository(db_path, yaml_path)
        self.workouts = WorkoutRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.sets = SetRepository(db_path)
        self.async_sets = AsyncSetRepository(db_path)
        self.notifications = NotificationRepository(db_path)
        self.presets = TimerPresetRepository(db_path)
        self.states = TimerStateRepository(db_path)
        self.notifier = NotificationService(self.notifications, self.settings)
        self.watchers: list[WebSocket] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.RLock()
        self._pending: queue.SimpleQueue = queue.SimpleQueue()

        self.timer = RestTimer(
            self.clock,
            on_complete=[
                self._defer(self.notifier.rest_complete),
                self._defer(self._on_rest_complete),
            ],
        )
        saved = self.states.load(REST_TIMER_KEY)
        if saved:
            self.timer.restore(saved)
        self.drills: DrillSequencer | None = None
        self.drill_workout_id: int | None = None
        self._restore_drills()

        self.workout_service = ActiveWorkoutService(
            self.workouts,
            self.exercises,
            self.sets,
            self.async_sets,
            self.settings,
            self.timer,
            self.notifications,
        )
        self.app = FastAPI(
            title="Rest Timer API",
            description="Rest timer, auto-drill sequencer and set tracking",
        )
        self.ticker: TimerTicker | None = None
        if start_ticker:
            self.start_ticker()
        self._setup_routes()

    # -- state ownership ---------------------------------------------------

    def _drill_hooks(self) -> dict:
        return {
            "on_phase_end": [
                self._defer(self.notifier.drill_phase_end),
                self._defer(self._on_drill_phase_end),
            ],
            "on_complete": [
                self._defer(self.notifier.drills_complete),
                self._defer(self._on_drills_complete),
            ],
        }

    def _restore_drills(self) -> None:
        saved = self.states.load(DRILL_SEQUENCE_KEY)
        if not saved:
            return
        try:
            seq = DrillSequencer.from_dict(saved["sequence"], clock=self.clock, **self._drill_hooks())
        except (KeyError, ValueError) as e:
            logger.warning("discarding saved drill sequence: %s", e)
            self.states.clear(DRILL_SEQUENCE_KEY)
            return
        self.drills = seq
        self.drill_workout_id = saved.get("workout_id")

    def save_state(self) -> None:
        with self._lock:
            if self.timer.is_active:
                self.states.save(REST_TIMER_KEY, self.timer.to_dict())
            else:
                self.states.clear(REST_TIMER_KEY)
            if self.drills is not None:
                self.states.save(
                    DRILL_SEQUENCE_KEY,
                    {"sequence": self.drills.to_dict(), "workout_id": self.drill_workout_id},
                )
            else:
                self.states.clear(DRILL_SEQUENCE_KEY)

    def _defer(self, hook):
        """Wrap ``hook`` so the state machines only queue the call."""

        def queued(payload) -> None:
            self._pending.put((hook, payload))

        return queued

    def run_pending_hooks(self) -> int:
        """Run queued completion hooks; must not be called with the lock held."""
        count = 0
        while True:
            try:
                hook, payload = self._pending.get_nowait()
            except queue.Empty:
                return count
            count += 1
            try:
                hook(payload)
            except Exception:
                logger.exception("timer hook %r failed", hook)

    def poll(self) -> bool:
        """Advance both timers; return True when anything changed phase.

        Transitions and their persistence happen under the lock; sound,
        notifications and websocket events run once it is released.
        """
        with self._lock:
            changed = self.timer.tick()
            if self.drills is not None and self.drills.tick():
                changed = True
            if changed:
                self.save_state()
        self.run_pending_hooks()
        return changed

    def start_ticker(self) -> None:
        if self.ticker is not None:
            return
        interval = self.settings.get_int("tick_interval_ms", 100)
        self.ticker = TimerTicker(self, interval)
        self.ticker.start()

    def stop_ticker(self) -> None:
        if self.ticker is None:
            return
        self.ticker.stop()
        self.ticker.join(timeout=2)
        self.ticker = None

    def _new_sequence(self, drills, workout_id: int | None = None) -> DrillSequencer:
        countdown = self.settings.get_int("drill_countdown_seconds", 5)
        seq = DrillSequencer(
            drills,
            clock=self.clock,
            countdown_seconds=countdown,
            **self._drill_hooks(),
        )
        with self._lock:
            if self.drills is not None:
                self.drills.exit()
            self.drills = seq
            self.drill_workout_id = workout_id
            self.save_state()
        return seq

    def _discard_sequence(self) -> None:
        with self._lock:
            self.drills = None
            self.drill_workout_id = None
            self.save_state()

    # -- events ------------------------------------------------------------

    def _on_rest_complete(self, snapshot: TimerSnapshot) -> None:
        self._broadcast_event({"type": "timer_complete", "timer": snapshot.to_dict()})

    def _on_drill_phase_end(self, event: PhaseEndEvent) -> None:
        self._broadcast_event({"type": "drill_phase", "event": event.to_dict()})

    def _on_drills_complete(self, snapshot: DrillSnapshot) -> None:
        self._broadcast_event({"type": "drill_complete", "drills": snapshot.to_dict()})

    async def _broadcast(self, event: dict) -> None:
        for ws in list(self.watchers):
            try:
                await ws.send_json(event)
            except Exception:
                logger.debug("dropping websocket watcher")
                try:
                    await ws.close()
                except Exception:
                    pass
                if ws in self.watchers:
                    self.watchers.remove(ws)

    def _broadcast_event(self, event: dict) -> None:
        if not self.watchers or self._loop is None or self._loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self._broadcast(event), self._loop)

    # -- routes ------------------------------------------------------------

    def _timer_state(self) -> dict:
        self.poll()
        data = self.timer.snapshot().to_dict()
        data["rest_time"] = self.timer.rest_time()
        return data

    def _drill_state(self) -> dict:
        self.poll()
        if self.drills is None:
            raise HTTPException(status_code=404, detail="no drill sequence")
        data = self.drills.snapshot().to_dict()
        data["workout_id"] = self.drill_workout_id
        return data

    def _require_drills(self) -> DrillSequencer:
        if self.drills is None:
            raise HTTPException(status_code=404, detail="no drill sequence")
        return self.drills

    def _setup_routes(self) -> None:
        timer_router = APIRouter(prefix="/timer", tags=["Rest Timer"])
        drills_router = APIRouter(prefix="/drills", tags=["Drills"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.workouts.fetch_all_workouts()
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.websocket("/ws/updates")
        async def updates_socket(ws: WebSocket):
            await ws.accept()
            self._loop = asyncio.get_running_loop()
            self.watchers.append(ws)
            try:
                while True:
                    await ws.receive_text()
            except Exception:
                pass
            finally:
                if ws in self.watchers:
                    self.watchers.remove(ws)

        @timer_router.get("")
        def get_timer():
            return self._timer_state()

        @timer_router.post(
            "/start",
            summary="Start rest timer",
            description="Start (or replace) the rest countdown. Defaults to the rest_timer_seconds setting.",
        )
        def start_timer(
            duration: int | None = None,
            exercise_id: int | None = None,
            set_id: int | None = None,
        ):
            if duration is None:
                duration = self.settings.get_int("rest_timer_seconds", 90)
            try:
                self.timer.start(duration, exercise_id, set_id)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self.save_state()
            return self._timer_state()

        @timer_router.post("/pause")
        def pause_timer():
            self.timer.pause()
            self.save_state()
            return self._timer_state()

        @timer_router.post("/resume")
        def resume_timer():
            self.timer.resume()
            self.save_state()
            return self._timer_state()

        @timer_router.post("/stop")
        def stop_timer():
            self.timer.stop()
            self.save_state()
            return self._timer_state()

        @timer_router.post("/reset")
        def reset_timer():
            self.timer.reset()
            self.save_state()
            return self._timer_state()

        @timer_router.post("/add_time")
        def add_time(seconds: int):
            self.timer.add_time(seconds)
            self.save_state()
            return self._timer_state()

        @self.app.get("/timer_presets")
        def list_presets():
            return self.presets.fetch_all_presets()

        @self.app.post("/timer_presets")
        def add_preset(name: str, duration: int):
            try:
                return {"id": self.presets.add(name, duration)}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.delete("/timer_presets/{preset_id}")
        def delete_preset(preset_id: int):
            self.presets.remove(preset_id)
            return {"status": "deleted"}

        @drills_router.post(
            "",
            summary="Create drill sequence",
            description="Replace the current drill sequence with the given drills.",
        )
        def create_drills(drills: List[DrillIn] = Body(...)):
            try:
                self._new_sequence([d.model_dump() for d in drills])
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self._drill_state()

        @drills_router.get("")
        def get_drills():
            return self._drill_state()

        @drills_router.post("/start")
        def start_drills():
            self._require_drills().start()
            self.save_state()
            return self._drill_state()

        @drills_router.post("/pause")
        def pause_drills():
            self._require_drills().pause()
            self.save_state()
            return self._drill_state()

        @drills_router.post("/resume")
        def resume_drills():
            self._require_drills().resume()
            self.save_state()
            return self._drill_state()

        @drills_router.post("/skip")
        def skip_drill():
            self._require_drills().skip()
            self.save_state()
            return self._drill_state()

        @drills_router.post("/exit")
        def exit_drills(confirm: bool = False):
            seq = self._require_drills()
            if not confirm:
                raise HTTPException(
                    status_code=400, detail="confirm=true is required to exit the drill timer"
                )
            seq.exit()
            self._discard_sequence()
            return {"status": "exited"}

        @drills_router.post("/acknowledge")
        def acknowledge_drills():
            seq = self._require_drills()
            self.poll()
            if not seq.acknowledge():
                raise HTTPException(status_code=400, detail="drill sequence is not complete")
            ids: list[int] = []
            if self.drill_workout_id is not None:
                ids = self.workout_service.complete_drills(self.drill_workout_id)
            self._discard_sequence()
            return {"status": "acknowledged", "completed_set_ids": ids}

        @self.app.post("/workouts")
        def create_workout(date: str = None, name: str | None = None):
            try:
                workout_date = (
                    datetime.date.today()
                    if date is None
                    else datetime.date.fromisoformat(date)
                )
            except ValueError:
                raise HTTPException(
                    status_code=400,
                    detail="date must be in YYYY-MM-DD format",
                )
            workout_id = self.workouts.create(workout_date.isoformat(), name)
            return {"id": workout_id}

        @self.app.get("/workouts")
        def list_workouts():
            return [
                {"id": wid, "date": date, "name": name}
                for wid, date, name in self.workouts.fetch_all_workouts()
            ]

        @self.app.get("/workouts/{workout_id}")
        def get_workout(workout_id: int):
            try:
                detail = self.workouts.fetch_detail(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            detail["progress"] = self.sets.workout_progress(workout_id)
            return detail

        @self.app.post("/workouts/{workout_id}/start")
        def start_workout(workout_id: int):
            try:
                return self.workout_service.start_workout(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post("/workouts/{workout_id}/complete")
        def complete_workout(workout_id: int):
            try:
                result = self.workout_service.finish_workout(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self.save_state()
            return result

        @self.app.post("/workouts/{workout_id}/exercises")
        def add_exercise(
            workout_id: int,
            name: str,
            category: str = "strength",
            target_sets: int = 3,
            target_reps: str = "10",
        ):
            try:
                ex_id = self.exercises.add(
                    workout_id, name, category, target_sets, target_reps
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": ex_id}

        @self.app.get("/workouts/{workout_id}/exercises")
        def list_exercises(workout_id: int):
            result = []
            for ex in self.exercises.fetch_for_workout(workout_id):
                ex["sets"] = self.sets.fetch_for_exercise(ex["id"])
                result.append(ex)
            return result

        @self.app.post("/workouts/{workout_id}/drills")
        def drills_from_workout(workout_id: int):
            try:
                self.workouts.fetch_detail(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            drills = self.workout_service.drills_for_workout(workout_id)
            if not drills:
                raise HTTPException(
                    status_code=400, detail="workout has no ball handling drills"
                )
            self._new_sequence(drills, workout_id)
            return self._drill_state()

        @self.app.put("/workouts/{workout_id}/exercises/{exercise_id}/sets")
        def update_sets(
            workout_id: int,
            exercise_id: int,
            sets: List[Dict] = Body(..., embed=True),
        ):
            try:
                self.sets.bulk_update(sets)
            except (KeyError, ValueError) as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self.sets.fetch_for_exercise(exercise_id)

        @self.app.post("/exercises/{exercise_id}/sets")
        def add_set(
            exercise_id: int,
            reps: int | None = None,
            weight: float | None = None,
            rpe: int | None = None,
        ):
            try:
                set_id = self.sets.add(exercise_id, reps, weight, rpe)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": set_id}

        @self.app.get("/exercises/{exercise_id}/sets")
        def list_sets(exercise_id: int):
            return self.sets.fetch_for_exercise(exercise_id)

        @self.app.get("/sets/{set_id}")
        def get_set(set_id: int):
            try:
                return self.sets.fetch_detail(set_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post(
            "/sets/{set_id}/complete",
            summary="Complete set",
            description="Mark a set done, record the rest taken before it and start the next rest period.",
        )
        async def complete_set(
            set_id: int,
            exercise_id: int,
            reps: int,
            weight: float,
            rpe: int | None = None,
        ):
            try:
                result = await self.workout_service.complete_set(
                    exercise_id, set_id, reps, weight, rpe
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self.save_state()
            self._broadcast_event({"type": "set_completed", "id": set_id})
            result["timer"] = self.timer.snapshot().to_dict()
            return result

        @self.app.get("/notifications")
        def get_notifications(unread_only: bool = False):
            return self.notifications.fetch_all(unread_only)

        @self.app.put("/notifications/{nid}/read")
        def mark_notification_read(nid: int):
            self.notifications.mark_read(nid)
            return {"status": "read"}

        @self.app.get("/notifications/unread_count")
        def unread_count():
            return {"count": self.notifications.unread_count()}

        @self.app.get("/settings")
        def get_settings():
            data = self.settings.all_settings()
            data.pop("notification_webhook_url", None)
            return data

        self.app.include_router(timer_router)
        self.app.include_router(drills_router)


_default_api: TimerAPI | None = None


def __getattr__(name: str):
    # ``uvicorn rest_api:app`` builds the default instance on first access
    global _default_api
    if name in ("api", "app"):
        if _default_api is None:
            _default_api = TimerAPI()
        return _default_api if name == "api" else _default_api.app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    import uvicorn

    api = TimerAPI()
    app = api.app
    logging.basicConfig(level=api.settings.get_text("log_level", "INFO"))
    api.start_ticker()
    uvicorn.run(app)
