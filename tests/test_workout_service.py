import os
import sqlite3
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from clock import ManualClock
from db import (
    WorkoutRepository,
    ExerciseRepository,
    SetRepository,
    AsyncSetRepository,
    SettingsRepository,
    NotificationRepository,
)
from timer_service import RestTimer
from workout_service import ActiveWorkoutService


@pytest.fixture
def env(tmp_path):
    db_file = str(tmp_path / "workout.db")
    yaml_file = str(tmp_path / "settings.yaml")
    clock = ManualClock()
    settings = SettingsRepository(db_file, yaml_file)
    service = ActiveWorkoutService(
        WorkoutRepository(db_file),
        ExerciseRepository(db_file),
        SetRepository(db_file),
        AsyncSetRepository(db_file),
        settings,
        RestTimer(clock),
        NotificationRepository(db_file),
    )
    return service, clock


def _exercise(service, category="strength", target_reps="10", sets=2):
    wid = service.workouts.create("2024-05-01", "Push day")
    eid = service.exercises.add(wid, "Bench Press", category, sets, target_reps)
    sids = [service.sets.add(eid) for _ in range(sets)]
    return wid, eid, sids


@pytest.mark.asyncio
async def test_rest_time_captured_between_sets(env):
    service, clock = env
    _, eid, (first, second) = _exercise(service)

    result = await service.complete_set(eid, first, 10, 60.0)
    assert result == {"set_id": first, "rest_time": None, "synced": True, "notice": None}
    assert service.timer.is_active
    assert service.timer.remaining_seconds == 90
    assert service.timer.target_set_id == first

    clock.advance(30)
    result = await service.complete_set(eid, second, 8, 60.0, rpe=8)
    assert result["rest_time"] == 30
    detail = service.sets.fetch_detail(second)
    assert detail["completed"] is True
    assert detail["rest_time"] == 30
    assert detail["rpe"] == 8
    assert service.timer.target_set_id == second
    assert service.timer.remaining_seconds == 90


@pytest.mark.asyncio
async def test_manual_timer_is_not_recorded_as_rest(env):
    service, clock = env
    _, eid, (first, second) = _exercise(service)
    service.timer.start(60)
    clock.advance(20)

    result = await service.complete_set(eid, first, 10, 60.0)
    assert result["rest_time"] is None
    assert service.sets.fetch_detail(first)["rest_time"] is None

    service.timer.start(60)
    clock.advance(20)
    result = await service.complete_set(eid, second, 10, 60.0)
    assert result["rest_time"] is None


@pytest.mark.asyncio
async def test_expired_rest_is_not_recorded(env):
    service, clock = env
    _, eid, (first, second, third) = _exercise(service, sets=3)
    await service.complete_set(eid, first, 10, 60.0)

    clock.advance(400)
    result = await service.complete_set(eid, second, 10, 60.0)
    assert result["rest_time"] is None
    assert service.sets.fetch_detail(second)["rest_time"] is None

    clock.advance(90)
    service.timer.tick()
    assert service.timer.is_complete
    result = await service.complete_set(eid, third, 10, 60.0)
    assert result["rest_time"] is None


@pytest.mark.asyncio
async def test_rest_capture_ignores_timer_for_other_set(env):
    service, clock = env
    _, eid, (first, second) = _exercise(service)
    await service.complete_set(eid, first, 10, 60.0)
    service.timer.start(60, eid, 999)
    clock.advance(20)
    result = await service.complete_set(eid, second, 10, 60.0)
    assert result["rest_time"] is None


@pytest.mark.asyncio
async def test_rest_duration_follows_setting(env):
    service, _ = env
    service.settings.set_int("rest_timer_seconds", 120)
    _, eid, (sid, _) = _exercise(service)
    await service.complete_set(eid, sid, 5, 100.0)
    assert service.timer.total_duration == 120


@pytest.mark.asyncio
async def test_store_failure_keeps_timer_running(env, monkeypatch):
    service, clock = env
    _, eid, (first, second) = _exercise(service)
    await service.complete_set(eid, first, 10, 60.0)
    clock.advance(45)

    async def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(service.async_sets, "complete", broken)
    result = await service.complete_set(eid, second, 10, 60.0)
    assert result["synced"] is False
    assert "database is locked" in result["notice"]
    assert result["rest_time"] == 45
    assert service.timer.is_active
    assert service.timer.target_set_id == second
    assert service.sets.fetch_detail(second)["completed"] is False
    notes = service.notifications.fetch_all()
    assert len(notes) == 1
    assert notes[0]["message"] == result["notice"]


@pytest.mark.asyncio
async def test_invalid_set_leaves_timer_alone(env):
    service, _ = env
    _, eid, (sid, _) = _exercise(service)
    with pytest.raises(ValueError):
        await service.complete_set(eid, sid, 0, 60.0)
    with pytest.raises(ValueError):
        await service.complete_set(eid, sid, 5, -1.0)
    with pytest.raises(ValueError):
        await service.complete_set(eid + 1, sid, 5, 60.0)
    assert not service.timer.is_active


def test_drills_for_workout(env):
    service, _ = env
    wid = service.workouts.create("2024-05-01")
    service.exercises.add(wid, "Squat", "strength", 3, "5")
    timed = service.exercises.add(wid, "Pound dribble", "ball_handling", 1, "30 sec")
    trips = service.exercises.add(wid, "Speed dribble", "ball_handling", 1, "2 trips")
    drills = service.drills_for_workout(wid)
    assert [(d.id, d.duration) for d in drills] == [(timed, 30), (trips, 15)]


def test_complete_drills_marks_open_sets(env):
    service, _ = env
    wid, eid, sids = _exercise(service, category="ball_handling", target_reps="20 sec")
    service.sets.update(sids[0], 2, 0.0, completed=True)
    assert service.complete_drills(wid) == sids[1:]
    detail = service.sets.fetch_detail(sids[1])
    assert detail["completed"] is True
    assert detail["reps"] == 1
    assert detail["weight"] == 0.0
    assert service.complete_drills(wid) == []


def test_start_and_finish_workout(env):
    service, _ = env
    wid, _, _ = _exercise(service)
    started = service.start_workout(wid)
    assert started["start_time"] is not None
    assert service.start_workout(wid)["start_time"] == started["start_time"]
    service.timer.start(60)
    result = service.finish_workout(wid)
    assert result["duration_minutes"] == 0
    assert result["progress"] == {"total": 2, "completed": 0, "percent": 0}
    assert not service.timer.is_active
    with pytest.raises(ValueError):
        service.finish_workout(999)
