import argparse
import datetime
import logging
import shutil
import time
from typing import Callable, List, Optional

import yaml

from db import (
    WorkoutRepository,
    ExerciseRepository,
    SetRepository,
    AsyncSetRepository,
    SettingsRepository,
    NotificationRepository,
    TimerPresetRepository,
)
from drill_service import Drill, DrillPhase, DrillSequencer, PhaseEndEvent
from routine_parser import RoutineParser
from timer_service import RestTimer, TimerSnapshot
from workout_service import ActiveWorkoutService

logger = logging.getLogger(__name__)


def format_seconds(seconds: int) -> str:
    """Return ``seconds`` as ``mm:ss``."""
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins:02d}:{secs:02d}"


def run_rest_timer(
    seconds: int,
    clock=None,
    sleep: Callable[[float], None] = time.sleep,
    out: Callable[[str], None] = print,
    interval: float = 0.1,
) -> TimerSnapshot:
    """Count down a rest period in the terminal, one line per second."""
    timer = RestTimer(clock)
    done: List[TimerSnapshot] = []
    timer.add_listener(done.append)
    timer.start(seconds)
    last = None
    while not done:
        remaining = timer.remaining_seconds
        if remaining != last:
            out(f"Rest {format_seconds(remaining)}")
            last = remaining
        sleep(interval)
        timer.tick()
    out("Rest complete!")
    return done[0]


def run_drills(
    drills: List[Drill],
    clock=None,
    sleep: Callable[[float], None] = time.sleep,
    out: Callable[[str], None] = print,
    countdown_seconds: int = 5,
    interval: float = 0.1,
) -> List[PhaseEndEvent]:
    """Run a drill sequence to completion and return every phase end."""
    seq = DrillSequencer(drills, clock=clock, countdown_seconds=countdown_seconds)
    events: List[PhaseEndEvent] = []
    seq.start()
    out(f"Get ready: {seq.drills[0].name} in {countdown_seconds}s")
    while seq.phase is not DrillPhase.COMPLETE:
        sleep(interval)
        for event in seq.tick():
            events.append(event)
            if event.next_phase is DrillPhase.DRILL:
                drill = seq.drills[event.next_index]
                out(f"Go: {drill.name} ({format_seconds(drill.duration)})")
    seq.acknowledge()
    out("All drills complete!")
    return events


def load_drills(path: str, default_duration: int = 15) -> List[Drill]:
    """Read drills from a YAML list of ``{name, duration}`` mappings."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("drills", [])
    drills = []
    for idx, item in enumerate(data, start=1):
        if isinstance(item, str):
            item = {"name": item}
        drills.append(
            Drill(
                int(item.get("id", idx)),
                str(item["name"]),
                int(item.get("duration", default_duration)),
            )
        )
    return drills


def import_routine(md_path: str, db_path: str, date: Optional[str] = None) -> List[int]:
    """Create one workout per routine day, with an empty set per target set."""
    with open(md_path, "r", encoding="utf-8") as f:
        days = RoutineParser.parse(f.read())
    workouts = WorkoutRepository(db_path)
    exercises = ExerciseRepository(db_path)
    sets = SetRepository(db_path)
    day = date or datetime.date.today().isoformat()
    ids = []
    for routine in days:
        wid = workouts.create(day, routine.name)
        for ex in routine.exercises:
            ex_id = exercises.add(
                wid,
                ex.name,
                ex.category,
                ex.target_sets,
                ex.target_reps,
                ex.target_weight,
                ex.note,
            )
            for _ in range(ex.target_sets):
                sets.add(ex_id)
        logger.info("imported %s with %d exercises", routine.name, len(routine.exercises))
        ids.append(wid)
    return ids


def open_workout_service(db_path: str, yaml_path: str) -> ActiveWorkoutService:
    settings = SettingsRepository(db_path, yaml_path)
    return ActiveWorkoutService(
        WorkoutRepository(db_path),
        ExerciseRepository(db_path),
        SetRepository(db_path),
        AsyncSetRepository(db_path),
        settings,
        RestTimer(),
        NotificationRepository(db_path),
    )


def list_presets(db_path: str) -> List[str]:
    return [
        f"{p['name']}: {format_seconds(p['duration'])}"
        for p in TimerPresetRepository(db_path).fetch_all_presets()
    ]


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def serve(db_path: str, yaml_path: str, host: str, port: int) -> None:
    import uvicorn
    from rest_api import TimerAPI

    api = TimerAPI(db_path=db_path, yaml_path=yaml_path, start_ticker=True)
    try:
        uvicorn.run(api.app, host=host, port=port)
    finally:
        api.stop_ticker()


def main() -> None:
    parser = argparse.ArgumentParser(description="Rest timer and drill utilities")
    parser.add_argument("--db", default="workout.db")
    parser.add_argument("--yaml", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    rest = sub.add_parser("rest")
    rest.add_argument("--seconds", type=int)

    drl = sub.add_parser("drills")
    src = drl.add_mutually_exclusive_group(required=True)
    src.add_argument("--file")
    src.add_argument("--workout", type=int)

    imp = sub.add_parser("import_routine")
    imp.add_argument("--md", required=True)
    imp.add_argument("--date")

    sub.add_parser("presets")

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    args = parser.parse_args()
    settings = SettingsRepository(args.db, args.yaml)
    logging.basicConfig(level=settings.get_text("log_level", "INFO"))

    try:
        if args.cmd == "rest":
            seconds = args.seconds
            if seconds is None:
                seconds = settings.get_int("rest_timer_seconds", 90)
            run_rest_timer(seconds)
        elif args.cmd == "drills":
            countdown = settings.get_int("drill_countdown_seconds", 5)
            if args.file:
                drills = load_drills(args.file, settings.get_int("drill_duration_seconds", 15))
            else:
                service = open_workout_service(args.db, args.yaml)
                drills = service.drills_for_workout(args.workout)
            if not drills:
                parser.error("no drills to run")
            run_drills(drills, countdown_seconds=countdown)
            if args.workout is not None:
                done = service.complete_drills(args.workout)
                print(f"Marked {len(done)} drill sets complete")
        elif args.cmd == "import_routine":
            ids = import_routine(args.md, args.db, args.date)
            print(f"Imported {len(ids)} workouts")
        elif args.cmd == "presets":
            for line in list_presets(args.db):
                print(line)
        elif args.cmd == "serve":
            serve(args.db, args.yaml, args.host, args.port)
        elif args.cmd == "backup":
            backup_db(args.db, args.out)
        elif args.cmd == "restore":
            restore_db(args.src, args.db)
    except KeyboardInterrupt:
        print("Stopped")


if __name__ == "__main__":
    main()
