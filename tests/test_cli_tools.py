import os
import sys
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import (
    backup_db,
    restore_db,
    format_seconds,
    import_routine,
    list_presets,
    load_drills,
    main,
    open_workout_service,
    run_drills,
    run_rest_timer,
)
from clock import ManualClock
from db import ExerciseRepository, SetRepository, WorkoutRepository
from drill_service import Drill, DrillPhase

ROUTINE = """## DAILY WARM-UP
1. Pound dribble: 30 sec

## MONDAY - Upper Body

1. **Bench Press** - 2 x 8
   Start with 40kg

### BALL HANDLING
- Stationary crossover: 20 sec
"""


class CLIToolsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        self.yaml_path = "test_cli.yaml"
        self.files = [self.db_path, self.yaml_path, "backup.db", "test_drills.yaml", "test_routine.md"]
        for p in self.files:
            if os.path.exists(p):
                os.remove(p)

    def tearDown(self) -> None:
        for p in self.files:
            if os.path.exists(p):
                os.remove(p)

    def test_format_seconds(self) -> None:
        self.assertEqual(format_seconds(90), "01:30")
        self.assertEqual(format_seconds(5), "00:05")
        self.assertEqual(format_seconds(-2), "00:00")

    def test_run_rest_timer(self) -> None:
        clock = ManualClock()
        lines = []
        snap = run_rest_timer(3, clock=clock, sleep=clock.advance, out=lines.append)
        self.assertEqual(
            lines, ["Rest 00:03", "Rest 00:02", "Rest 00:01", "Rest complete!"]
        )
        self.assertTrue(snap.is_complete)

    def test_run_drills(self) -> None:
        clock = ManualClock()
        lines = []
        events = run_drills(
            [Drill(1, "Pound dribble", 2), Drill(2, "Crossover", 3)],
            clock=clock,
            sleep=clock.advance,
            out=lines.append,
            countdown_seconds=1,
        )
        self.assertEqual(len(events), 3)
        self.assertIs(events[-1].next_phase, DrillPhase.COMPLETE)
        self.assertEqual(
            lines,
            [
                "Get ready: Pound dribble in 1s",
                "Go: Pound dribble (00:02)",
                "Go: Crossover (00:03)",
                "All drills complete!",
            ],
        )

    def test_load_drills(self) -> None:
        with open("test_drills.yaml", "w", encoding="utf-8") as f:
            f.write("- name: Figure eight\n  duration: 20\n- Spider dribble\n")
        drills = load_drills("test_drills.yaml", default_duration=15)
        self.assertEqual(drills, [Drill(1, "Figure eight", 20), Drill(2, "Spider dribble", 15)])

    def test_import_routine(self) -> None:
        with open("test_routine.md", "w", encoding="utf-8") as f:
            f.write(ROUTINE)
        ids = import_routine("test_routine.md", self.db_path, "2024-06-03")
        self.assertEqual(len(ids), 2)
        workouts = WorkoutRepository(self.db_path).fetch_all_workouts()
        self.assertEqual(
            [w[2] for w in workouts], ["DAILY WARM-UP", "MONDAY - Upper Body"]
        )
        exercises = ExerciseRepository(self.db_path).fetch_for_workout(ids[1])
        self.assertEqual(
            [(e["name"], e["category"]) for e in exercises],
            [("Bench Press", "strength"), ("Stationary crossover", "ball_handling")],
        )
        self.assertEqual(exercises[0]["target_weight"], "40kg")
        sets = SetRepository(self.db_path).fetch_for_exercise(exercises[0]["id"])
        self.assertEqual(len(sets), 2)

    def test_presets_backup_restore(self) -> None:
        lines = list_presets(self.db_path)
        self.assertEqual(lines[0], "30 seconds: 00:30")
        self.assertEqual(lines[-1], "3 minutes: 03:00")
        backup_db(self.db_path, "backup.db")
        self.assertTrue(os.path.exists("backup.db"))
        os.remove(self.db_path)
        restore_db("backup.db", self.db_path)
        self.assertTrue(os.path.exists(self.db_path))

    def test_rest_zero_seconds_rejected(self) -> None:
        argv = ["cli.py", "--db", self.db_path, "--yaml", self.yaml_path, "rest", "--seconds", "0"]
        with mock.patch.object(sys, "argv", argv):
            with self.assertRaises(ValueError):
                main()

    def test_workout_drills_without_api_instance(self) -> None:
        import rest_api

        with open("test_routine.md", "w", encoding="utf-8") as f:
            f.write(ROUTINE)
        ids = import_routine("test_routine.md", self.db_path, "2024-06-03")
        service = open_workout_service(self.db_path, self.yaml_path)
        drills = service.drills_for_workout(ids[1])
        self.assertEqual([(d.name, d.duration) for d in drills], [("Stationary crossover", 20)])
        self.assertEqual(len(service.complete_drills(ids[1])), 1)
        self.assertIsNone(rest_api._default_api)


if __name__ == "__main__":
    unittest.main()
