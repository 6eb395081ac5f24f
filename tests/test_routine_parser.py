import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from routine_parser import RoutineParser

ROUTINE = """# Off-season routine

## DAILY WARM-UP

### Ball handling
1. Pound dribble: 30 sec
2. Crossovers: 20 reps

### Shooting
1. **Form shooting**: 50 makes

## MONDAY - Upper Body

1. **Bench Press** - 4 x 8-10
   Start with 40kg
2. **Pull-ups** - 3 sets
   Bodyweight only

### BALL HANDLING
- Speed dribble (right hand): 2 trips
- Stationary crossover: 30 sec

### SHOOTING
- Free throws: 20 makes
1. **Corner threes**: 30 attempts

## TUESDAY - Lower Body

1. **Back Squat** - 5 x 5
   100kg barbell
2. **Walking Lunge** - 3 x 12
   15 reps (12-16kg)
"""


CONDITIONING_DAY = """## THURSDAY - Court Work

### BALL HANDLING
- Pound dribble: 30 sec

**Two-ball series**
1. Low crossover
2. Between the legs

### BASKETBALL CONDITIONING
**Block 1: Suicides**
- Work: 30 sec
- Rest: 30 sec
- 6 rounds

**Block 2: Defensive slides**
- Work: 20 sec, 8 rounds

**Block 3: Cool down jog**
10 min continuous

### HIGH-INTENSITY INTERVALS
- Work: 1 min
- Rest: 2 min
- 4 rounds

### CORE
- Plank: 3 x 30-45 sec
- Dead bug: 2 x 10 each side
"""


class RoutineParserTest(unittest.TestCase):
    def setUp(self) -> None:
        self.days = RoutineParser.parse(ROUTINE)

    def test_day_sections(self) -> None:
        self.assertEqual(
            [d.name for d in self.days],
            ["DAILY WARM-UP", "MONDAY - Upper Body", "TUESDAY - Lower Body"],
        )
        self.assertEqual(self.days[1].day, "MONDAY")

    def test_warmup(self) -> None:
        warmup = self.days[0]
        self.assertEqual(
            [(e.name, e.category, e.target_reps) for e in warmup.exercises],
            [
                ("Pound dribble", "ball_handling", "30 sec"),
                ("Crossovers", "warmup", "20 reps"),
                ("Form shooting", "shooting", "50 makes"),
            ],
        )
        self.assertEqual([e.position for e in warmup.exercises], [1, 2, 3])

    def test_gym_exercises(self) -> None:
        monday = self.days[1].exercises
        bench, pullups = monday[0], monday[1]
        self.assertEqual((bench.name, bench.category), ("Bench Press", "strength"))
        self.assertEqual((bench.target_sets, bench.target_reps), (4, "8-10"))
        self.assertEqual(bench.target_weight, "40kg")
        self.assertEqual((pullups.target_sets, pullups.target_reps), (3, "8-12"))
        self.assertIsNone(pullups.target_weight)

    def test_weight_patterns(self) -> None:
        squat, lunge = self.days[2].exercises
        self.assertEqual(squat.target_weight, "100kg")
        self.assertEqual(lunge.target_weight, "12-16kg")

    def test_drill_sections(self) -> None:
        monday = self.days[1].exercises
        self.assertEqual(
            [(e.name, e.category, e.target_reps) for e in monday[2:]],
            [
                ("Speed dribble (right hand)", "ball_handling", "2 trips"),
                ("Stationary crossover", "ball_handling", "30 sec"),
                ("Free throws", "shooting", "20 makes"),
                ("Corner threes", "shooting", "30 attempts"),
            ],
        )
        self.assertEqual([e.position for e in monday], [1, 2, 3, 4, 5, 6])

    def test_no_warmup(self) -> None:
        days = RoutineParser.parse("## FRIDAY - Conditioning\n\n1. **Sled Push** - 4 x 20\n")
        self.assertEqual(len(days), 1)
        self.assertEqual(days[0].exercises[0].target_sets, 4)
        self.assertEqual(RoutineParser.parse("nothing here"), [])


    def test_conditioning_core_and_sequences(self) -> None:
        days = RoutineParser.parse(CONDITIONING_DAY)
        self.assertEqual(len(days), 1)
        self.assertEqual(
            [(e.name, e.category, e.target_sets, e.target_reps) for e in days[0].exercises],
            [
                ("Pound dribble", "ball_handling", 1, "30 sec"),
                ("Low crossover", "ball_handling", 1, "As prescribed"),
                ("Between the legs", "ball_handling", 1, "As prescribed"),
                ("Block 1: Suicides", "conditioning", 1, "30sec work, 30sec rest, 6 rounds"),
                ("Block 2: Defensive slides", "conditioning", 1, "20sec x 8"),
                ("Block 3: Cool down jog", "conditioning", 1, "10 min continuous"),
                ("Conditioning work", "conditioning", 1, "1min work, 2min rest, 4 rounds"),
                ("Plank", "core", 3, "30-45 sec"),
                ("Dead bug", "core", 2, "10 each side"),
            ],
        )
        self.assertEqual([e.position for e in days[0].exercises], list(range(1, 10)))
        self.assertEqual(
            days[0].exercises[1].note, "Ball handling sequence - Two-ball series"
        )


if __name__ == "__main__":
    unittest.main()
