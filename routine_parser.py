import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ParsedExercise:
    name: str
    category: str
    position: int
    target_sets: int = 3
    target_reps: str = "10"
    target_weight: Optional[str] = None
    note: Optional[str] = None


@dataclass
class RoutineDay:
    name: str
    description: str
    day: str
    exercises: List[ParsedExercise] = field(default_factory=list)


class RoutineParser:
    """Parse a markdown training routine into days of categorized exercises.

    The routine starts with an optional ``## DAILY WARM-UP`` section followed
    by ``## MONDAY - Title`` style day sections. Inside a day, numbered bold
    lines are gym exercises and the ``### BALL HANDLING`` / ``### SHOOTING``
    subsections hold timed drills and shooting targets. Conditioning intervals
    and ``### CORE`` lists are picked up as well.
    """

    DAY_RE = re.compile(
        r"^## (MONDAY|TUESDAY|WEDNESDAY|THURSDAY|FRIDAY|SATURDAY|SUNDAY) - (.+)$",
        re.MULTILINE,
    )
    WARMUP_RE = re.compile(r"^## DAILY WARM-UP.*?(?=^##\s+[A-Z]|\Z)", re.MULTILINE | re.DOTALL)
    WARMUP_DRILL_RE = re.compile(r"^\d+\.\s+([^*\n].*?):\s+(\d+)\s+(sec|reps)", re.MULTILINE)
    SHOT_RE = re.compile(
        r"^(?:\d+\.|-)?\s*\*\*(.+?)\*\*:\s*(\d+)\s*(makes?|attempts?)",
        re.MULTILINE | re.IGNORECASE,
    )
    PLAIN_SHOT_RE = re.compile(
        r"^-\s*([^*\n]+?):\s*(\d+)\s*(makes?|attempts?)",
        re.MULTILINE | re.IGNORECASE,
    )
    GYM_RE = re.compile(r"^(\d+)\.\s+\*\*(.+?)\*\*\s+-\s+(.+?)$", re.MULTILINE)
    NEXT_GYM_RE = re.compile(r"^\d+\.\s+\*\*", re.MULTILINE)
    BALL_DRILL_RE = re.compile(r"^-?\s*([^*\n]+?):\s*(\d+)\s*(trips|sec|reps)", re.MULTILINE)
    SEQUENCE_RE = re.compile(r"\*\*(.+?)\*\*(.*?)(?=\*\*|\Z)", re.DOTALL)
    SEQUENCE_STEP_RE = re.compile(r"^\d+\.\s+(.+?)\s*$", re.MULTILINE)
    CONDITIONING_RES = [
        re.compile(
            r"^### (?:BASKETBALL )?(?:AEROBIC )?CONDITIONING.*?(?=^###|\Z)",
            re.MULTILINE | re.DOTALL | re.IGNORECASE,
        ),
        re.compile(
            r"^### (?:BASKETBALL )?(?:HIGH-INTENSITY )?INTERVALS.*?(?=^###|\Z)",
            re.MULTILINE | re.DOTALL | re.IGNORECASE,
        ),
    ]
    BLOCK_RE = re.compile(r"\*\*Block \d+.*?(?=\*\*Block|^###|\Z)", re.MULTILINE | re.DOTALL)
    INTERVAL_RE = re.compile(r"\b(Work|Rest):\s*(\d+)\s*(sec|min)", re.IGNORECASE)
    ROUNDS_RE = re.compile(r"(\d+)\s*(?:rounds|reps|x)\b", re.IGNORECASE)
    CONTINUOUS_RE = re.compile(r"\d+\s*min\s+continuous", re.IGNORECASE)
    TITLE_RE = re.compile(r"\*\*(.+?)\*\*")
    CORE_RE = re.compile(r"^### (?:CORE|ABS).*?(?=^###|\Z)", re.MULTILINE | re.DOTALL | re.IGNORECASE)
    CORE_LINE_RE = re.compile(r"^-\s+(.+?):\s+(\d+)\s+x\s+(.+?)\s*$", re.MULTILINE)
    SETS_REPS_RE = re.compile(r"(\d+)\s*x\s*(\d+(?:-\d+)?)", re.IGNORECASE)
    SETS_ONLY_RE = re.compile(r"(\d+)\s*sets?", re.IGNORECASE)
    WEIGHT_RES = [
        re.compile(r"\d+\s+reps?\s+\((\d+(?:-\d+)?)\s*kg\)", re.IGNORECASE),
        re.compile(r"\d+\s+each\s+arm\s+\((\d+(?:-\d+)?)\s*kg\)", re.IGNORECASE),
        re.compile(r"(?:start with|week \d+-\d+:?)\s*(\d+(?:-\d+)?)\s*kg", re.IGNORECASE),
        re.compile(r"(\d+(?:-\d+)?)\s*kg\s+(?:dumbbells?|barbell|total|bar)", re.IGNORECASE),
        re.compile(
            r"(\d+(?:-\d+)?)\s*kg\s+(?:each hand|assistance|starting weight|on cable)",
            re.IGNORECASE,
        ),
        re.compile(r"(\d+(?:-\d+)?)\s*kg(?:\s+\(|$)", re.IGNORECASE | re.MULTILINE),
    ]

    @staticmethod
    def _section(content: str, title: str) -> str | None:
        match = re.search(rf"^### {title}.*?(?=^###|\Z)", content, re.MULTILINE | re.DOTALL)
        return match.group(0) if match else None

    @classmethod
    def parse(cls, markdown: str) -> List[RoutineDay]:
        """Return the warm-up (when present) followed by every day section."""
        days: List[RoutineDay] = []
        warmup = cls.parse_daily_warmup(markdown)
        if warmup is not None:
            days.append(warmup)
        matches = list(cls.DAY_RE.finditer(markdown))
        for i, match in enumerate(matches):
            day, title = match.group(1), match.group(2).strip()
            end = matches[i + 1].start() if i + 1 < len(matches) else len(markdown)
            exercises = cls.parse_day(markdown[match.end():end], day)
            logger.debug("%s: found %d exercises", day, len(exercises))
            if exercises:
                days.append(
                    RoutineDay(
                        name=f"{day} - {title}",
                        description=f"{day} complete training routine",
                        day=day,
                        exercises=exercises,
                    )
                )
        return days

    @classmethod
    def parse_daily_warmup(cls, markdown: str) -> RoutineDay | None:
        match = cls.WARMUP_RE.search(markdown)
        if match is None:
            return None
        content = match.group(0)
        exercises: List[ParsedExercise] = []
        for m in cls.WARMUP_DRILL_RE.finditer(content):
            unit = m.group(3)
            exercises.append(
                ParsedExercise(
                    name=m.group(1).strip(),
                    category="ball_handling" if unit == "sec" else "warmup",
                    position=len(exercises) + 1,
                    target_sets=1,
                    target_reps=f"{m.group(2)} {unit}",
                    note="Part of daily warm-up routine",
                )
            )
        for m in cls.SHOT_RE.finditer(content):
            exercises.append(
                ParsedExercise(
                    name=m.group(1).strip(),
                    category="shooting",
                    position=len(exercises) + 1,
                    target_sets=1,
                    target_reps=f"{m.group(2)} {m.group(3)}",
                    note="Shooting drill - warm-up",
                )
            )
        return RoutineDay(
            name="DAILY WARM-UP",
            description="Complete warm-up routine - do before every training day",
            day="WARMUP",
            exercises=exercises,
        )

    @classmethod
    def parse_day(cls, content: str, day: str) -> List[ParsedExercise]:
        exercises = cls.parse_gym_exercises(content)
        exercises += cls.parse_ball_handling(content, day)
        exercises += cls.parse_shooting(content, day)
        exercises += cls.parse_conditioning(content, day)
        exercises += cls.parse_core(content)
        for pos, ex in enumerate(exercises, start=1):
            ex.position = pos
        return exercises

    @classmethod
    def parse_gym_exercises(cls, content: str) -> List[ParsedExercise]:
        exercises: List[ParsedExercise] = []
        for m in cls.GYM_RE.finditer(content):
            details = m.group(3).strip()
            nxt = cls.NEXT_GYM_RE.search(content, m.end())
            block = content[m.start(): nxt.start() if nxt else len(content)]
            target_sets, target_reps = 3, "10"
            sets_reps = cls.SETS_REPS_RE.search(details)
            if sets_reps:
                target_sets, target_reps = int(sets_reps.group(1)), sets_reps.group(2)
            else:
                sets_only = cls.SETS_ONLY_RE.search(details)
                if sets_only:
                    target_sets, target_reps = int(sets_only.group(1)), "8-12"
            exercises.append(
                ParsedExercise(
                    name=m.group(2).strip(),
                    category="strength",
                    position=len(exercises) + 1,
                    target_sets=target_sets,
                    target_reps=target_reps,
                    target_weight=cls.parse_weight(block),
                )
            )
        return exercises

    @classmethod
    def parse_weight(cls, block: str) -> str | None:
        for pattern in cls.WEIGHT_RES:
            m = pattern.search(block)
            if m:
                return f"{m.group(1)}kg"
        return None

    @classmethod
    def parse_ball_handling(cls, content: str, day: str) -> List[ParsedExercise]:
        section = cls._section(content, "BALL HANDLING")
        if section is None:
            return []
        exercises = [
            ParsedExercise(
                name=m.group(1).strip(),
                category="ball_handling",
                position=i,
                target_sets=1,
                target_reps=f"{m.group(2)} {m.group(3)}",
                note=f"Ball handling drill - {day}",
            )
            for i, m in enumerate(cls.BALL_DRILL_RE.finditer(section), start=1)
        ]
        # numbered steps under a bold heading form a sequence without a timing
        for seq in cls.SEQUENCE_RE.finditer(section):
            for step in cls.SEQUENCE_STEP_RE.finditer(seq.group(2)):
                if cls.BALL_DRILL_RE.match(step.group(1)):
                    continue
                exercises.append(
                    ParsedExercise(
                        name=step.group(1),
                        category="ball_handling",
                        position=len(exercises) + 1,
                        target_sets=1,
                        target_reps="As prescribed",
                        note=f"Ball handling sequence - {seq.group(1).strip()}",
                    )
                )
        return exercises

    @classmethod
    def parse_shooting(cls, content: str, day: str) -> List[ParsedExercise]:
        section = cls._section(content, "SHOOTING")
        if section is None:
            return []
        matches = list(cls.SHOT_RE.finditer(section)) + list(cls.PLAIN_SHOT_RE.finditer(section))
        matches.sort(key=lambda m: m.start())
        return [
            ParsedExercise(
                name=m.group(1).strip(),
                category="shooting",
                position=i,
                target_sets=1,
                target_reps=f"{m.group(2)} {m.group(3)}",
                note=f"Shooting drill - {day}",
            )
            for i, m in enumerate(matches, start=1)
        ]

    @classmethod
    def _conditioning_units(cls, content: str) -> List[str]:
        units: List[str] = []
        spans = []
        for pattern in cls.CONDITIONING_RES:
            for m in pattern.finditer(content):
                spans.append(m.span())
                blocks = [b.group(0) for b in cls.BLOCK_RE.finditer(m.group(0))]
                units.extend(blocks or [m.group(0)])
        for b in cls.BLOCK_RE.finditer(content):
            if not any(start <= b.start() < end for start, end in spans):
                units.append(b.group(0))
        return units

    @classmethod
    def parse_conditioning(cls, content: str, day: str) -> List[ParsedExercise]:
        """Interval blocks and continuous work from the conditioning sections.

        ``Work: 30 sec`` / ``Rest: 30 sec`` pairs with a round count become
        one entry per block; ``N min continuous`` becomes its own entry.
        """
        exercises: List[ParsedExercise] = []
        for unit in cls._conditioning_units(content):
            title = cls.TITLE_RE.search(unit)
            intervals = cls.INTERVAL_RE.findall(unit)
            work = next((i for i in intervals if i[0].lower() == "work"), None)
            rest = next((i for i in intervals if i[0].lower() == "rest"), None)
            rounds_match = cls.ROUNDS_RE.search(unit)
            rounds = rounds_match.group(1) if rounds_match else "1"
            target = None
            if work and rest:
                target = f"{work[1]}{work[2]} work, {rest[1]}{rest[2]} rest, {rounds} rounds"
            elif work:
                target = f"{work[1]}{work[2]} x {rounds}"
            if target:
                exercises.append(
                    ParsedExercise(
                        name=title.group(1).strip() if title else "Conditioning work",
                        category="conditioning",
                        position=len(exercises) + 1,
                        target_sets=1,
                        target_reps=target,
                        note=f"Conditioning - {day}",
                    )
                )
            continuous = cls.CONTINUOUS_RE.search(unit)
            if continuous:
                exercises.append(
                    ParsedExercise(
                        name=title.group(1).strip() if title else "Continuous movement",
                        category="conditioning",
                        position=len(exercises) + 1,
                        target_sets=1,
                        target_reps=continuous.group(0),
                        note=f"Conditioning - {day}",
                    )
                )
        return exercises

    @classmethod
    def parse_core(cls, content: str) -> List[ParsedExercise]:
        section = cls.CORE_RE.search(content)
        if section is None:
            return []
        return [
            ParsedExercise(
                name=m.group(1).strip(),
                category="core",
                position=i,
                target_sets=int(m.group(2)),
                target_reps=m.group(3),
                note="Core work",
            )
            for i, m in enumerate(cls.CORE_LINE_RE.finditer(section.group(0)), start=1)
        ]
