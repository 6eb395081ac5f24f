import sqlite3
import aiosqlite
import datetime
import json
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig, APP_VERSION
from settings_schema import validate_settings


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workouts": (
            """CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TEXT NOT NULL,
                    name TEXT,
                    start_time TEXT,
                    end_time TEXT,
                    duration_minutes INTEGER
                );""",
            ["id", "date", "name", "start_time", "end_time", "duration_minutes"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'strength',
                    position INTEGER NOT NULL DEFAULT 0,
                    target_sets INTEGER NOT NULL DEFAULT 3,
                    target_reps TEXT NOT NULL DEFAULT '10',
                    target_weight TEXT,
                    note TEXT,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_id",
                "name",
                "category",
                "position",
                "target_sets",
                "target_reps",
                "target_weight",
                "note",
            ],
        ),
        "sets": (
            """CREATE TABLE sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER,
                    weight REAL,
                    rpe INTEGER,
                    rest_time INTEGER,
                    completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "exercise_id",
                "set_number",
                "reps",
                "weight",
                "rpe",
                "rest_time",
                "completed",
                "completed_at",
            ],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "notifications": (
            """CREATE TABLE notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    message TEXT NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "timestamp", "message", "read"],
        ),
        "rest_timer_presets": (
            """CREATE TABLE rest_timer_presets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    duration INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "name", "duration", "position"],
        ),
        "timer_states": (
            """CREATE TABLE timer_states (
                    name TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["name", "data", "updated_at"],
        ),
    }

    _DEFAULT_PRESETS = [
        ("30 seconds", 30),
        ("60 seconds", 60),
        ("90 seconds", 90),
        ("2 minutes", 120),
        ("3 minutes", 180),
    ]

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()
        self._init_presets()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            connection.execute("PRAGMA foreign_keys=on;")
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "category":
                        return "'strength'"
                    if col in ("position", "completed"):
                        return "0"
                    if col == "set_number":
                        return "1"
                    if col == "target_sets":
                        return "3"
                    if col == "target_reps":
                        return "'10'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "rest_timer_seconds": "90",
            "drill_duration_seconds": "15",
            "drill_countdown_seconds": "5",
            "tick_interval_ms": "100",
            "sound_enabled": "1",
            "sound_command": "",
            "notifications_enabled": "1",
            "notification_webhook_url": "",
            "log_level": "INFO",
            "app_version": APP_VERSION,
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def _init_presets(self) -> None:
        with self._connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM rest_timer_presets;").fetchone()[0]
            if count:
                return
            for pos, (name, duration) in enumerate(self._DEFAULT_PRESETS, start=1):
                conn.execute(
                    "INSERT INTO rest_timer_presets (name, duration, position) VALUES (?, ?, ?);",
                    (name, duration, pos),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


MAX_RPE = 10


def _validate_set_values(
    reps: Optional[int], weight: Optional[float], rpe: Optional[int], max_rpe: int = MAX_RPE
) -> None:
    if reps is not None and reps <= 0:
        raise ValueError("reps must be positive")
    if weight is not None and weight < 0:
        raise ValueError("weight must be non-negative")
    if rpe is not None and (rpe < 0 or rpe > max_rpe):
        raise ValueError(f"rpe must be between 0 and {max_rpe}")


def _set_row_to_dict(row: Tuple) -> dict:
    (
        sid,
        exercise_id,
        set_number,
        reps,
        weight,
        rpe,
        rest_time,
        completed,
        completed_at,
    ) = row
    return {
        "id": sid,
        "exercise_id": exercise_id,
        "set_number": set_number,
        "reps": reps,
        "weight": weight,
        "rpe": rpe,
        "rest_time": rest_time,
        "completed": bool(completed),
        "completed_at": completed_at,
    }


_SET_COLUMNS = (
    "id, exercise_id, set_number, reps, weight, rpe, rest_time, completed, completed_at"
)


class WorkoutRepository(BaseRepository):
    """Repository for workout table operations."""

    def create(
        self,
        date: str,
        name: str | None = None,
        start_time: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO workouts (date, name, start_time) VALUES (?, ?, ?);",
            (date, name, start_time),
        )

    def fetch_all_workouts(self) -> List[Tuple[int, str, Optional[str]]]:
        return self.fetch_all("SELECT id, date, name FROM workouts ORDER BY id;")

    def fetch_detail(self, workout_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, date, name, start_time, end_time, duration_minutes FROM workouts WHERE id = ?;",
            (workout_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        wid, date, name, start_time, end_time, duration = rows[0]
        return {
            "id": wid,
            "date": date,
            "name": name,
            "start_time": start_time,
            "end_time": end_time,
            "duration_minutes": duration,
        }

    def set_start_time(self, workout_id: int, timestamp: str) -> None:
        self.execute(
            "UPDATE workouts SET start_time = ? WHERE id = ?;",
            (timestamp, workout_id),
        )

    def finish(self, workout_id: int, timestamp: str, duration_minutes: int) -> None:
        self.execute(
            "UPDATE workouts SET end_time = ?, duration_minutes = ? WHERE id = ?;",
            (timestamp, duration_minutes, workout_id),
        )


class ExerciseRepository(BaseRepository):
    """Repository for exercise table operations."""

    CATEGORIES = {"strength", "ball_handling", "shooting", "warmup", "conditioning", "core"}

    def add(
        self,
        workout_id: int,
        name: str,
        category: str = "strength",
        target_sets: int = 3,
        target_reps: str = "10",
        target_weight: Optional[str] = None,
        note: Optional[str] = None,
    ) -> int:
        if category not in self.CATEGORIES:
            raise ValueError(f"category must be one of {sorted(self.CATEGORIES)}")
        if target_sets <= 0:
            raise ValueError("target_sets must be positive")
        rows = self.fetch_all("SELECT id FROM workouts WHERE id = ?;", (workout_id,))
        if not rows:
            raise ValueError("workout not found")
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(position), 0) + 1 FROM exercises WHERE workout_id = ?;",
            (workout_id,),
        )
        position = int(rows[0][0]) if rows else 1
        return self.execute(
            "INSERT INTO exercises (workout_id, name, category, position, target_sets, target_reps, target_weight, note) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                workout_id,
                name,
                category,
                position,
                target_sets,
                target_reps,
                target_weight,
                note,
            ),
        )

    def fetch_for_workout(
        self, workout_id: int, category: Optional[str] = None
    ) -> List[dict]:
        query = (
            "SELECT id, name, category, position, target_sets, target_reps, target_weight, note "
            "FROM exercises WHERE workout_id = ?"
        )
        params: list = [workout_id]
        if category is not None:
            query += " AND category = ?"
            params.append(category)
        query += " ORDER BY position;"
        return [
            {
                "id": eid,
                "name": name,
                "category": cat,
                "position": pos,
                "target_sets": target_sets,
                "target_reps": target_reps,
                "target_weight": target_weight,
                "note": note,
            }
            for eid, name, cat, pos, target_sets, target_reps, target_weight, note in self.fetch_all(
                query, tuple(params)
            )
        ]

    def fetch_detail(self, exercise_id: int) -> Tuple[int, str, str]:
        rows = self.fetch_all(
            "SELECT workout_id, name, category FROM exercises WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        return rows[0]


class SetRepository(BaseRepository):
    """Repository for sets table operations."""

    def add(
        self,
        exercise_id: int,
        reps: Optional[int] = None,
        weight: Optional[float] = None,
        rpe: Optional[int] = None,
    ) -> int:
        _validate_set_values(reps, weight, rpe)
        rows = self.fetch_all("SELECT id FROM exercises WHERE id = ?;", (exercise_id,))
        if not rows:
            raise ValueError("exercise not found")
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(set_number), 0) + 1 FROM sets WHERE exercise_id = ?;",
            (exercise_id,),
        )
        set_number = int(rows[0][0]) if rows else 1
        return self.execute(
            "INSERT INTO sets (exercise_id, set_number, reps, weight, rpe) VALUES (?, ?, ?, ?, ?);",
            (exercise_id, set_number, reps, weight, rpe),
        )

    def update(
        self,
        set_id: int,
        reps: Optional[int],
        weight: Optional[float],
        rpe: Optional[int] = None,
        rest_time: Optional[int] = None,
        completed: Optional[bool] = None,
    ) -> None:
        _validate_set_values(reps, weight, rpe)
        if rest_time is not None and rest_time < 0:
            raise ValueError("rest_time must be non-negative")
        self.fetch_exercise_id(set_id)
        query = "UPDATE sets SET reps = ?, weight = ?, rpe = COALESCE(?, rpe), rest_time = COALESCE(?, rest_time)"
        params: list = [reps, weight, rpe, rest_time]
        if completed is not None:
            query += ", completed = ?, completed_at = ?"
            params.append(int(completed))
            params.append(
                datetime.datetime.now().isoformat(timespec="seconds") if completed else None
            )
        query += " WHERE id = ?;"
        params.append(set_id)
        self.execute(query, tuple(params))

    def bulk_update(self, updates: Iterable[dict]) -> None:
        """Update multiple sets from dicts carrying ``id`` and new values."""
        for upd in updates:
            sid = int(upd["id"])
            reps = upd.get("reps")
            weight = upd.get("weight")
            rpe = upd.get("rpe")
            rest_time = upd.get("rest_time")
            completed = upd.get("completed")
            self.update(
                sid,
                int(reps) if reps is not None else None,
                float(weight) if weight is not None else None,
                int(rpe) if rpe is not None else None,
                int(rest_time) if rest_time is not None else None,
                bool(completed) if completed is not None else None,
            )

    def fetch_exercise_id(self, set_id: int) -> int:
        rows = self.fetch_all(
            "SELECT exercise_id FROM sets WHERE id = ?;",
            (set_id,),
        )
        if not rows:
            raise ValueError("set not found")
        return int(rows[0][0])

    def fetch_for_exercise(self, exercise_id: int) -> List[dict]:
        rows = self.fetch_all(
            f"SELECT {_SET_COLUMNS} FROM sets WHERE exercise_id = ? ORDER BY set_number;",
            (exercise_id,),
        )
        return [_set_row_to_dict(r) for r in rows]

    def fetch_detail(self, set_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {_SET_COLUMNS} FROM sets WHERE id = ?;",
            (set_id,),
        )
        if not rows:
            raise ValueError("set not found")
        return _set_row_to_dict(rows[0])

    def incomplete_ids(self, exercise_id: int) -> List[int]:
        rows = self.fetch_all(
            "SELECT id FROM sets WHERE exercise_id = ? AND completed = 0 ORDER BY set_number;",
            (exercise_id,),
        )
        return [int(r[0]) for r in rows]

    def workout_progress(self, workout_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT COUNT(s.id), COALESCE(SUM(s.completed), 0) FROM sets s "
            "JOIN exercises e ON e.id = s.exercise_id WHERE e.workout_id = ?;",
            (workout_id,),
        )
        total, done = rows[0] if rows else (0, 0)
        percent = round(done / total * 100) if total else 0
        return {"total": int(total), "completed": int(done), "percent": percent}


class AsyncSetRepository(AsyncBaseRepository):
    """Asynchronous repository used when syncing completed sets."""

    async def complete(
        self,
        set_id: int,
        reps: int,
        weight: float,
        rpe: Optional[int] = None,
        rest_time: Optional[int] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        _validate_set_values(reps, weight, rpe)
        rows = await self.fetch_all("SELECT id FROM sets WHERE id = ?;", (set_id,))
        if not rows:
            raise ValueError("set not found")
        ts = timestamp or datetime.datetime.now().isoformat(timespec="seconds")
        await self.execute(
            "UPDATE sets SET reps = ?, weight = ?, rpe = COALESCE(?, rpe), rest_time = ?, completed = 1, completed_at = ? "
            "WHERE id = ?;",
            (reps, weight, rpe, rest_time, ts, set_id),
        )

    async def fetch_detail(self, set_id: int) -> dict:
        rows = await self.fetch_all(
            f"SELECT {_SET_COLUMNS} FROM sets WHERE id = ?;",
            (set_id,),
        )
        if not rows:
            raise ValueError("set not found")
        return _set_row_to_dict(rows[0])


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    BOOL_KEYS = {
        "sound_enabled",
        "notifications_enabled",
    }

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | bool] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = str(value)
                if key in self.BOOL_KEYS:
                    if val in {"1", "1.0", "true", "True"}:
                        val = "1"
                    else:
                        val = "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()


class NotificationRepository(BaseRepository):
    """Repository for user notifications."""

    def add(self, message: str) -> int:
        return self.execute(
            "INSERT INTO notifications (timestamp, message, read) VALUES (?, ?, 0);",
            (datetime.datetime.now().isoformat(), message),
        )

    def fetch_all(self, unread_only: bool = False) -> list[dict[str, object]]:
        sql = "SELECT id, timestamp, message, read FROM notifications"
        if unread_only:
            sql += " WHERE read=0"
        sql += " ORDER BY id;"
        rows = super().fetch_all(sql)
        result: list[dict[str, object]] = []
        for r in rows:
            result.append(
                {
                    "id": r[0],
                    "timestamp": r[1],
                    "message": r[2],
                    "read": bool(r[3]),
                }
            )
        return result

    def mark_read(self, nid: int) -> None:
        self.execute("UPDATE notifications SET read=1 WHERE id=?;", (nid,))

    def unread_count(self) -> int:
        rows = super().fetch_all(
            "SELECT COUNT(*) FROM notifications WHERE read=0;"
        )
        return rows[0][0] if rows else 0


class TimerPresetRepository(BaseRepository):
    """Repository for quick-start rest durations."""

    def fetch_all_presets(self) -> list[dict]:
        rows = self.fetch_all(
            "SELECT id, name, duration, position FROM rest_timer_presets ORDER BY position;"
        )
        return [
            {"id": pid, "name": name, "duration": duration, "position": pos}
            for pid, name, duration, pos in rows
        ]

    def add(self, name: str, duration: int) -> int:
        if duration <= 0:
            raise ValueError("duration must be positive")
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(position), 0) + 1 FROM rest_timer_presets;"
        )
        position = int(rows[0][0]) if rows else 1
        try:
            return self.execute(
                "INSERT INTO rest_timer_presets (name, duration, position) VALUES (?, ?, ?);",
                (name, duration, position),
            )
        except sqlite3.IntegrityError:
            raise ValueError("preset name already exists")

    def remove(self, preset_id: int) -> None:
        self.execute("DELETE FROM rest_timer_presets WHERE id = ?;", (preset_id,))


class TimerStateRepository(BaseRepository):
    """Stores serialized timer state so it survives a restart."""

    def save(self, name: str, data: dict) -> None:
        self.execute(
            "INSERT INTO timer_states (name, data, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(name) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at;",
            (name, json.dumps(data), datetime.datetime.now().isoformat(timespec="seconds")),
        )

    def load(self, name: str) -> dict | None:
        rows = self.fetch_all("SELECT data FROM timer_states WHERE name = ?;", (name,))
        if not rows:
            return None
        return json.loads(rows[0][0])

    def clear(self, name: str) -> None:
        self.execute("DELETE FROM timer_states WHERE name = ?;", (name,))
