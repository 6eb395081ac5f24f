import sqlite3
import sys

def migrate(db_path='workout.db'):
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    cur.execute("PRAGMA table_info(exercises);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'category' not in cols:
        cur.execute("ALTER TABLE exercises ADD COLUMN category TEXT NOT NULL DEFAULT 'strength';")
    cur.execute("PRAGMA table_info(sets);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'rest_time' not in cols:
        cur.execute("ALTER TABLE sets ADD COLUMN rest_time INTEGER;")
    if cols and 'completed' not in cols:
        cur.execute("ALTER TABLE sets ADD COLUMN completed INTEGER NOT NULL DEFAULT 0;")
    if cols and 'completed_at' not in cols:
        cur.execute("ALTER TABLE sets ADD COLUMN completed_at TEXT;")
    cur.execute("PRAGMA table_info(timer_states);")
    if not cur.fetchall():
        cur.execute(
            "CREATE TABLE timer_states (name TEXT PRIMARY KEY, data TEXT NOT NULL, updated_at TEXT NOT NULL);"
        )
    conn.commit()
    conn.close()

if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'workout.db'
    migrate(path)
