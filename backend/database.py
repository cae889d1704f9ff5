import logging
import os
import sqlite3
import subprocess
from contextlib import contextmanager
from typing import Iterable

from config import get_settings
from models import Task

logger = logging.getLogger(__name__)

DATABASE_PATH = get_settings().database_path

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "-x", f"db_path={os.path.abspath(DATABASE_PATH)}", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )

def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    due_at = row["due_at"]
    return Task(
        id=row["id"],
        text=row["text"],
        completed=bool(row["completed"]),
        created_at=int(row["created_at"]),
        updated_at=row["updated_at"],
        due_at=due_at,
        # Description without a due time is meaningless; drop it on load
        extracted_time_description=row["extracted_time_description"] if due_at is not None else None,
    )

def load_all() -> list[Task]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM tasks ORDER BY created_at").fetchall()
        return [_row_to_task(row) for row in rows]

def save_all(tasks: Iterable[Task]) -> None:
    """
    Replace the stored task set with the given tasks.
    The whole set is written in one transaction; there is no per-row diffing.
    """
    rows = [
        (t.id, t.text, int(t.completed), t.created_at, t.updated_at, t.due_at, t.extracted_time_description)
        for t in tasks
    ]
    with get_db() as conn:
        with conn:
            conn.execute("DELETE FROM tasks")
            conn.executemany(
                """INSERT INTO tasks
                   (id, text, completed, created_at, updated_at, due_at, extracted_time_description)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                rows
            )
    logger.debug("Saved %d tasks to %s", len(rows), DATABASE_PATH)

def count_tasks() -> int:
    with get_db() as conn:
        return conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0]


class SqlitePersistence:
    """Persistence port for TaskStore backed by the module-level functions above."""

    def load_all(self) -> list[Task]:
        return load_all()

    def save_all(self, tasks: Iterable[Task]) -> None:
        save_all(tasks)
