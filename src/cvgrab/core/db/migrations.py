from __future__ import annotations

import sqlite3
from pathlib import Path

from cvgrab.errors import PersistenceError

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def connect_db(db_path: Path, timeout: float = 30.0) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # Ingestion passes run in worker threads; access is serialized by the monitor.
    connection = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
    connection.row_factory = sqlite3.Row
    # list/show/export may read while "watch" is writing
    connection.execute("PRAGMA journal_mode = WAL")
    return connection


def _ensure_migrations_table(connection: sqlite3.Connection) -> None:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            filename TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    connection.commit()


def pending_migrations(connection: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> list[Path]:
    _ensure_migrations_table(connection)
    applied = {row["filename"] for row in connection.execute("SELECT filename FROM schema_migrations")}
    return [path for path in sorted(migrations_dir.glob("*.sql")) if path.name not in applied]


def apply_migrations(connection: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Run every ``*.sql`` file not yet recorded in ``schema_migrations``, in name order."""
    executed: list[str] = []
    for migration_file in pending_migrations(connection, migrations_dir):
        script = migration_file.read_text(encoding="utf-8")
        try:
            with connection:
                connection.executescript(script)
                connection.execute(
                    "INSERT INTO schema_migrations (filename) VALUES (?)",
                    (migration_file.name,),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Migration {migration_file.name} failed: {exc}") from exc
        executed.append(migration_file.name)

    return executed
