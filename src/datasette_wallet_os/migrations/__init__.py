"""
Schema migrations for the wallet database.

Each migration is a SQL script named NNNN_description.sql. The schema_migrations
table records which numbers have run, so startup and the CLI can both call
run_migrations on every launch.
"""

import logging
import sqlite3
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent

LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    applied_ts TEXT NOT NULL
)
"""


def get_migration_files() -> list[tuple[int, Path]]:
    """Return (version, path) for every numbered script, lowest first."""
    scripts = []
    for path in MIGRATIONS_DIR.glob("*.sql"):
        prefix, _, _ = path.name.partition("_")
        if prefix.isdigit():
            scripts.append((int(prefix), path))
    scripts.sort()
    return scripts


def pending_migrations(conn: sqlite3.Connection) -> list[tuple[int, Path]]:
    """Scripts not yet recorded in schema_migrations."""
    recorded = {version for (version,) in conn.execute("SELECT version FROM schema_migrations")}
    return [(version, path) for version, path in get_migration_files() if version not in recorded]


def run_migrations(db_path: Path) -> list[int]:
    """
    Create the wallet database if needed and bring its schema up to date.

    Returns the versions applied by this call; an up-to-date database gives [].
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    applied = []
    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(LEDGER_DDL)
        conn.commit()

        for version, path in pending_migrations(conn):
            logger.info(f"Applying wallet schema {path.name}")
            conn.executescript(path.read_text())
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_ts) VALUES (?, ?)",
                (version, datetime.now(UTC).isoformat()),
            )
            conn.commit()
            applied.append(version)

    return applied
