"""SQLite connection setup and schema migrations for the keeper ledger."""

import importlib
import logging
import pkgutil
import re
import sqlite3
from pathlib import Path

from keeper.storage import migrations

logger = logging.getLogger(__name__)

_MIGRATION_NAME = re.compile(r"^v\d{3}_\w+$")


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open the ledger database in WAL mode with full fsync on commit."""
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    # A ledger write must survive a crash right after commit.
    conn.execute("PRAGMA synchronous=FULL")
    return conn


def run_migrations(conn: sqlite3.Connection) -> list[str]:
    """Apply pending migrations in name order and return the ones applied."""
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_versions ("
        "  version TEXT PRIMARY KEY,"
        "  applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP"
        ")"
    )
    done = {r[0] for r in conn.execute("SELECT version FROM schema_versions")}

    applied = []
    for name in migration_names():
        if name in done:
            continue
        module = importlib.import_module(f"{migrations.__name__}.{name}")
        module.up(conn)
        conn.execute("INSERT INTO schema_versions (version) VALUES (?)", (name,))
        conn.commit()
        logger.debug("Applied migration %s", name)
        applied.append(name)
    return applied


def migration_names() -> list[str]:
    return sorted(
        info.name
        for info in pkgutil.iter_modules(migrations.__path__)
        if _MIGRATION_NAME.match(info.name)
    )
