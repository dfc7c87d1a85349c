"""Repository for the keeper cycle log."""

import json
import sqlite3
from dataclasses import asdict

from keeper.models.reporting import CycleSummary


def create_cycle(
    conn: sqlite3.Connection, cycle_id: str, mode: str, config_hash: str | None = None
) -> None:
    conn.execute(
        "INSERT INTO cycles (cycle_id, mode, config_hash) VALUES (?, ?, ?)",
        (cycle_id, mode, config_hash),
    )
    conn.commit()


def complete_cycle(
    conn: sqlite3.Connection,
    summary: CycleSummary,
    status: str,
    error_message: str | None = None,
) -> None:
    """Close out a cycle row with the counters from its summary."""
    conn.execute(
        "UPDATE cycles SET completed_at = CURRENT_TIMESTAMP, status = ?, "
        "orders_scanned = ?, candidates = ?, submitted = ?, succeeded = ?, failed = ?, "
        "summary_json = ?, error_message = ? "
        "WHERE cycle_id = ?",
        (
            status,
            summary.orders_scanned,
            summary.candidates,
            summary.submitted,
            summary.confirmed + summary.simulated,
            summary.failed,
            json.dumps(asdict(summary)),
            error_message,
            summary.cycle_id,
        ),
    )
    conn.commit()


def get_latest_cycle(conn: sqlite3.Connection) -> dict | None:
    row = conn.execute("SELECT * FROM cycles ORDER BY id DESC LIMIT 1").fetchone()
    return dict(row) if row is not None else None
