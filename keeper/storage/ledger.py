"""Execution ledger: durable per-(order, route) dedup and attempt tracking.

This is the keeper's only owned state. A route whose last recorded status
is ``confirmed`` or ``simulated`` is never submitted again, across cycles
and process restarts.
"""

import logging
import sqlite3
from pathlib import Path

from solders.pubkey import Pubkey

from keeper.models.common import utc_now_iso
from keeper.models.execution import (
    TERMINAL_SUCCESS,
    ExecutionCandidate,
    ExecutionResult,
    ExecutionStatus,
    LedgerEntry,
    Route,
)
from keeper.storage.database import connect, run_migrations

logger = logging.getLogger(__name__)

_SUCCESS_STATUSES = tuple(sorted(s.value for s in TERMINAL_SUCCESS))

# Success rows are sticky: a late failure record never downgrades them.
_UPSERT = (
    "INSERT INTO execution_ledger "
    "(order_pubkey, route, status, attempts, error_code, signature, slot, updated_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
    "ON CONFLICT(order_pubkey, route) DO UPDATE SET "
    "status = excluded.status, "
    "attempts = MAX(execution_ledger.attempts, excluded.attempts), "
    "error_code = excluded.error_code, "
    "signature = excluded.signature, "
    "slot = excluded.slot, "
    "updated_at = excluded.updated_at "
    "WHERE execution_ledger.status NOT IN (?, ?)"
)


def ledger_key(order_pubkey: Pubkey | str, route: Route | str) -> str:
    return f"{order_pubkey}:{Route(route).value}"


class ExecutionLedger:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @classmethod
    def open(cls, db_path: str | Path) -> "ExecutionLedger":
        conn = connect(db_path)
        applied = run_migrations(conn)
        if applied:
            logger.info("Applied ledger migrations: %s", ", ".join(applied))
        return cls(conn)

    def close(self) -> None:
        self.conn.close()

    # --- Dedup / attempts ---

    def is_duplicate(self, order_pubkey: Pubkey | str, route: Route | str) -> bool:
        entry = self.get_entry(order_pubkey, route)
        return entry is not None and entry.status.value in _SUCCESS_STATUSES

    def get_attempt_count(self, order_pubkey: Pubkey | str, route: Route | str) -> int:
        entry = self.get_entry(order_pubkey, route)
        return entry.attempts if entry is not None else 0

    def get_entry(
        self, order_pubkey: Pubkey | str, route: Route | str
    ) -> LedgerEntry | None:
        row = self.conn.execute(
            "SELECT * FROM execution_ledger WHERE order_pubkey = ? AND route = ?",
            (str(order_pubkey), Route(route).value),
        ).fetchone()
        if row is None:
            return None
        return _row_to_entry(row)

    def list_entries(self, limit: int = 50) -> list[LedgerEntry]:
        rows = self.conn.execute(
            "SELECT * FROM execution_ledger ORDER BY updated_at DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [_row_to_entry(r) for r in rows]

    # --- Writes ---

    def record_result(
        self, candidate: ExecutionCandidate, result: ExecutionResult, attempts: int
    ) -> None:
        """Persist a submission outcome for the candidate's (order, route)."""
        self._upsert(
            candidate,
            status=result.status,
            attempts=attempts,
            error_code=result.error_code,
            signature=result.signature,
            slot=result.slot,
        )
        logger.info(
            "Ledger %s -> %s (attempts=%d, sig=%s)",
            ledger_key(candidate.order_pubkey, candidate.route),
            result.status.value,
            attempts,
            result.signature,
        )

    def record_failure(
        self, candidate: ExecutionCandidate, error_code: str, attempts: int
    ) -> None:
        """Persist a failure that never reached submission."""
        self._upsert(
            candidate,
            status=ExecutionStatus.FAILED,
            attempts=attempts,
            error_code=error_code,
            signature=None,
            slot=None,
        )
        logger.warning(
            "Ledger %s -> failed (%s, attempts=%d)",
            ledger_key(candidate.order_pubkey, candidate.route),
            error_code,
            attempts,
        )

    def reset_entry(self, order_pubkey: Pubkey | str, route: Route | str) -> bool:
        """Clear a failed entry so its attempts start over. Success rows are kept."""
        cursor = self.conn.execute(
            "DELETE FROM execution_ledger "
            "WHERE order_pubkey = ? AND route = ? AND status NOT IN (?, ?)",
            (str(order_pubkey), Route(route).value, *_SUCCESS_STATUSES),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def _upsert(
        self,
        candidate: ExecutionCandidate,
        status: ExecutionStatus,
        attempts: int,
        error_code: str | None,
        signature: str | None,
        slot: int | None,
    ) -> None:
        self.conn.execute(
            _UPSERT,
            (
                str(candidate.order_pubkey),
                candidate.route.value,
                status.value,
                attempts,
                error_code,
                signature,
                slot,
                utc_now_iso(),
                *_SUCCESS_STATUSES,
            ),
        )
        self.conn.commit()

    # --- Checkpoints ---

    def get_checkpoint(self, key: str) -> str | None:
        row = self.conn.execute(
            "SELECT value FROM checkpoints WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        return row[0]

    def set_checkpoint(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT INTO checkpoints (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = excluded.updated_at",
            (key, value, utc_now_iso()),
        )
        self.conn.commit()


def _row_to_entry(row: sqlite3.Row) -> LedgerEntry:
    return LedgerEntry(
        order_pubkey=row["order_pubkey"],
        route=Route(row["route"]),
        status=ExecutionStatus(row["status"]),
        attempts=row["attempts"],
        error_code=row["error_code"],
        signature=row["signature"],
        updated_at=row["updated_at"],
    )
