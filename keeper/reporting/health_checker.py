"""Health checker: ledger DB connectivity and cycle freshness."""

import logging
import sqlite3

from keeper.models.reporting import HealthStatus
from keeper.reporting.metrics import KeeperMetrics

logger = logging.getLogger(__name__)


class HealthChecker:
    def __init__(
        self, conn: sqlite3.Connection, metrics: KeeperMetrics, stale_after_s: float = 120.0
    ):
        self.conn = conn
        self.metrics = metrics
        self.stale_after_s = stale_after_s

    def check(self) -> HealthStatus:
        age = self.metrics.last_cycle_age_seconds()
        return HealthStatus(
            db_connected=self._check_db(),
            last_cycle_age_seconds=age,
            consecutive_failures=self.metrics.consecutive_failures,
            mode=self.metrics.mode,
            stale=self._is_stale(age),
        )

    def _check_db(self) -> bool:
        try:
            self.conn.execute("SELECT 1")
            return True
        except sqlite3.Error as e:
            logger.warning("Ledger DB check failed: %s", e)
            return False

    def _is_stale(self, age: float | None) -> bool:
        # Before the first cycle completes, measure from process start.
        if age is None:
            return self.metrics.uptime_seconds() > self.stale_after_s
        return age > self.stale_after_s
