"""In-process keeper metrics, aggregated from cycle summaries."""

import time
from collections.abc import Callable
from dataclasses import asdict

from keeper.models.reporting import CycleSummary


class KeeperMetrics:
    """Running totals across cycles plus the most recent cycle summary.

    Fed by the daemon after every cycle and read by the metrics server.
    """

    def __init__(self, mode: str, clock: Callable[[], float] = time.monotonic):
        self.mode = mode
        self.clock = clock
        self.started_at = clock()
        self.cycles = 0
        self.failed_cycles = 0
        self.consecutive_failures = 0
        self.orders_scanned = 0
        self.submitted = 0
        self.confirmed = 0
        self.simulated = 0
        self.failed = 0
        self.evaluation_errors = 0
        self.failure_codes: dict[str, int] = {}
        self.last_summary: CycleSummary | None = None
        self.last_cycle_at: float | None = None

    def record_cycle(self, summary: CycleSummary | None, ok: bool) -> None:
        """Fold one cycle into the totals. ``summary`` is None if the cycle crashed."""
        self.cycles += 1
        self.last_cycle_at = self.clock()
        if ok:
            self.consecutive_failures = 0
        else:
            self.failed_cycles += 1
            self.consecutive_failures += 1

        if summary is None:
            return
        self.last_summary = summary
        self.orders_scanned += summary.orders_scanned
        self.submitted += summary.submitted
        self.confirmed += summary.confirmed
        self.simulated += summary.simulated
        self.failed += summary.failed
        self.evaluation_errors += summary.evaluation_errors
        for code, count in summary.failure_codes.items():
            self.failure_codes[code] = self.failure_codes.get(code, 0) + count

    def uptime_seconds(self) -> float:
        return self.clock() - self.started_at

    def last_cycle_age_seconds(self) -> float | None:
        if self.last_cycle_at is None:
            return None
        return self.clock() - self.last_cycle_at

    def snapshot(self) -> dict:
        return {
            "mode": self.mode,
            "uptime_seconds": round(self.uptime_seconds(), 3),
            "cycles": self.cycles,
            "failed_cycles": self.failed_cycles,
            "consecutive_failures": self.consecutive_failures,
            "orders_scanned": self.orders_scanned,
            "submitted": self.submitted,
            "confirmed": self.confirmed,
            "simulated": self.simulated,
            "failed": self.failed,
            "evaluation_errors": self.evaluation_errors,
            "failure_codes": dict(sorted(self.failure_codes.items())),
            "last_cycle": asdict(self.last_summary) if self.last_summary else None,
        }
