"""Cycle reporting models."""

from dataclasses import dataclass, field


@dataclass
class CycleSummary:
    cycle_id: str
    mode: str
    orders_scanned: int = 0
    decode_failures: int = 0
    candidates: int = 0
    evaluation_errors: int = 0
    skipped_duplicates: int = 0
    deferred_backoff: int = 0
    feeds_requested: int = 0
    submitted: int = 0
    confirmed: int = 0
    simulated: int = 0
    failed: int = 0
    failure_codes: dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0
    errors: list[str] = field(default_factory=list)


@dataclass
class HealthStatus:
    db_connected: bool
    last_cycle_age_seconds: float | None
    consecutive_failures: int
    mode: str
    stale: bool

    @property
    def status(self) -> str:
        if not self.db_connected or self.stale:
            return "unhealthy"
        if self.consecutive_failures:
            return "degraded"
        return "ok"
