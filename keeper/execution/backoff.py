"""Capped exponential backoff keyed by ledger attempt count."""

from dataclasses import dataclass
from datetime import datetime

from keeper.config.schema import RetryConfig
from keeper.models.execution import ExecutionStatus, LedgerEntry


@dataclass(frozen=True)
class RetryPolicy:
    base_delay_s: float = 2.0
    max_delay_s: float = 300.0
    max_attempts: int = 8

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            base_delay_s=config.base_delay_s,
            max_delay_s=config.max_delay_s,
            max_attempts=config.max_attempts,
        )

    def delay_for(self, attempts: int) -> float:
        if attempts <= 0:
            return 0.0
        return min(self.base_delay_s * (2 ** (attempts - 1)), self.max_delay_s)

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def should_attempt(self, entry: LedgerEntry | None, now: datetime) -> bool:
        """Whether a new submission may be made for this ledger entry now."""
        if entry is None:
            return True
        if entry.status is not ExecutionStatus.FAILED:
            return False
        if self.exhausted(entry.attempts):
            return False
        last = datetime.fromisoformat(entry.updated_at)
        elapsed = (now - last).total_seconds()
        return elapsed >= self.delay_for(entry.attempts)
