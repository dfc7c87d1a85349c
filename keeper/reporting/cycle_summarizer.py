"""Cycle summarizer: aggregates keeper cycle outputs into a CycleSummary."""

from keeper.models.execution import ExecutionResult, ExecutionStatus
from keeper.models.reporting import CycleSummary


class CycleSummarizer:
    def __init__(self, cycle_id: str, mode: str):
        self.summary = CycleSummary(cycle_id=cycle_id, mode=mode)

    def record_scan(self, orders_scanned: int, decode_failures: int) -> None:
        self.summary.orders_scanned = orders_scanned
        self.summary.decode_failures = decode_failures

    def record_candidates(self, count: int) -> None:
        self.summary.candidates += count

    def record_evaluation_error(self) -> None:
        self.summary.evaluation_errors += 1

    def record_duplicate(self) -> None:
        self.summary.skipped_duplicates += 1

    def record_deferred(self) -> None:
        self.summary.deferred_backoff += 1

    def record_feed_refresh(self, requested: int) -> None:
        self.summary.feeds_requested += requested

    def record_result(self, result: ExecutionResult) -> None:
        self.summary.submitted += 1
        if result.status == ExecutionStatus.CONFIRMED:
            self.summary.confirmed += 1
        elif result.status == ExecutionStatus.SIMULATED:
            self.summary.simulated += 1
        else:
            self.record_failure(result.error_code or "unknown")

    def record_failure(self, error_code: str) -> None:
        self.summary.failed += 1
        self.summary.failure_codes[error_code] = (
            self.summary.failure_codes.get(error_code, 0) + 1
        )

    def record_duration(self, seconds: float) -> None:
        self.summary.duration_seconds = seconds

    def record_error(self, error: str) -> None:
        self.summary.errors.append(error)

    def finalize(self) -> CycleSummary:
        return self.summary
