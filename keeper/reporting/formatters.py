"""Output formatters for cycle summaries."""

import json
from dataclasses import asdict

from keeper.models.reporting import CycleSummary


def format_summary_text(s: CycleSummary) -> str:
    """Plain text summary for logging."""
    lines = [
        f"=== Cycle Complete ({s.mode}) | Cycle {s.cycle_id[:8]} ===",
        f"Scanned: {s.orders_scanned} open orders, {s.decode_failures} undecodable",
        f"Candidates: {s.candidates} ready, {s.skipped_duplicates} already done, "
        f"{s.deferred_backoff} backing off",
        f"Submissions: {s.submitted} sent, {s.confirmed} confirmed, "
        f"{s.simulated} simulated, {s.failed} failed",
    ]
    if s.failure_codes:
        codes = ", ".join(f"{v} {k}" for k, v in sorted(s.failure_codes.items()))
        lines.append(f"Failures: {codes}")
    if s.evaluation_errors:
        lines.append(f"Evaluation errors: {s.evaluation_errors}")
    if s.feeds_requested:
        lines.append(f"Oracle feeds refreshed: {s.feeds_requested}")
    if s.errors:
        lines.append(f"Errors: {len(s.errors)}")
    lines.append(f"Duration: {s.duration_seconds:.2f}s")
    return "\n".join(lines)


def format_summary_json(s: CycleSummary) -> str:
    """JSON summary for programmatic consumption."""
    return json.dumps(asdict(s), indent=2)
