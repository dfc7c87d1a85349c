"""Staleness checks for oracle feed snapshots.

Ages are computed in integer nanoseconds so two keepers evaluating the same
snapshot at the same instant always agree.
"""

from keeper.models.common import NANOS_PER_SECOND, now_ns
from keeper.models.oracle import FeedSnapshot


def snapshot_age_ns(snapshot: FeedSnapshot, now: int | None = None) -> int:
    if now is None:
        now = now_ns()
    return now - snapshot.timestamp_ns


def is_snapshot_fresh(
    snapshot: FeedSnapshot,
    max_age_sec: int,
    now: int | None = None,
    max_future_skew_sec: int = 300,
) -> bool:
    """True iff the snapshot is no older than max_age_sec.

    Snapshots dated further in the future than the skew allowance are
    treated as stale.
    """
    age = snapshot_age_ns(snapshot, now)
    if age < -max_future_skew_sec * NANOS_PER_SECOND:
        return False
    return age <= max_age_sec * NANOS_PER_SECOND
