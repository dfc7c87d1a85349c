"""Latest-snapshot cache for oracle feeds, restricted to an allowlist."""

import logging

from keeper.ingest.feed_ids import bytes_to_hex, normalize_feed_id
from keeper.ingest.stork_client import StorkClient
from keeper.models.oracle import FeedSnapshot

logger = logging.getLogger(__name__)


class OracleFeedCache:
    """Holds only the newest snapshot per feed.

    Freshness is not enforced here; each trigger applies its own max age.
    A miss means "not yet triggerable".
    """

    def __init__(self, stork: StorkClient, allowlist: list[str] | None = None):
        self.stork = stork
        self.allowlist = [normalize_feed_id(f) for f in (allowlist or [])]
        self._snapshots: dict[str, FeedSnapshot] = {}

    def effective_feed_ids(self, requested: list[bytes | str]) -> list[str]:
        if self.allowlist:
            return list(self.allowlist)
        # dict preserves first-seen order while deduplicating
        return list(dict.fromkeys(normalize_feed_id(f) for f in requested))

    async def refresh(self, requested_feed_ids: list[bytes | str]) -> int:
        """Pull the latest snapshots and overwrite cached entries.

        Returns the number of snapshots stored. Oracle errors propagate.
        """
        ids = self.effective_feed_ids(requested_feed_ids)
        if not ids:
            return 0

        latest = await self.stork.fetch_latest_snapshots(ids)
        for snapshot in latest:
            self._snapshots[bytes_to_hex(snapshot.feed_id)] = snapshot
        logger.info("Refreshed %d/%d oracle feeds", len(latest), len(ids))
        return len(latest)

    def get(self, feed_id: bytes | str) -> FeedSnapshot | None:
        return self._snapshots.get(normalize_feed_id(feed_id))

    def snapshot_ids(self) -> list[str]:
        return sorted(self._snapshots)
