"""Order source: full enumeration of open order accounts."""

import logging

from keeper.chain.codec import decode_order
from keeper.chain.vault_client import VaultClient
from keeper.errors import OrderDecodeError
from keeper.models.order import OrderEnvelope

logger = logging.getLogger(__name__)


class OrderSource:
    def __init__(self, vault: VaultClient):
        self.vault = vault
        self.last_decode_failures = 0

    async def scan(self) -> list[OrderEnvelope]:
        """Read and decode every open order account.

        A malformed account is logged and skipped; it never aborts the scan.
        """
        raw_accounts = await self.vault.fetch_order_accounts()
        orders: list[OrderEnvelope] = []
        failures = 0

        for pubkey, data in raw_accounts:
            try:
                order = decode_order(pubkey, data)
            except OrderDecodeError as e:
                failures += 1
                logger.warning("Skipping undecodable order account %s: %s", pubkey, e)
                continue
            if order.is_open:
                orders.append(order)

        self.last_decode_failures = failures
        logger.info(
            "Scanned %d order accounts: %d open, %d undecodable",
            len(raw_accounts), len(orders), failures,
        )
        return orders
