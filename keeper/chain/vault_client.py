"""Read access to the vault program's accounts and execute instruction building."""

import logging

import base58
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.models import MemcmpOpts
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from keeper.chain.codec import ORDER_DISCRIMINATOR, encode_execute_data
from keeper.models.execution import Route
from keeper.models.order import OrderEnvelope, PdaValueEquals

logger = logging.getLogger(__name__)


class VaultClient:
    def __init__(
        self,
        client: AsyncClient,
        program_id: Pubkey,
        commitment: Commitment | None = None,
    ):
        self.client = client
        self.program_id = program_id
        self.commitment = commitment

    async def fetch_order_accounts(self) -> list[tuple[Pubkey, bytes]]:
        """Return (pubkey, raw data) for every Order account owned by the program."""
        resp = await self.client.get_program_accounts(
            self.program_id,
            commitment=self.commitment,
            encoding="base64",
            filters=[MemcmpOpts(offset=0, bytes=base58.b58encode(ORDER_DISCRIMINATOR).decode())],
        )
        return [(keyed.pubkey, bytes(keyed.account.data)) for keyed in resp.value]

    async def fetch_account_data(self, pubkey: Pubkey) -> bytes | None:
        resp = await self.client.get_account_info(pubkey, commitment=self.commitment)
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def get_slot(self) -> int:
        resp = await self.client.get_slot(commitment=self.commitment)
        return resp.value

    def build_execute_instruction(
        self,
        route: Route,
        order: OrderEnvelope,
        keeper: Pubkey,
        stork_feed: Pubkey | None = None,
    ) -> Instruction:
        """Map a route to its execute_order_if_ready* instruction.

        Account order: order, keeper (signer), user, action program, the
        watched account for pda triggers, the Stork feed for oracle routes,
        then the action's own accounts.
        """
        if route.needs_oracle and stork_feed is None:
            raise ValueError(f"Route {route} requires the Stork feed account")

        metas = [
            AccountMeta(order.order_pubkey, is_signer=False, is_writable=True),
            AccountMeta(keeper, is_signer=True, is_writable=True),
            AccountMeta(order.user, is_signer=False, is_writable=True),
            AccountMeta(order.action.program_id, is_signer=False, is_writable=False),
        ]
        if isinstance(order.trigger, PdaValueEquals):
            metas.append(
                AccountMeta(order.trigger.account, is_signer=False, is_writable=False)
            )
        if stork_feed is not None:
            metas.append(AccountMeta(stork_feed, is_signer=False, is_writable=False))
        metas.extend(
            AccountMeta(acc.pubkey, is_signer=False, is_writable=acc.is_writable)
            for acc in order.action.accounts
        )

        return Instruction(
            self.program_id, encode_execute_data(route, order.order_id), metas
        )
