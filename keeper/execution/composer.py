"""Transaction composition: ordered instruction list for a ready candidate."""

import logging

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from keeper.chain.vault_client import VaultClient
from keeper.errors import MissingOracleAttestation
from keeper.ingest.feed_cache import OracleFeedCache
from keeper.ingest.feed_ids import bytes_to_hex, derive_stork_feed_pda
from keeper.models.execution import ExecutionCandidate, TransactionPlan
from keeper.models.oracle import SignedUpdatePayload
from keeper.models.order import OrderEnvelope

logger = logging.getLogger(__name__)


def payload_to_instruction(payload: SignedUpdatePayload) -> Instruction:
    metas = [
        AccountMeta(a.pubkey, is_signer=a.is_signer, is_writable=a.is_writable)
        for a in payload.accounts
    ]
    return Instruction(payload.program_id, payload.data, metas)


class TransactionComposer:
    """Builds the instruction sequence for one execution.

    Oracle routes always carry the signed feed update ahead of the execute
    instruction, so both land in the same transaction or neither does.
    """

    def __init__(
        self,
        vault: VaultClient,
        feed_cache: OracleFeedCache,
        compute_unit_limit: int = 0,
        compute_unit_price: int = 0,
    ):
        self.vault = vault
        self.feed_cache = feed_cache
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price

    def build(
        self, candidate: ExecutionCandidate, order: OrderEnvelope, keeper: Pubkey
    ) -> TransactionPlan:
        plan = TransactionPlan(candidate=candidate, fee_payer=keeper)

        if self.compute_unit_limit:
            plan.instructions.append(set_compute_unit_limit(self.compute_unit_limit))
        if self.compute_unit_price:
            plan.instructions.append(set_compute_unit_price(self.compute_unit_price))

        stork_feed = None
        if candidate.route.needs_oracle:
            update_ix = self._oracle_update_instruction(candidate)
            plan.instructions.append(update_ix)
            plan.uses_oracle_update = True
            stork_feed = derive_stork_feed_pda(candidate.feed_id)

        plan.instructions.append(
            self.vault.build_execute_instruction(
                candidate.route, order, keeper, stork_feed=stork_feed
            )
        )
        logger.debug(
            "Composed %d instruction(s) for %s/%s",
            len(plan.instructions), candidate.order_pubkey, candidate.route,
        )
        return plan

    def _oracle_update_instruction(self, candidate: ExecutionCandidate) -> Instruction:
        if candidate.feed_id is None:
            raise MissingOracleAttestation(
                f"Oracle route {candidate.route} for {candidate.order_pubkey} has no feed id"
            )
        snapshot = self.feed_cache.get(candidate.feed_id)
        if snapshot is None or snapshot.signed_update_payload is None:
            raise MissingOracleAttestation(
                f"No signed update for feed {bytes_to_hex(candidate.feed_id)} "
                f"(order {candidate.order_pubkey})"
            )
        return payload_to_instruction(snapshot.signed_update_payload)
