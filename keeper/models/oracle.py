"""Oracle feed snapshot models."""

from dataclasses import dataclass

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class UpdateAccount:
    pubkey: Pubkey
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class SignedUpdatePayload:
    """Oracle-signed instruction that posts a feed update on-chain."""

    program_id: Pubkey
    accounts: tuple[UpdateAccount, ...]
    data: bytes


@dataclass(frozen=True)
class FeedSnapshot:
    feed_id: bytes
    quantized_value: int
    timestamp_ns: int
    signed_update_payload: SignedUpdatePayload | None = None
