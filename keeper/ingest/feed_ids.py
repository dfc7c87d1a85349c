"""Feed identifier encoding and Stork feed account derivation."""

from solders.pubkey import Pubkey

STORK_FEED_SEED = b"stork_feed"
STORK_PROGRAM_ID = Pubkey.from_string("stork1JUZMKYgjNagHiK2KdMmb42iTnYe9bYUCDUk8n")


def bytes_to_hex(feed_id: bytes) -> str:
    return feed_id.hex()


def hex_to_bytes(feed_id_hex: str) -> bytes:
    """Decode a hex feed id, accepting an optional 0x prefix."""
    normalized = feed_id_hex[2:] if feed_id_hex.lower().startswith("0x") else feed_id_hex
    return bytes.fromhex(normalized)


def normalize_feed_id(feed_id: bytes | str) -> str:
    """Return the cache key for a feed id given as bytes or hex."""
    if isinstance(feed_id, bytes):
        return bytes_to_hex(feed_id)
    return bytes_to_hex(hex_to_bytes(feed_id))


def derive_stork_feed_pda(feed_id: bytes) -> Pubkey:
    pda, _bump = Pubkey.find_program_address(
        [STORK_FEED_SEED, feed_id], STORK_PROGRAM_ID
    )
    return pda
