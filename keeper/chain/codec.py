"""Binary layout for vault order accounts and execute instructions.

Accounts and instructions follow the Anchor convention: an 8-byte
discriminator taken from ``sha256("<namespace>:<name>")`` followed by
Borsh-encoded little-endian fields.
"""

import hashlib
import struct

from solders.pubkey import Pubkey

from keeper.errors import OrderDecodeError
from keeper.models.execution import Route
from keeper.models.order import (
    ActionAccount,
    CpiAction,
    OrderEnvelope,
    PdaValueEquals,
    PriceBelowStork,
    StorkOutcomeEquals,
    TimeAfter,
    Trigger,
)

TRIGGER_TIME_AFTER = 0
TRIGGER_PDA_VALUE_EQUALS = 1
TRIGGER_PRICE_BELOW_STORK = 2
TRIGGER_STORK_OUTCOME_EQUALS = 3

EXECUTE_IX_NAMES: dict[Route, str] = {
    Route.BASE: "execute_order_if_ready",
    Route.STORK_PRICE: "execute_order_if_ready_stork_price",
    Route.STORK_OUTCOME: "execute_order_if_ready_stork_outcome",
}


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


ORDER_DISCRIMINATOR = account_discriminator("Order")


class _Reader:
    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def take(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise OrderDecodeError(
                f"Unexpected end of data at offset {self.offset} (need {n} bytes, "
                f"have {len(self.data) - self.offset})"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def bool(self) -> bool:
        value = self.u8()
        if value > 1:
            raise OrderDecodeError(f"Invalid bool byte {value} at offset {self.offset - 1}")
        return value == 1

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def i128(self) -> int:
        return int.from_bytes(self.take(16), "little", signed=True)

    def pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self.take(32))

    def option_u64(self) -> int | None:
        return self.u64() if self.bool() else None


def decode_order(order_pubkey: Pubkey, data: bytes) -> OrderEnvelope:
    """Decode a raw order account into an OrderEnvelope.

    Raises OrderDecodeError on a wrong discriminator, truncated data, or an
    unknown trigger tag.
    """
    if data[:8] != ORDER_DISCRIMINATOR:
        raise OrderDecodeError(f"Account {order_pubkey} is not an Order account")

    r = _Reader(data, offset=8)
    order_id = r.u64()
    user = r.pubkey()
    trigger = _decode_trigger(r)
    action = _decode_action(r)
    expires_slot = r.option_u64()
    executed = r.bool()
    canceled = r.bool()
    bounty = r.u64()

    return OrderEnvelope(
        order_pubkey=order_pubkey,
        order_id=order_id,
        user=user,
        trigger=trigger,
        action=action,
        expires_slot=expires_slot,
        executed=executed,
        canceled=canceled,
        execution_bounty=bounty,
    )


def _decode_trigger(r: _Reader) -> Trigger:
    tag = r.u8()
    if tag == TRIGGER_TIME_AFTER:
        return TimeAfter(slot=r.u64())
    if tag == TRIGGER_PDA_VALUE_EQUALS:
        return PdaValueEquals(account=r.pubkey(), expected_value=r.u64())
    if tag == TRIGGER_PRICE_BELOW_STORK:
        return PriceBelowStork(
            feed_id=r.take(32), max_price_q=r.i128(), max_age_sec=r.u64()
        )
    if tag == TRIGGER_STORK_OUTCOME_EQUALS:
        return StorkOutcomeEquals(
            feed_id=r.take(32), expected_outcome_q=r.i128(), max_age_sec=r.u64()
        )
    raise OrderDecodeError(f"Unknown trigger tag {tag}")


def _decode_action(r: _Reader) -> CpiAction:
    program_id = r.pubkey()
    count = r.u32()
    accounts = tuple(
        ActionAccount(pubkey=r.pubkey(), is_writable=r.bool()) for _ in range(count)
    )
    data = r.take(r.u32())
    return CpiAction(program_id=program_id, accounts=accounts, data=data)


def decode_u64_at(data: bytes, offset: int) -> int:
    """Read the little-endian u64 a pda_value_equals trigger compares against."""
    if offset + 8 > len(data):
        raise OrderDecodeError(
            f"Account data too short for u64 at offset {offset} ({len(data)} bytes)"
        )
    return struct.unpack_from("<Q", data, offset)[0]


# --- Encoding ---

def encode_order(order: OrderEnvelope) -> bytes:
    """Serialize an OrderEnvelope in the on-chain account layout."""
    out = bytearray(ORDER_DISCRIMINATOR)
    out += struct.pack("<Q", order.order_id)
    out += bytes(order.user)
    out += _encode_trigger(order.trigger)
    action = order.action
    out += bytes(action.program_id)
    out += struct.pack("<I", len(action.accounts))
    for acc in action.accounts:
        out += bytes(acc.pubkey) + bytes([int(acc.is_writable)])
    out += struct.pack("<I", len(action.data)) + action.data
    if order.expires_slot is None:
        out += b"\x00"
    else:
        out += b"\x01" + struct.pack("<Q", order.expires_slot)
    out += bytes([int(order.executed), int(order.canceled)])
    out += struct.pack("<Q", order.execution_bounty)
    return bytes(out)


def _encode_trigger(trigger: Trigger) -> bytes:
    match trigger:
        case TimeAfter(slot=slot):
            return bytes([TRIGGER_TIME_AFTER]) + struct.pack("<Q", slot)
        case PdaValueEquals(account=account, expected_value=expected):
            return (
                bytes([TRIGGER_PDA_VALUE_EQUALS])
                + bytes(account)
                + struct.pack("<Q", expected)
            )
        case PriceBelowStork(feed_id=feed_id, max_price_q=max_q, max_age_sec=age):
            return (
                bytes([TRIGGER_PRICE_BELOW_STORK])
                + _feed_id_bytes(feed_id)
                + max_q.to_bytes(16, "little", signed=True)
                + struct.pack("<Q", age)
            )
        case StorkOutcomeEquals(feed_id=feed_id, expected_outcome_q=q, max_age_sec=age):
            return (
                bytes([TRIGGER_STORK_OUTCOME_EQUALS])
                + _feed_id_bytes(feed_id)
                + q.to_bytes(16, "little", signed=True)
                + struct.pack("<Q", age)
            )
    raise TypeError(f"Unsupported trigger: {trigger!r}")


def _feed_id_bytes(feed_id: bytes) -> bytes:
    if len(feed_id) != 32:
        raise ValueError(f"feed_id must be 32 bytes, got {len(feed_id)}")
    return feed_id


def encode_execute_data(route: Route, order_id: int) -> bytes:
    return instruction_discriminator(EXECUTE_IX_NAMES[route]) + struct.pack("<Q", order_id)
