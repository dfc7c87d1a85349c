"""Order envelope and trigger models for the vault program's order accounts.

Triggers form a closed tagged union. Every consumer dispatches with a
``match`` over the four variants; adding a variant means touching each
dispatch site.
"""

from dataclasses import dataclass
from typing import Literal, TypeAlias

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class TimeAfter:
    slot: int
    kind: Literal["time_after"] = "time_after"


@dataclass(frozen=True)
class PdaValueEquals:
    account: Pubkey
    expected_value: int
    kind: Literal["pda_value_equals"] = "pda_value_equals"


@dataclass(frozen=True)
class PriceBelowStork:
    feed_id: bytes
    max_price_q: int
    max_age_sec: int
    kind: Literal["price_below_stork"] = "price_below_stork"


@dataclass(frozen=True)
class StorkOutcomeEquals:
    feed_id: bytes
    expected_outcome_q: int
    max_age_sec: int
    kind: Literal["stork_outcome_equals"] = "stork_outcome_equals"


Trigger: TypeAlias = TimeAfter | PdaValueEquals | PriceBelowStork | StorkOutcomeEquals


@dataclass(frozen=True)
class ActionAccount:
    pubkey: Pubkey
    is_writable: bool


@dataclass(frozen=True)
class CpiAction:
    program_id: Pubkey
    accounts: tuple[ActionAccount, ...]
    data: bytes


@dataclass(frozen=True)
class OrderEnvelope:
    order_pubkey: Pubkey
    order_id: int
    user: Pubkey
    trigger: Trigger
    action: CpiAction
    expires_slot: int | None
    executed: bool
    canceled: bool
    execution_bounty: int

    @property
    def is_open(self) -> bool:
        return not (self.executed or self.canceled)
