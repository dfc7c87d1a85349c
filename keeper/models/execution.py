"""Execution candidate, result, and ledger models."""

from dataclasses import dataclass, field
from enum import StrEnum

from solders.instruction import Instruction
from solders.pubkey import Pubkey


class Route(StrEnum):
    BASE = "base"
    STORK_PRICE = "stork_price"
    STORK_OUTCOME = "stork_outcome"

    @property
    def needs_oracle(self) -> bool:
        return self is not Route.BASE


class ExecutionStatus(StrEnum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SIMULATED = "simulated"


# Statuses after which a route must never be submitted again.
TERMINAL_SUCCESS = frozenset({ExecutionStatus.CONFIRMED, ExecutionStatus.SIMULATED})

DRY_RUN_SIGNATURE = "dry-run"


@dataclass(frozen=True)
class ExecutionCandidate:
    order_pubkey: Pubkey
    route: Route
    reason: str
    feed_id: bytes | None = None


@dataclass(frozen=True)
class ExecutionResult:
    signature: str
    slot: int
    status: ExecutionStatus
    error_code: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in TERMINAL_SUCCESS


@dataclass(frozen=True)
class LedgerEntry:
    order_pubkey: str
    route: Route
    status: ExecutionStatus
    attempts: int
    error_code: str | None
    signature: str | None
    updated_at: str


@dataclass
class TransactionPlan:
    candidate: ExecutionCandidate
    fee_payer: Pubkey
    instructions: list[Instruction] = field(default_factory=list)
    uses_oracle_update: bool = False
