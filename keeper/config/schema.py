"""Pydantic v2 configuration schema with strict validation."""

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

DEVNET_HTTP_URL = "https://api.devnet.solana.com"
DEFAULT_VAULT_PROGRAM_ID = "HTGredcpihEqbJL9a3JBof4JQkgU5EdovAFt7xcPR2mg"


class Commitment(StrEnum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class RpcConfig(BaseModel):
    model_config = {"extra": "forbid"}

    http_url: str = DEVNET_HTTP_URL
    commitment: Commitment = Commitment.CONFIRMED
    timeout_s: float = Field(default=30.0, gt=0.0)


class ProgramConfig(BaseModel):
    model_config = {"extra": "forbid"}

    vault_program_id: str = DEFAULT_VAULT_PROGRAM_ID
    # Byte offset of the u64 compared by pda_value_equals triggers.
    pda_value_offset: int = Field(default=8, ge=0)


class OracleConfig(BaseModel):
    model_config = {"extra": "forbid"}

    http_url: str = ""
    api_key: str = ""
    feed_allowlist: list[str] = []
    timeout_s: float = Field(default=10.0, gt=0.0)
    max_future_skew_sec: int = Field(default=300, ge=0)

    @field_validator("feed_allowlist", mode="before")
    @classmethod
    def _split_allowlist(cls, value):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @field_validator("feed_allowlist")
    @classmethod
    def _normalize_allowlist(cls, value: list[str]) -> list[str]:
        normalized = []
        for feed_id in value:
            feed_id = feed_id.lower()
            if feed_id.startswith("0x"):
                feed_id = feed_id[2:]
            bytes.fromhex(feed_id)  # ValueError surfaces as a validation error
            normalized.append(feed_id)
        return normalized


class ExecutionConfig(BaseModel):
    model_config = {"extra": "forbid"}

    dry_run: bool = True
    keypair_path: str = "~/.config/solana/id.json"
    confirm_max_polls: int = Field(default=30, ge=1)
    confirm_poll_interval_s: float = Field(default=1.0, gt=0.0)
    compute_unit_limit: int = Field(default=0, ge=0)
    compute_unit_price_micro_lamports: int = Field(default=0, ge=0)


class LedgerConfig(BaseModel):
    model_config = {"extra": "forbid"}

    sqlite_path: str = "./keeper.db"


class RetryConfig(BaseModel):
    model_config = {"extra": "forbid"}

    base_delay_s: float = Field(default=2.0, gt=0.0)
    max_delay_s: float = Field(default=300.0, gt=0.0)
    max_attempts: int = Field(default=8, ge=1)


class OpsConfig(BaseModel):
    model_config = {"extra": "forbid"}

    poll_interval_ms: int = Field(default=2000, ge=1)
    max_concurrency: int = Field(default=4, ge=1)
    log_level: str = "INFO"


class MetricsConfig(BaseModel):
    model_config = {"extra": "forbid"}

    # 0 disables the HTTP metrics server.
    port: int = Field(default=0, ge=0, le=65535)
    host: str = "127.0.0.1"
    stale_after_s: float = Field(default=120.0, gt=0.0)


class KeeperConfig(BaseModel):
    model_config = {"extra": "forbid"}

    rpc: RpcConfig = RpcConfig()
    program: ProgramConfig = ProgramConfig()
    oracle: OracleConfig = OracleConfig()
    execution: ExecutionConfig = ExecutionConfig()
    ledger: LedgerConfig = LedgerConfig()
    retry: RetryConfig = RetryConfig()
    ops: OpsConfig = OpsConfig()
    metrics: MetricsConfig = MetricsConfig()

    @property
    def mode(self) -> str:
        return "dry-run" if self.execution.dry_run else "live"
