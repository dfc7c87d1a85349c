"""Solana RPC context: client, keeper identity, and target program id."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from keeper.config.schema import KeeperConfig
from keeper.errors import ConfigError, KeypairLoadError

logger = logging.getLogger(__name__)


@dataclass
class SolanaContext:
    client: AsyncClient
    keeper_keypair: Keypair
    vault_program_id: Pubkey
    commitment: Commitment

    async def close(self) -> None:
        await self.client.close()


def load_keypair(path: str | Path) -> Keypair:
    """Load a Solana CLI JSON keypair file (a 64-int array)."""
    path = Path(path).expanduser()
    try:
        with open(path) as f:
            secret = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise KeypairLoadError(f"Cannot read keypair file {path}: {e}") from e

    if not isinstance(secret, list) or len(secret) != 64:
        raise KeypairLoadError(f"Keypair file {path} must hold a 64-byte array")
    try:
        return Keypair.from_bytes(bytes(secret))
    except ValueError as e:
        raise KeypairLoadError(f"Invalid keypair bytes in {path}: {e}") from e


def parse_program_id(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise ConfigError(f"Invalid vault program id {value!r}: {e}") from e


def create_solana_context(config: KeeperConfig) -> SolanaContext:
    """Build the RPC client and load the keeper identity. Fails fast."""
    keypair = load_keypair(config.execution.keypair_path)
    program_id = parse_program_id(config.program.vault_program_id)
    commitment = Commitment(config.rpc.commitment.value)
    client = AsyncClient(
        config.rpc.http_url, commitment=commitment, timeout=config.rpc.timeout_s
    )
    logger.info(
        "Solana context ready: rpc=%s program=%s keeper=%s commitment=%s",
        config.rpc.http_url, program_id, keypair.pubkey(), commitment,
    )
    return SolanaContext(
        client=client,
        keeper_keypair=keypair,
        vault_program_id=program_id,
        commitment=commitment,
    )
