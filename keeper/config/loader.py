"""YAML config loader with environment overrides."""

import hashlib
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from keeper.config.schema import KeeperConfig
from keeper.errors import ConfigError

# env var -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RPC_HTTP_URL": ("rpc", "http_url"),
    "COMMITMENT": ("rpc", "commitment"),
    "VAULT_PROGRAM_ID": ("program", "vault_program_id"),
    "KEEPER_KEYPAIR_PATH": ("execution", "keypair_path"),
    "DRY_RUN": ("execution", "dry_run"),
    "POLL_INTERVAL_MS": ("ops", "poll_interval_ms"),
    "MAX_CONCURRENCY": ("ops", "max_concurrency"),
    "STORK_API_KEY": ("oracle", "api_key"),
    "STORK_HTTP_URL": ("oracle", "http_url"),
    "STORK_FEED_ALLOWLIST": ("oracle", "feed_allowlist"),
    "SQLITE_PATH": ("ledger", "sqlite_path"),
    "METRICS_PORT": ("metrics", "port"),
}


def load_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> KeeperConfig:
    """Load and validate config from a YAML file plus environment overrides.

    A missing file is not an error; defaults apply. Environment variables
    win over the file.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
            if not isinstance(raw, dict):
                raise ConfigError(f"Config root must be a mapping: {path}")

    env = os.environ if environ is None else environ
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        try:
            raw.setdefault(section, {})[key] = _coerce_env(key, value)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {var}: {value!r}") from e

    try:
        return KeeperConfig(**raw)
    except ValidationError as e:
        raise ConfigError(str(e)) from e


def _coerce_env(key: str, value: str) -> Any:
    if key == "dry_run":
        return value.strip().lower() == "true"
    if key == "port":
        return int(value)
    if key == "max_concurrency":
        # Zero or negative values clamp to one worker.
        return max(1, int(value))
    return value


def config_hash(config: KeeperConfig) -> str:
    """Compute a deterministic SHA256 hash of the config."""
    data = config.model_dump_json(indent=None)
    return hashlib.sha256(data.encode()).hexdigest()[:16]
