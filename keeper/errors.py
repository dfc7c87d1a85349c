"""Keeper exception hierarchy."""


class KeeperError(Exception):
    """Base class for keeper errors."""


class ConfigError(KeeperError):
    """Raised when configuration is invalid at startup."""


class KeypairLoadError(KeeperError):
    """Raised when the keeper identity file cannot be read."""


class OrderDecodeError(KeeperError):
    """Raised when an order account does not match the expected layout."""


class OracleClientError(KeeperError):
    """Raised when the oracle API returns an error or is unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MissingOracleAttestation(KeeperError):
    """Raised when an oracle route has no signed update payload to attach."""

    error_code = "missing_oracle_attestation"
