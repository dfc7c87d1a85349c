"""Stork REST client for the latest signed price/outcome snapshots."""

import base64
import binascii
import logging

import httpx
from solders.pubkey import Pubkey

from keeper.errors import OracleClientError
from keeper.ingest.feed_ids import hex_to_bytes
from keeper.models.oracle import FeedSnapshot, SignedUpdatePayload, UpdateAccount

logger = logging.getLogger(__name__)

LATEST_PRICES_PATH = "/v1/prices/latest"


class StorkClient:
    """Thin async wrapper around the Stork latest-prices endpoint.

    Feed ids are sent as hex encoded asset ids. Each returned entry carries
    a decimal-string quantized price, a nanosecond timestamp, and optionally
    a ``signed_update`` instruction the keeper can post on-chain.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Basic {self.api_key}"
        return headers

    async def _get(self, path: str, params: dict) -> dict:
        if not self.base_url:
            raise OracleClientError("Stork HTTP URL not configured")
        url = f"{self.base_url}{path}"
        try:
            if self._http is not None:
                resp = await self._http.get(
                    url, params=params, headers=self._headers(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url, params=params, headers=self._headers())
        except httpx.RequestError as e:
            logger.error("Stork request failed: GET %s -> %s", path, e)
            raise OracleClientError(f"Request failed: {e}") from e

        if resp.status_code >= 400:
            logger.error("Stork API %d: GET %s -> %s", resp.status_code, path, resp.text)
            raise OracleClientError(
                f"HTTP {resp.status_code}: {resp.text}", resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise OracleClientError(f"Invalid JSON from Stork: {e}") from e

    async def fetch_latest_snapshots(self, feed_ids_hex: list[str]) -> list[FeedSnapshot]:
        """Fetch the latest snapshot for each feed id. Malformed entries are skipped."""
        if not feed_ids_hex:
            return []
        body = await self._get(LATEST_PRICES_PATH, {"assets": ",".join(feed_ids_hex)})
        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, dict):
            entries = list(data.values())
        elif isinstance(data, list):
            entries = data
        else:
            raise OracleClientError(
                f"Unexpected Stork response shape: data is {type(data).__name__}"
            )

        snapshots = []
        for entry in entries:
            snapshot = parse_snapshot(entry)
            if snapshot is not None:
                snapshots.append(snapshot)
        logger.debug("Stork returned %d/%d snapshots", len(snapshots), len(feed_ids_hex))
        return snapshots


def parse_snapshot(entry: dict) -> FeedSnapshot | None:
    """Parse one latest-price entry. Returns None if required fields are missing."""
    if not isinstance(entry, dict):
        logger.warning("Skipping non-object Stork entry: %r", entry)
        return None
    try:
        signed = entry.get("stork_signed_price") or {}
        feed_hex = signed.get("encoded_asset_id") or entry["encoded_asset_id"]
        price = signed.get("price", entry.get("price"))
        # Quantized values arrive as decimal strings; int() rejects fractions.
        quantized = int(str(price))
        timestamp_ns = int(entry["timestamp"])
        payload = _parse_signed_update(entry.get("signed_update"))
        return FeedSnapshot(
            feed_id=hex_to_bytes(feed_hex),
            quantized_value=quantized,
            timestamp_ns=timestamp_ns,
            signed_update_payload=payload,
        )
    except (AttributeError, KeyError, TypeError, ValueError, binascii.Error) as e:
        logger.warning("Skipping malformed Stork entry: %s (%s)", e, entry)
        return None


def _parse_signed_update(raw: dict | None) -> SignedUpdatePayload | None:
    if not raw:
        return None
    accounts = tuple(
        UpdateAccount(
            pubkey=Pubkey.from_string(a["pubkey"]),
            is_signer=bool(a.get("is_signer", False)),
            is_writable=bool(a.get("is_writable", False)),
        )
        for a in raw.get("accounts", [])
    )
    return SignedUpdatePayload(
        program_id=Pubkey.from_string(raw["program_id"]),
        accounts=accounts,
        data=base64.b64decode(raw["data"], validate=True),
    )
