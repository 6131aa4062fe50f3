"""HTTP client for the remote progress endpoint.

GET /health    -> {"ok": true, "kvConfigured": bool, "now": "..."}
GET /progress  -> {"progress": {...} | null}       (x-sync-key header)
PUT /progress  <- {"progress": {...}}  -> {"ok": true}

Every failure is converted here into one of the coursebook.errors kinds so
callers never see a raw transport exception.
"""

import logging
from typing import Any, Optional, Union

import httpx

from coursebook.config import MAX_PROGRESS_CHARS, SYNC_SERVER_URL
from coursebook.errors import (
    BackendUnconfigured,
    EncodeError,
    PayloadTooLarge,
    TransientError,
    Unauthorized,
)
from coursebook.models import ProgressRecord, normalize_sync_key, serialized_size

logger = logging.getLogger(__name__)

SYNC_KEY_HEADER = "x-sync-key"


class RemoteSyncClient:
    """Async client for the sync endpoints, addressed by an opaque sync key."""

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or SYNC_SERVER_URL
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def __aenter__(self) -> "RemoteSyncClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def check_availability(self) -> bool:
        """True if the server reports a configured key-value store. Never raises."""
        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("Sync server unavailable at %s: %s", self.base_url, e)
            return False
        return isinstance(data, dict) and bool(data.get("kvConfigured"))

    async def fetch_remote(self, key: str) -> Optional[dict]:
        """Fetch the stored record for a key; None on first use of the key.

        Raises:
            Unauthorized: key is malformed (request not sent) or rejected.
            BackendUnconfigured: server has no key-value store credentials.
            TransientError: any other failure.
        """
        sync_key = self._require_key(key)
        resp = await self._request("GET", "/progress", sync_key)
        try:
            data = resp.json()
        except ValueError as e:
            raise TransientError(f"Malformed /progress response: {e}") from e
        if not isinstance(data, dict):
            raise TransientError("Malformed /progress response: not an object")
        progress = data.get("progress")
        return progress if isinstance(progress, dict) else None

    async def push_remote(self, key: str, record: Union[ProgressRecord, dict]) -> None:
        """Replace the stored record for a key with this one (no deltas).

        Raises:
            PayloadTooLarge: serialized record is over the limit (checked before sending).
            EncodeError: record holds NaN or Infinity.
            Unauthorized, BackendUnconfigured, TransientError: as for fetch_remote.
        """
        sync_key = self._require_key(key)
        payload: Any = record.to_dict() if isinstance(record, ProgressRecord) else record
        try:
            size = serialized_size(payload)
        except ValueError as e:
            raise EncodeError(f"Progress is not valid JSON: {e}") from e
        if size > MAX_PROGRESS_CHARS:
            raise PayloadTooLarge(f"Progress is {size} characters (limit {MAX_PROGRESS_CHARS})")
        await self._request("PUT", "/progress", sync_key, json={"progress": payload})

    def _require_key(self, key: str) -> str:
        sync_key = normalize_sync_key(key)
        if sync_key is None:
            raise Unauthorized("Missing sync key")
        return sync_key

    async def _request(self, method: str, path: str, sync_key: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(
                method, path, headers={SYNC_KEY_HEADER: sync_key}, **kwargs,
            )
        except httpx.HTTPError as e:
            raise TransientError(f"{method} {path} failed: {e}") from e

        if resp.is_success:
            return resp

        message = _error_message(resp)
        if resp.status_code == 401:
            raise Unauthorized(message)
        if resp.status_code == 501:
            raise BackendUnconfigured(message)
        if resp.status_code == 413:
            raise PayloadTooLarge(message)
        raise TransientError(message)


def _error_message(resp: httpx.Response) -> str:
    """The server's {"error": ...} text, or the bare status."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"HTTP {resp.status_code}"
