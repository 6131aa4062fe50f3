"""Progress sync endpoints: anonymous, keyed by the x-sync-key header."""

import logging
import time
from collections import defaultdict

from fastapi import APIRouter, Header, HTTPException, Request

from coursebook import config
from coursebook import supabase_client as db
from coursebook.models import normalize_sync_key, serialized_size, utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter()

KV_NOT_CONFIGURED = (
    "KV not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY in the server environment."
)

# In-memory rate limiter: {ip: [timestamp, ...]}
_rate_buckets: dict[str, list[float]] = defaultdict(list)
_RATE_WINDOW = 60      # window in seconds


def _check_rate_limit(request: Request) -> None:
    """Raise 429 if IP exceeds rate limit. Simple sliding window."""
    ip = request.client.host if request.client else "unknown"
    now = time.monotonic()
    cutoff = now - _RATE_WINDOW
    _rate_buckets[ip] = bucket = [t for t in _rate_buckets[ip] if t > cutoff]
    if len(bucket) >= config.PROGRESS_RATE_LIMIT:
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    bucket.append(now)


def _require_sync_key(x_sync_key: str | None) -> str:
    key = normalize_sync_key(x_sync_key)
    if key is None:
        raise HTTPException(status_code=401, detail="Missing sync key")
    return key


def _require_kv() -> None:
    if not db.kv_available():
        raise HTTPException(status_code=501, detail=KV_NOT_CONFIGURED)


@router.get("/progress")
async def get_progress(request: Request, x_sync_key: str | None = Header(None)):
    _check_rate_limit(request)
    sync_key = _require_sync_key(x_sync_key)
    _require_kv()

    progress = db.get_progress(sync_key)
    return {"progress": progress}


@router.put("/progress")
async def put_progress(request: Request, x_sync_key: str | None = Header(None)):
    _check_rate_limit(request)
    sync_key = _require_sync_key(x_sync_key)
    _require_kv()

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    progress = body.get("progress") if isinstance(body, dict) else None
    if not isinstance(progress, dict):
        raise HTTPException(status_code=400, detail="Missing progress object")

    try:
        size = serialized_size(progress)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if size > config.MAX_PROGRESS_CHARS:
        raise HTTPException(status_code=413, detail="Payload too large")

    # Server clock wins for updatedAt
    db.put_progress(sync_key, {**progress, "updatedAt": utc_now_iso()})
    logger.debug("Stored progress (%d chars)", size)
    return {"ok": True}
