"""Supabase connection and key-value helpers.

The remote store is a single table used as a key-value store:

    kv_store(key text primary key, value jsonb, updated_at timestamptz)

Progress lives under "progress:<sync key>".
"""

import threading
from datetime import datetime, timezone
from typing import Any

from supabase import Client, create_client

from coursebook import config

_client: Client | None = None
_client_lock = threading.Lock()


def kv_available() -> bool:
    """True if the store has credentials configured."""
    return bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY)


def get_client() -> Client:
    """Return the Supabase client singleton (thread-safe)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                if not kv_available():
                    raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
                _client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
    return _client


# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------

def _table(name: str):
    """Return a table query builder."""
    return get_client().table(name)


def upsert(table: str, data: dict, on_conflict: str = "") -> dict:
    """Upsert a row and return it."""
    if on_conflict:
        q = _table(table).upsert(data, on_conflict=on_conflict)
    else:
        q = _table(table).upsert(data)
    result = q.execute()
    return result.data[0] if result.data else {}


def select_one(table: str, columns: str = "*", match: dict | None = None) -> dict | None:
    """Select a single row."""
    q = _table(table).select(columns)
    for k, v in (match or {}).items():
        q = q.eq(k, v)
    result = q.limit(1).execute()
    return result.data[0] if result.data else None


# ---------------------------------------------------------------------------
# Key-value store
# ---------------------------------------------------------------------------

def kv_get(key: str) -> Any:
    """Stored value for a key, or None."""
    row = select_one(config.KV_TABLE, columns="value", match={"key": key})
    return row.get("value") if row else None


def kv_set(key: str, value: Any) -> None:
    """Store a value, replacing any previous one."""
    upsert(config.KV_TABLE, {
        "key": key,
        "value": value,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }, on_conflict="key")


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

def _progress_key(sync_key: str) -> str:
    return f"progress:{sync_key}"


def get_progress(sync_key: str) -> Any:
    return kv_get(_progress_key(sync_key))


def put_progress(sync_key: str, progress: dict) -> None:
    kv_set(_progress_key(sync_key), progress)
