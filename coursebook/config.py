"""Coursebook configuration: loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Root of the repo
REPO_ROOT = Path(__file__).resolve().parent.parent

# Static course catalog (read-only input)
COURSE_DATA_PATH = Path(os.environ.get("COURSE_DATA_PATH", str(REPO_ROOT / "data" / "course_data.json")))

# Client-side state (progress cache + sync key)
LOCAL_STATE_DIR = Path(os.environ.get("LOCAL_STATE_DIR", str(Path.home() / ".coursebook")))

# Supabase (remote key-value store)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "")
KV_TABLE = os.environ.get("KV_TABLE", "kv_store")

# Sync client
SYNC_SERVER_URL = os.environ.get("SYNC_SERVER_URL", "http://127.0.0.1:8000")
SYNC_DEBOUNCE_SECONDS = float(os.environ.get("SYNC_DEBOUNCE_SECONDS", "0.7"))

# Server
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))

# Requests per minute per IP on /progress
PROGRESS_RATE_LIMIT = int(os.environ.get("PROGRESS_RATE_LIMIT", "120"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Wire limits (shared by client and server)
MAX_PROGRESS_CHARS = 500_000
SYNC_KEY_MIN_LEN = 10
SYNC_KEY_MAX_LEN = 128
