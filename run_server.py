#!/usr/bin/env python3
"""Coursebook progress sync server.

Launch: python3 run_server.py
Serves at http://0.0.0.0:8000 (or PORT env var)
"""

import uvicorn

from coursebook.config import HOST, PORT
from coursebook.supabase_client import kv_available


def main():
    print("=" * 60)
    print("  Coursebook progress sync server")
    print("=" * 60)

    if not kv_available():
        print("\n  WARNING: Supabase not configured. Set environment variables:")
        print("    SUPABASE_URL, SUPABASE_SERVICE_KEY")
        print("  /progress will answer 501 and clients stay local-only.\n")

    url = f"http://{HOST}:{PORT}"
    print(f"\n  Health: {url}/health")
    print("  Press Ctrl+C to stop\n")

    from coursebook.app import create_app
    app = create_app()
    uvicorn.run(app, host=HOST, port=PORT, log_level="info")


if __name__ == "__main__":
    main()
