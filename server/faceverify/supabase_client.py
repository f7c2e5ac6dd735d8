from __future__ import annotations

from supabase import Client, create_client

from faceverify.config import SUPABASE_KEY, SUPABASE_URL


def create_supabase_client(url: str | None = SUPABASE_URL, key: str | None = SUPABASE_KEY) -> Client:
    """Build the process-wide client. Called once from the app lifespan."""
    if not url or not key:
        raise RuntimeError(
            "Supabase is not configured. Set SUPABASE_URL and SUPABASE_KEY in server/.env."
        )
    return create_client(url, key)
