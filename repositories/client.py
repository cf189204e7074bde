"""
Supabase client initialization.

This module contains *only* the database connection setup plus the shared
`execute()` helper every repository uses to run a query and surface errors.

Credentials come from Settings (SUPABASE_URL / SUPABASE_KEY); see settings.py.
"""

from __future__ import annotations

from typing import Any, List

from postgrest.exceptions import APIError

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import AsyncClient, acreate_client  # type: ignore[import-not-found]

from settings import Settings


async def create_supabase_client(settings: Settings) -> AsyncClient:
    """
    Create the async Supabase client.

    Raises:
    - RuntimeError if credentials are missing
    """

    url, key = settings.require_database()
    return await acreate_client(url, key)


async def execute(query: Any, action: str) -> List[dict[str, Any]]:
    """
    Execute a query builder and return its rows.

    Raises:
    - RuntimeError("Failed to <action>: ...") if Supabase reports an error.
    """

    try:
        response = await query.execute()
    except APIError as exc:
        raise RuntimeError(f"Failed to {action}: {exc.message or exc}") from exc

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")

    return list(getattr(response, "data", None) or [])


__all__ = ["create_supabase_client", "execute"]
