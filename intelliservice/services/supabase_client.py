"""
Supabase Client

Single database client shared by every service and router.
Row-level security and user identity stay in Supabase; this module only
builds the client and resolves the caller's user id from their JWT.
"""

import os
import logging
from typing import Any, Optional

from fastapi import Depends, Header, HTTPException
from supabase import create_client, Client

logger = logging.getLogger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION_CODE = "23505"


def create_supabase_client() -> Client:
    """Build a Supabase client from environment variables"""
    supabase_url = os.getenv("SUPABASE_URL")
    # Service role key bypasses RLS for server-side aggregation
    supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")

    if not supabase_url or not supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY/SUPABASE_SERVICE_KEY must be set")

    return create_client(supabase_url, supabase_key)


# Singleton instance
_supabase: Optional[Client] = None


def get_supabase() -> Client:
    """Get or create the Supabase client"""
    global _supabase
    if _supabase is None:
        _supabase = create_supabase_client()
        logger.info("[Supabase] Client initialized")
    return _supabase


def get_current_user_id(
    authorization: Optional[str] = Header(None),
    db: Client = Depends(get_supabase)
) -> str:
    """
    Resolve the calling user's id from the bearer token.

    Raises:
        HTTPException 401 when the token is missing or rejected
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = authorization.split(" ", 1)[1].strip()
    try:
        response = db.auth.get_user(token)
    except Exception as e:
        logger.warning(f"[Supabase] Token rejected: {e}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = getattr(response, "user", None) if response else None
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user.id


def is_unique_violation(error: Exception) -> bool:
    """True when a PostgREST error is a unique-constraint violation"""
    code = getattr(error, "code", None)
    if code is None and error.args and isinstance(error.args[0], dict):
        code = error.args[0].get("code")
    return str(code) == UNIQUE_VIOLATION_CODE


def first_row(result: Any) -> Optional[dict]:
    """First row of a query result, or None.

    Handles list results and maybe_single() results (which may be None).
    """
    if result is None:
        return None
    data = getattr(result, "data", None)
    if isinstance(data, list):
        return data[0] if data else None
    return data
