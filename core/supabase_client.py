# core/supabase_client.py

from functools import lru_cache
from typing import Optional

from supabase import create_client, Client
from core.config import settings
from core.logging_config import logger


# ============================================================
# Supabase Client Factory (service role)
# ============================================================

@lru_cache(maxsize=4)
def _build_client(supabase_url: str, supabase_key: str) -> Client:
    """One client per credential pair; failures are not cached."""
    return create_client(supabase_url, supabase_key)


def get_supabase_client() -> Optional[Client]:
    """
    Returns the shared Supabase client for the SERVICE ROLE KEY.
    REQUIRED for:
        - auth.admin.create_user / delete_user / update_user_by_id
        - storage uploads
        - full read/write on all tables
    Returns None when the credentials are missing or invalid.
    """
    supabase_url = settings.SUPABASE_URL
    supabase_key = settings.SUPABASE_SERVICE_ROLE_KEY

    if not supabase_url or not supabase_key:
        logger.error("Missing Supabase credentials")
        logger.error(f"   URL: {supabase_url}")
        logger.error(f"   SERVICE ROLE KEY: {'SET' if supabase_key else 'MISSING'}")
        return None

    try:
        return _build_client(supabase_url, supabase_key)
    except Exception as e:
        logger.error(f"Supabase Init Error: {e}", exc_info=True)
        return None


# ============================================================
# Ping Supabase for health checks
# ============================================================

def ping_supabase() -> dict:
    """
    Simple connectivity check against the main marketplace tables.
    Does NOT query auth tables.
    """
    client = get_supabase_client()
    if client is None:
        return {"service": "Supabase", "status": "not_configured"}

    tables = ["users", "partners", "vehicles", "bookings"]
    results = {}

    for t in tables:
        try:
            res = client.table(t).select("id").limit(1).execute()
            results[t] = {
                "status": "ok",
                "rows_found": len(res.data or []),
            }
        except Exception as err:
            results[t] = {"status": "error", "detail": str(err)}

    overall = "ok" if all(r["status"] == "ok" for r in results.values()) else "degraded"

    return {
        "service": "Supabase",
        "status": overall,
        "tables": results,
    }
