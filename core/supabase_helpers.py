# core/supabase_helpers.py

from typing import Optional

from core.utils import sanitize


# =================================================================
#  RESULT SHAPING
# =================================================================

def rows(result) -> list:
    """Rows from an APIResponse, never None."""
    data = getattr(result, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def first_row(result) -> Optional[dict]:
    """First row of a response, or None when empty."""
    data = rows(result)
    return data[0] if data else None


# =================================================================
#  QUERY SHAPING
# =================================================================

def apply_range(query, offset: int = 0, limit: Optional[int] = None):
    """
    Raw offset/limit pass-through onto a PostgREST query.
    PostgREST ranges are inclusive on both ends.
    """
    if limit is None:
        return query
    start = max(int(offset or 0), 0)
    return query.range(start, start + int(limit) - 1)


def clean_payload(data: dict, *, drop_none: bool = True) -> dict:
    """Sanitize a write payload and optionally drop unset keys."""
    cleaned = sanitize(data)
    if drop_none:
        cleaned = {k: v for k, v in cleaned.items() if v is not None}
    return cleaned
