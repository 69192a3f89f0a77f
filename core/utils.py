# core/utils.py

from datetime import datetime, timezone
from typing import Optional


def sanitize(data: dict) -> dict:
    """
    Sanitize dictionary data:
    - Empty strings → None
    - Strip string whitespace
    - Everything else kept as-is (codes and phone numbers stay strings)
    """
    clean = {}

    for k, v in data.items():
        if isinstance(v, str):
            stripped = v.strip()
            clean[k] = stripped if stripped else None
            continue

        clean[k] = v

    return clean


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Timestamp string in the form the database columns accept."""
    return utc_now().isoformat()


def parse_iso_datetime(value) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp ("Z" suffix accepted).
    Naive values are taken as UTC. Returns None when unparsable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
