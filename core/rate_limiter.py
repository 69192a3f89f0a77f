# core/rate_limiter.py

from typing import Dict, Tuple, Optional
from fastapi import HTTPException, Request
from collections import defaultdict
import time


# In-memory sliding window, per process
_rate_limit_store: Dict[str, list] = defaultdict(list)


def check_rate_limit(
    identifier: str,
    max_requests: int = 10,
    window_seconds: int = 60,
) -> Tuple[bool, int]:
    """
    Record one attempt for `identifier` and report whether it is allowed.

    Returns:
        Tuple of (allowed: bool, remaining: int)
    """
    now = time.time()
    window_start = now - window_seconds

    attempts = [ts for ts in _rate_limit_store[identifier] if ts > window_start]

    if len(attempts) >= max_requests:
        _rate_limit_store[identifier] = attempts
        return False, 0

    attempts.append(now)
    _rate_limit_store[identifier] = attempts

    return True, max_requests - len(attempts)


def reset_rate_limits():
    _rate_limit_store.clear()


def get_rate_limit_identifier(request: Request, scope: str = "", user_id: Optional[str] = None) -> str:
    """
    Key for the limiter. Prefers user_id, otherwise the client IP
    (first X-Forwarded-For hop when behind a proxy).
    """
    prefix = f"{scope}:" if scope else ""

    if user_id:
        return f"{prefix}user:{user_id}"

    client_ip = request.client.host if request.client else "unknown"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()

    return f"{prefix}ip:{client_ip}"


def require_rate_limit(
    request: Request,
    scope: str = "",
    max_requests: int = 10,
    window_seconds: int = 60
) -> int:
    """
    Raises:
        HTTPException: 429 Too Many Requests if limit exceeded
    """
    identifier = get_rate_limit_identifier(request, scope)

    allowed, remaining = check_rate_limit(identifier, max_requests, window_seconds)

    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Too many attempts. Try again in {window_seconds} seconds.",
            headers={
                "X-RateLimit-Limit": str(max_requests),
                "X-RateLimit-Window": str(window_seconds),
                "Retry-After": str(window_seconds),
            }
        )

    return remaining
