from typing import Optional, Iterable
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from supabase import Client

from core.config import settings
from core.logging_config import logger
from core.roles import Role, DEFAULT_ROLE, normalize_role
from core.supabase_client import get_supabase_client


bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================
# Current User Model (session identity)
# ============================================================
class CurrentUser(BaseModel):
    id: str                         # Supabase Auth UID
    email: Optional[str] = None
    role: Role = DEFAULT_ROLE

    full_name: Optional[str] = None
    phone: Optional[str] = None

    # True when the role came from the fallback rather than a users row
    role_defaulted: bool = False


# ============================================================
# TOKEN EXTRACTION (session cookie first, then bearer header)
# ============================================================
def extract_access_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token

    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None

    return None


# ============================================================
# ROLE LOOKUP (users table row)
# ============================================================
def fetch_role(client: Client, user_id: str) -> Optional[Role]:
    """
    Return the role stored on the user's row, or None when the row is
    missing or the lookup fails. Callers apply the USER default.
    """
    try:
        result = (
            client.table("users")
            .select("role")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.warning(f"Role lookup failed for {user_id}: {e}")
        return None

    rows = result.data or []
    if not rows:
        return None

    return normalize_role(rows[0].get("role"))


# ============================================================
# SESSION RESOLUTION (validates JWT via Supabase GoTrue)
# ============================================================
def resolve_session(client: Client, token: str) -> Optional[CurrentUser]:
    try:
        auth_resp = client.auth.get_user(token)
    except Exception as e:
        logger.info(f"Session token rejected: {type(e).__name__}")
        return None

    auth_user = getattr(auth_resp, "user", None) if auth_resp else None
    if not auth_user:
        return None

    metadata = auth_user.user_metadata or {}

    role = fetch_role(client, auth_user.id)
    role_defaulted = role is None
    if role_defaulted:
        logger.warning(f"No role row for user {auth_user.id}; defaulting to {DEFAULT_ROLE}")
        role = DEFAULT_ROLE

    return CurrentUser(
        id=auth_user.id,
        email=auth_user.email,
        role=role,
        full_name=metadata.get("full_name") or metadata.get("name"),
        phone=metadata.get("phone"),
        role_defaulted=role_defaulted,
    )


def load_session(request: Request) -> Optional[CurrentUser]:
    """
    Session lookup used by the route gate.
    Returns None for anonymous requests, rejected tokens, or an
    unconfigured backend.
    """
    token = extract_access_token(request)
    if not token:
        return None

    client = get_supabase_client()
    if client is None:
        return None

    return resolve_session(client, token)


# ============================================================
# AUTH DEPENDENCY
# ============================================================
def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:

    # The route gate may already have resolved the session for this request
    session = getattr(request.state, "session", None)
    if isinstance(session, CurrentUser):
        return session

    token = extract_access_token(request)
    if not token and credentials:
        token = credentials.credentials

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise unauthorized

    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    user = resolve_session(client, token)
    if user is None:
        raise unauthorized

    request.state.session = user
    return user


# ============================================================
# ROLE CHECKER (basic role list guard)
# ============================================================
def requires_role(allowed_roles: Iterable[Role]):
    allowed = frozenset(allowed_roles)

    def checker(current_user: CurrentUser = Depends(get_current_user)):
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail="Insufficient permissions",
            )
        return current_user

    return checker
