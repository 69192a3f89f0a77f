from fastapi import APIRouter, HTTPException, Depends, Request, Response

from core.config import settings
from core.errors import extract_supabase_error
from core.logging_config import logger
from core.rate_limiter import require_rate_limit
from core.roles import Role, DEFAULT_ROLE, home_path_for, normalize_role
from core.supabase_client import get_supabase_client
from core.supabase_helpers import first_row
from core.utils import utc_now_iso
from dependencies.auth import get_current_user, fetch_role, CurrentUser
from models.auth import LoginRequest, TokenResponse, DriverRegister, PartnerRegister


router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"],
)

DUPLICATE_EMAIL = (
    "A user with this email address has already been registered. "
    "Please use a different email address."
)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Server is missing Supabase configuration")
    return client


# ============================================================
# LOGIN (SUPABASE AUTH)
# ============================================================
@router.post("/login", response_model=TokenResponse, summary="Authenticate user")
def login(payload: LoginRequest, request: Request, response: Response):

    require_rate_limit(request, "login", max_requests=10, window_seconds=60)

    email = payload.email.strip().lower()
    client = _client()

    try:
        auth_resp = client.auth.sign_in_with_password(
            {"email": email, "password": payload.password}
        )
    except Exception as e:
        logger.warning(f"Login attempt failed for {email}: {type(e).__name__}")
        raise HTTPException(401, "Invalid email or password")

    session = getattr(auth_resp, "session", None)
    if not session or not session.access_token:
        raise HTTPException(401, "Invalid email or password")

    role = fetch_role(client, auth_resp.user.id) or DEFAULT_ROLE

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session.access_token,
        max_age=settings.SESSION_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )

    logger.info(f"User {auth_resp.user.id} signed in as {role}")

    return TokenResponse(
        access_token=session.access_token,
        refresh_token=getattr(session, "refresh_token", None),
        expires_in=getattr(session, "expires_in", None),
        role=role.value,
        redirect_to=home_path_for(role),
    )


# ============================================================
# LOGOUT
# ============================================================
@router.post("/logout", summary="Clear the session cookie")
def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"success": True, "redirect_to": settings.LOGIN_PATH}


# ============================================================
# CURRENT USER
# ============================================================
@router.get("/me", summary="Current authenticated user")
def read_me(current_user: CurrentUser = Depends(get_current_user)):
    return {"success": True, "user": current_user.model_dump(mode="json")}


# ============================================================
# REGISTER DRIVER
# ============================================================
@router.post("/register/driver", summary="Self-service driver sign-up")
def register_driver(payload: DriverRegister, request: Request):
    """
    Idempotent: an existing driver profile with this email is reused, and the
    drivers row is only created when missing. An email already held by
    another role is refused.
    """
    require_rate_limit(request, "register", max_requests=5, window_seconds=60)
    client = _client()

    try:
        existing = first_row(
            client.table("users").select("id, role").eq("email", payload.email).limit(1).execute()
        )
    except Exception as e:
        raise HTTPException(400, extract_supabase_error(e))

    if existing and normalize_role(existing.get("role")) != Role.DRIVER:
        raise HTTPException(400, DUPLICATE_EMAIL)

    if existing:
        user_id = existing["id"]
    else:
        try:
            created = client.auth.admin.create_user({
                "email": payload.email,
                "password": payload.password,
                "email_confirm": True,
                "user_metadata": {
                    "role": Role.DRIVER.value,
                    "name": payload.name,
                    "accountType": "driver",
                },
                "app_metadata": {"role": Role.DRIVER.value},
            })
        except Exception as e:
            raise HTTPException(400, extract_supabase_error(e) or "Failed to create auth user")

        if not created or not created.user:
            raise HTTPException(400, "Failed to create auth user")

        user_id = created.user.id
        now = utc_now_iso()

        try:
            client.table("users").insert({
                "id": user_id,
                "email": payload.email,
                "phone": payload.phone.replace(" ", ""),
                "first_name": payload.first_name,
                "last_name": payload.last_name,
                "role": Role.DRIVER.value,
                "is_active": True,
                "is_verified": False,
                "created_at": now,
                "updated_at": now,
            }).execute()
        except Exception as e:
            raise HTTPException(400, extract_supabase_error(e))

    try:
        driver = first_row(
            client.table("drivers").select("id").eq("user_id", user_id).limit(1).execute()
        )
        if not driver:
            now = utc_now_iso()
            client.table("drivers").insert({
                "user_id": user_id,
                "experience": 0,
                "rating": 0,
                "total_trips": 0,
                "total_earnings": 0,
                "status": "pending",
                "verification_status": "pending",
                "is_approved": False,
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            }).execute()
    except Exception as e:
        raise HTTPException(400, extract_supabase_error(e))

    logger.info(f"Driver registered: {user_id}")
    return {"success": True, "userId": user_id}


# ============================================================
# REGISTER PARTNER
# ============================================================
@router.post("/register/partner", summary="Self-service partner sign-up")
def register_partner(payload: PartnerRegister, request: Request):
    require_rate_limit(request, "register", max_requests=5, window_seconds=60)
    client = _client()

    try:
        existing = first_row(
            client.table("users").select("id").eq("email", payload.email).limit(1).execute()
        )
    except Exception as e:
        raise HTTPException(400, extract_supabase_error(e))

    if existing:
        raise HTTPException(400, DUPLICATE_EMAIL)

    try:
        created = client.auth.admin.create_user({
            "email": payload.email,
            "password": payload.password,
            "email_confirm": True,
            "user_metadata": {
                "name": payload.name,
                "role": Role.PARTNER.value,
                "accountType": "partner",
            },
            "app_metadata": {"role": Role.PARTNER.value},
        })
    except Exception as e:
        detail = extract_supabase_error(e)
        logger.error(f"Partner auth creation failed: {detail}")
        if "already been registered" in detail or "email_exists" in detail:
            raise HTTPException(400, DUPLICATE_EMAIL)
        raise HTTPException(400, detail)

    if not created or not created.user:
        raise HTTPException(400, "Failed to create user")

    user_id = created.user.id
    now = utc_now_iso()
    address = payload.address

    try:
        client.table("users").insert({
            "id": user_id,
            "email": payload.email,
            "phone": payload.phone,
            "first_name": payload.first_name,
            "last_name": payload.last_name,
            "role": Role.PARTNER.value,
            "is_active": True,
            "is_verified": False,
            "created_at": now,
            "updated_at": now,
        }).execute()

        client.table("partners").insert({
            "id": user_id,
            "user_id": user_id,
            "company_name": payload.company_name or "New Partner",
            "contact_name": payload.name,
            "contact_person": payload.name,
            "email": payload.email,
            "business_email": payload.business_email,
            "phone": payload.phone,
            "director_name": payload.director_name,
            "director_email": payload.director_email,
            "director_phone": payload.director_phone,
            "address": address.model_dump() if address else None,
            "city": address.city if address else None,
            "postal_code": address.postcode if address else None,
            "status": "pending",
            "approval_status": "pending",
            "documents_approved": False,
            "business_approved": False,
            "created_at": now,
            "updated_at": now,
        }).execute()
    except Exception as e:
        raise HTTPException(400, extract_supabase_error(e))

    logger.info(f"Partner registered: {user_id}")
    return {
        "success": True,
        "userId": user_id,
        "message": "Partner account created. Your account is pending approval.",
    }
