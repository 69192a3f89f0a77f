# routers/pages.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from core.errors import supabase_error
from core.partners import resolve_partner_id
from core.roles import home_path_for
from core.supabase_client import get_supabase_client
from core.supabase_helpers import rows
from dependencies.auth import get_current_user, CurrentUser


# Page endpoints sit behind the route gate; the gate has already checked
# the role, these only assemble the view.
router = APIRouter(tags=["Pages"])


def _client() -> Client:
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def count_rows(client: Client, table: str, **filters) -> int:
    query = client.table(table).select("id", count="exact")
    for column, value in filters.items():
        query = query.eq(column, value)

    try:
        result = query.limit(1).execute()
    except Exception as e:
        supabase_error(e, f"Failed to count {table}")

    return result.count or 0


def session_view(user: CurrentUser) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.full_name,
        "role": user.role.value,
        "home": home_path_for(user.role),
    }


# -----------------------------------------------------
# Auth entry pages (public; signed-in users are sent home by the gate)
# -----------------------------------------------------
@router.get("/auth/login", summary="Login page")
def login_page():
    return {"page": "login", "action": "/api/auth/login"}


@router.get("/auth/register", summary="Registration page")
def register_page():
    return {
        "page": "register",
        "actions": {
            "driver": "/api/auth/register/driver",
            "partner": "/api/auth/register/partner",
        },
    }


# -----------------------------------------------------
# Role dashboards
# -----------------------------------------------------
@router.get("/admin/dashboard", summary="Admin dashboard")
def admin_dashboard(current_user: CurrentUser = Depends(get_current_user)):
    client = _client()

    return {
        "page": "admin-dashboard",
        "user": session_view(current_user),
        "counts": {
            "partners": count_rows(client, "partners"),
            "drivers": count_rows(client, "drivers"),
            "bookings": count_rows(client, "bookings"),
            "openTickets": count_rows(client, "support_tickets", status="open"),
        },
    }


def _partner_view(page: str, current_user: CurrentUser) -> dict:
    client = _client()
    partner_id: Optional[str] = resolve_partner_id(client, current_user.id)

    counts = None
    if partner_id:
        counts = {
            "vehicles": count_rows(client, "vehicles", partner_id=partner_id),
            "availableVehicles": count_rows(client, "vehicles", partner_id=partner_id, status="available"),
            "bookings": count_rows(client, "bookings", partner_id=partner_id),
        }

    return {
        "page": page,
        "user": session_view(current_user),
        "partnerId": partner_id,
        "counts": counts,
    }


@router.get("/partner", summary="Partner dashboard")
def partner_dashboard(current_user: CurrentUser = Depends(get_current_user)):
    return _partner_view("partner-dashboard", current_user)


@router.get("/partner-staff", summary="Partner staff dashboard")
def partner_staff_dashboard(current_user: CurrentUser = Depends(get_current_user)):
    return _partner_view("partner-staff-dashboard", current_user)


@router.get("/driver", summary="Driver dashboard")
def driver_dashboard(current_user: CurrentUser = Depends(get_current_user)):
    client = _client()

    try:
        result = (
            client.table("bookings")
            .select("id, status, start_date, end_date, total_amount, vehicle_id")
            .eq("driver_id", current_user.id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch bookings")

    return {
        "page": "driver-dashboard",
        "user": session_view(current_user),
        "bookings": rows(result),
    }


@router.get("/dashboard", summary="Default signed-in landing page")
def user_dashboard(current_user: CurrentUser = Depends(get_current_user)):
    return {"page": "dashboard", "user": session_view(current_user)}
