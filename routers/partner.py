# routers/partner.py

import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.errors import supabase_error, handle_supabase_error
from core.logging_config import logger
from core.partners import (
    ensure_self_or_admin,
    ensure_partner_access,
    resolve_partner_id,
    require_partner_id,
)
from core.permission_helpers import is_admin
from core.supabase_client import get_supabase_client
from core.supabase_helpers import clean_payload, first_row, rows
from core.utils import utc_now_iso
from dependencies.auth import get_current_user, CurrentUser
from models.enums import VehicleStatus
from models.partner import VehicleCreate


router = APIRouter(
    prefix="/api/partner",
    tags=["Partner"],
)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

VEHICLE_COLUMNS = (
    "id, name, make, model, year, license_plate, registration_number, color, seats, "
    "fuel_type, transmission, category, daily_rate, weekly_rate, monthly_rate, "
    "price_per_day, price_per_week, ride_hailing_categories, is_active, is_available, "
    "status, partner_id, created_at, updated_at"
)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def validate_partner_id(partner_id: Optional[str]) -> str:
    if not partner_id:
        raise HTTPException(400, "Partner ID is required")
    if not UUID_RE.match(partner_id):
        raise HTTPException(400, "Invalid Partner ID format")
    return partner_id


def _partner_rows(client, table: str, partner_id: str, what: str) -> list:
    try:
        result = (
            client.table(table)
            .select("*")
            .eq("partner_id", partner_id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as e:
        supabase_error(e, f"Failed to fetch {what}")
    return rows(result)


# -----------------------------------------------------
# PARTNER ID LOOKUP
# -----------------------------------------------------
@router.get("/get-partner-id", summary="Partner a user acts for")
def get_partner_id(
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, user_id)
    partner_id = require_partner_id(_client(), user_id)
    return {"success": True, "partnerId": partner_id}


# -----------------------------------------------------
# BOOKINGS / CLAIMS
# -----------------------------------------------------
@router.get("/bookings", summary="Bookings for a partner")
def partner_bookings(
    partner_id: Optional[str] = Query(None, alias="partnerId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    partner_id = validate_partner_id(partner_id)
    client = _client()
    ensure_partner_access(client, current_user, partner_id)

    bookings = _partner_rows(client, "bookings", partner_id, "bookings")
    logger.info(f"Found {len(bookings)} bookings for partner {partner_id}")
    return {"success": True, "bookings": bookings, "count": len(bookings)}


@router.get("/claims", summary="Insurance and damage claims for a partner")
def partner_claims(
    partner_id: Optional[str] = Query(None, alias="partnerId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    partner_id = validate_partner_id(partner_id)
    client = _client()
    ensure_partner_access(client, current_user, partner_id)

    claims = _partner_rows(client, "claims", partner_id, "claims")
    return {"success": True, "claims": claims, "count": len(claims)}


# -----------------------------------------------------
# VEHICLES
# -----------------------------------------------------
@router.get("/vehicles", summary="Fleet for a partner")
def partner_vehicles(
    user_id: Optional[str] = Query(None, alias="userId"),
    partner_id: Optional[str] = Query(None, alias="partnerId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    if not user_id and not partner_id:
        raise HTTPException(400, "User ID or Partner ID is required")

    client = _client()

    if partner_id:
        ensure_partner_access(client, current_user, partner_id)
    else:
        ensure_self_or_admin(current_user, user_id)
        partner_id = resolve_partner_id(client, user_id)

    if not partner_id:
        raise HTTPException(404, "Partner not found")

    try:
        result = (
            client.table("vehicles")
            .select(VEHICLE_COLUMNS)
            .eq("partner_id", partner_id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch vehicles")

    vehicles = rows(result)
    return {"success": True, "vehicles": vehicles, "count": len(vehicles)}


@router.post("/vehicles", summary="Add a vehicle to a partner fleet")
def create_vehicle(
    payload: VehicleCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    ensure_partner_access(client, current_user, payload.partner_id)

    now = utc_now_iso()
    record = clean_payload(payload.model_dump())
    record.update({
        "status": (VehicleStatus.available if payload.is_available else VehicleStatus.unavailable).value,
        "created_at": now,
        "updated_at": now,
    })

    try:
        vehicle = first_row(client.table("vehicles").insert(record).execute())
    except Exception as e:
        raise handle_supabase_error(e, "Failed to create vehicle")

    logger.info(
        f"Vehicle created for partner {payload.partner_id} by "
        f"{'admin' if is_admin(current_user) else 'partner'} {current_user.id}"
    )
    return {
        "success": True,
        "vehicle": vehicle,
        "message": "Vehicle created successfully",
    }
