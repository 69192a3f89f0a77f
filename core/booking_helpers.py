# core/booking_helpers.py
"""
Pieces shared by the booking routes: loading a booking, working out which
party the caller acts as, summing what the driver has paid, freeing the
vehicle and building ledger rows.
"""

from typing import Optional

from fastapi import HTTPException
from supabase import Client

from core.errors import supabase_error, extract_supabase_error
from core.logging_config import logger
from core.partners import resolve_partner_id
from core.permission_helpers import is_admin
from core.roles import PARTNER_ROLES
from core.supabase_helpers import first_row, rows
from dependencies.auth import CurrentUser
from models.enums import InstructionStatus, VehicleStatus


PAID_INSTRUCTION_STATUSES = (InstructionStatus.completed.value, InstructionStatus.received.value)

# Booking payment_status values that count as settled
SETTLED_PAYMENT_STATUSES = ("completed", "paid", "confirmed")

NO_FEES = {"platform": 0, "payment": 0, "insurance": 0, "maintenance": 0}


def load_booking(client: Client, booking_id: str) -> dict:
    try:
        booking = first_row(client.table("bookings").select("*").eq("id", booking_id).limit(1).execute())
    except Exception as e:
        supabase_error(e, "Failed to load booking")

    if not booking:
        raise HTTPException(404, "Booking not found")
    return booking


def acts_for_partner(client: Client, current_user: CurrentUser, partner_id: Optional[str]) -> bool:
    """
    Bookings carry the partner's user id; staff resolve to the partners row.
    Either form matches.
    """
    if not partner_id or current_user.role not in PARTNER_ROLES:
        return False
    return partner_id in (current_user.id, resolve_partner_id(client, current_user.id))


def ensure_booking_partner(client: Client, current_user: CurrentUser, partner_id: Optional[str]):
    if is_admin(current_user) or acts_for_partner(client, current_user, partner_id):
        return
    raise HTTPException(403, "Forbidden")


def booking_actor(client: Client, booking: dict, current_user: CurrentUser) -> str:
    """
    "admin", "driver" or "partner" for the caller on this booking; 403 when
    the caller is none of them.
    """
    if is_admin(current_user):
        return "admin"
    if booking.get("driver_id") == current_user.id:
        return "driver"
    if acts_for_partner(client, current_user, booking.get("partner_id")):
        return "partner"

    raise HTTPException(403, "Forbidden")


def booking_vehicle_id(booking: dict) -> Optional[str]:
    return booking.get("vehicle_id") or booking.get("current_vehicle_id") or booking.get("car_id")


def paid_total(client: Client, booking_id: str) -> float:
    """Sum of completed or received instructions. A failed lookup counts as nothing paid."""
    try:
        paid_rows = rows(
            client.table("payment_instructions")
            .select("amount, status")
            .eq("booking_id", booking_id)
            .in_("status", list(PAID_INSTRUCTION_STATUSES))
            .execute()
        )
    except Exception as e:
        logger.warning(f"Failed to load payments for {booking_id}: {extract_supabase_error(e)}")
        return 0

    return sum(float(r.get("amount") or 0) for r in paid_rows if r.get("status") in PAID_INSTRUCTION_STATUSES)


def set_vehicle_status(client: Client, booking: dict, status: VehicleStatus, now_iso: str, **extra) -> bool:
    vehicle_id = booking_vehicle_id(booking)
    if not vehicle_id:
        return False

    current_booking = booking.get("id") if status == VehicleStatus.booked else None
    try:
        client.table("vehicles").update({
            "status": status.value,
            "current_booking_id": current_booking,
            "updated_at": now_iso,
            **extra,
        }).eq("id", vehicle_id).execute()
    except Exception as e:
        logger.warning(f"Failed to set vehicle {vehicle_id} {status.value}: {extract_supabase_error(e)}")
        return False
    return True


def release_vehicle(client: Client, booking: dict, now_iso: str, **extra) -> bool:
    return set_vehicle_status(client, booking, VehicleStatus.available, now_iso, **extra)


def vehicle_image(vehicle: dict) -> str:
    urls = vehicle.get("image_urls")
    return vehicle.get("image_url") or (urls[0] if isinstance(urls, list) and urls else "")


def car_fields(vehicle_id: str, vehicle: dict) -> dict:
    """Booking columns that snapshot the assigned vehicle."""
    image = vehicle_image(vehicle)
    return {
        "car": {
            "id": vehicle_id,
            "make": vehicle.get("make"),
            "model": vehicle.get("model"),
            "year": vehicle.get("year"),
            "registration_number": vehicle.get("registration_number"),
            "color": vehicle.get("color"),
            "fuel_type": vehicle.get("fuel_type"),
            "transmission": vehicle.get("transmission"),
            "seats": vehicle.get("seats"),
            "mileage": vehicle.get("mileage"),
            "image": image,
            "price_per_week": vehicle.get("price_per_week"),
        },
        "car_name": f"{vehicle.get('make') or ''} {vehicle.get('model') or ''}".strip(),
        "car_image": image,
        "car_plate": vehicle.get("registration_number"),
    }


def party_details(booking: dict) -> dict:
    """Driver, partner and vehicle snapshots stored on ledger rows."""
    driver = booking.get("driver") or {}
    partner = booking.get("partner") or {}
    car = booking.get("car") or {}
    return {
        "booking_details": {
            "start_date": booking.get("start_date"),
            "end_date": booking.get("end_date"),
            "total_amount": booking.get("total_amount"),
            "weekly_rate": booking.get("weekly_rate"),
        },
        "driver_details": {"name": driver.get("full_name") or "Unknown", "email": driver.get("email")},
        "partner_details": {
            "name": partner.get("full_name") or "Unknown",
            "email": partner.get("email"),
            "company_name": partner.get("company_name"),
        },
        "vehicle_details": {
            "registration": car.get("registration_number") or booking.get("car_plate") or "",
            "make": car.get("make"),
            "model": car.get("model"),
        },
    }


def record_transaction(
    client: Client,
    booking: dict,
    type: str,
    category: str,
    amount: float,
    description: str,
    now_iso: str,
    source: str,
    **extra,
) -> bool:
    """Best-effort ledger row; the caller's change stands when it fails."""
    payload = {
        "booking_id": booking.get("id"),
        "partner_id": booking.get("partner_id"),
        "driver_id": booking.get("driver_id"),
        "type": type,
        "category": category,
        "amount": amount,
        "description": description,
        "date": now_iso,
        "status": "completed",
        "fees": NO_FEES,
        "net_amount": amount,
        "source": source,
        "payment_method": booking.get("payment_method") or "bank_transfer",
        **party_details(booking),
        "created_at": now_iso,
        "updated_at": now_iso,
        **extra,
    }
    try:
        client.table("transactions").insert(payload).execute()
        return True
    except Exception as e:
        logger.warning(f"Failed to record {category} {type} for {booking.get('id')}: {extract_supabase_error(e)}")
        return False


def person_name(client: Client, user_id: Optional[str], fallback: str = "Unknown") -> str:
    """Display name for history rows; lookup failures fall back quietly."""
    if not user_id:
        return fallback
    try:
        person = first_row(client.table("users").select("*").eq("id", user_id).limit(1).execute())
    except Exception as e:
        logger.warning(f"Failed to load user {user_id}: {extract_supabase_error(e)}")
        return fallback

    person = person or {}
    return (
        person.get("company_name")
        or person.get("company")
        or person.get("full_name")
        or person.get("name")
        or person.get("email")
        or fallback
    )
