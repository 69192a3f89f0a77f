# routers/bookings.py

import math
import random
import string
import time
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.activity_log import create_notification, record_booking_history
from core.booking_helpers import (
    SETTLED_PAYMENT_STATUSES,
    car_fields,
    load_booking,
    paid_total,
    record_transaction,
    release_vehicle,
    vehicle_image,
)
from core.errors import supabase_error, extract_supabase_error
from core.logging_config import logger
from core.partners import ensure_self_or_admin
from core.permission_helpers import is_admin
from core.supabase_client import get_supabase_client
from core.supabase_helpers import first_row, rows
from core.utils import parse_iso_datetime, utc_now
from dependencies.auth import get_current_user, CurrentUser
from models.booking import BookingCreate, BookingCancel
from models.enums import (
    BookingStatus,
    CancelType,
    InstructionStatus,
    InstructionType,
    VehicleStatus,
    LIVE_BOOKING_STATUSES,
)


router = APIRouter(
    prefix="/api/bookings",
    tags=["Bookings"],
)

RECENT_SAMPLE_SIZE = 50


# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def parse_timestamp(value: str, field: str) -> datetime:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise HTTPException(400, f"Invalid {field}")
    return parsed


def generate_booking_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"booking_{int(time.time() * 1000)}_{suffix}"


def display_name(person: dict) -> Optional[str]:
    return person.get("full_name") or person.get("name") or person.get("email")


def booking_total(start: datetime, end: datetime, weekly_rate: float, deposit: float) -> float:
    """Whole weeks (rounded up) at the weekly rate, plus the deposit."""
    weeks = math.ceil((end - start) / timedelta(weeks=1))
    return weeks * weekly_rate + deposit


def compute_refund(booking: dict, paid: float, cancel_type: CancelType, now: datetime) -> dict:
    """
    Refund owed on cancellation.

    full      -> everything paid
    prorated  -> paid days not yet used, at the daily rate
    none      -> nothing
    """
    start = parse_timestamp(booking["start_date"], "start_date")
    end = parse_timestamp(booking["end_date"], "end_date")

    total_days = math.ceil((end - start) / timedelta(days=1))
    days_used = max(0, math.ceil((now - start) / timedelta(days=1)))
    remaining_days = max(0, total_days - days_used)

    car = booking.get("car") or {}
    weekly_rate = car.get("price_per_week") or booking.get("price_per_week") or booking.get("weekly_rate") or 0
    daily_rate = float(weekly_rate) / 7

    if cancel_type == CancelType.full:
        refund = paid
    elif cancel_type == CancelType.prorated and daily_rate > 0:
        paid_days = math.ceil(paid / daily_rate)
        refund = round(max(0, paid_days - days_used) * daily_rate, 2)
    else:
        refund = 0

    return {
        "refund_amount": refund,
        "total_days": total_days,
        "days_used": days_used,
        "remaining_days": remaining_days,
    }


# -----------------------------------------------------
# CREATE BOOKING
# -----------------------------------------------------
@router.post("/create", summary="Create a booking for an available vehicle")
def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, payload.driver_id)

    start = parse_timestamp(payload.start_date, "startDate")
    end = parse_timestamp(payload.end_date, "endDate")
    now = utc_now()

    if start < now:
        raise HTTPException(400, "Start date cannot be in the past")
    if end <= start:
        raise HTTPException(400, "End date must be after start date")

    client = _client()

    try:
        vehicle = first_row(client.table("vehicles").select("*").eq("id", payload.vehicle_id).limit(1).execute())
        driver = first_row(client.table("users").select("*").eq("id", payload.driver_id).limit(1).execute())
        partner = first_row(client.table("users").select("*").eq("id", payload.partner_id).limit(1).execute())
    except Exception as e:
        supabase_error(e, "Failed to load booking details")

    if not vehicle:
        raise HTTPException(404, "Vehicle not found")
    if vehicle.get("status") != VehicleStatus.available.value:
        raise HTTPException(400, "Vehicle is not available")
    if not driver:
        raise HTTPException(404, "Driver not found")
    if not partner:
        raise HTTPException(404, "Partner not found")

    total_amount = booking_total(start, end, payload.weekly_rate, payload.deposit_amount)
    booking_id = generate_booking_id()
    car = car_fields(payload.vehicle_id, vehicle)
    car_label = car["car_name"]
    now_iso = now.isoformat()

    record = {
        "id": booking_id,
        "driver_id": payload.driver_id,
        "partner_id": payload.partner_id,
        "vehicle_id": payload.vehicle_id,
        "current_vehicle_id": payload.vehicle_id,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "weekly_rate": payload.weekly_rate,
        "total_amount": total_amount,
        "deposit_amount": payload.deposit_amount,
        "insurance_required": payload.insurance_required,
        "partner_provides_insurance": payload.partner_provides_insurance,
        "requires_document_verification": payload.requires_document_verification,
        "payment_method": payload.payment_method.value,
        "status": BookingStatus.pending_payment.value,
        "payment_status": "pending",
        **car,
        "driver": {
            "id": payload.driver_id,
            "full_name": display_name(driver),
            "email": driver.get("email"),
            "phone": driver.get("phone"),
        },
        "partner": {
            "id": payload.partner_id,
            "full_name": display_name(partner),
            "email": partner.get("email"),
            "company_name": partner.get("company_name") or partner.get("company"),
        },
        "created_at": now_iso,
        "updated_at": now_iso,
    }

    try:
        booking = first_row(client.table("bookings").insert(record).execute())
    except Exception as e:
        supabase_error(e, "Failed to create booking")

    # Follow-up writes: failures are logged, the booking stands
    try:
        client.table("vehicles").update({
            "status": VehicleStatus.booked.value,
            "current_booking_id": booking_id,
            "updated_at": now_iso,
        }).eq("id", payload.vehicle_id).execute()
    except Exception as e:
        logger.warning(f"Failed to mark vehicle {payload.vehicle_id} booked: {extract_supabase_error(e)}")

    instruction_base = {
        "booking_id": booking_id,
        "driver_id": payload.driver_id,
        "partner_id": payload.partner_id,
        "vehicle_reg": vehicle.get("registration_number"),
        "method": payload.payment_method.value,
        "status": InstructionStatus.pending.value,
        "created_at": now_iso,
        "updated_at": now_iso,
    }
    instructions = []
    if payload.deposit_amount > 0:
        instructions.append({
            **instruction_base,
            "amount": payload.deposit_amount,
            "type": InstructionType.deposit.value,
        })
    instructions.append({
        **instruction_base,
        "amount": payload.weekly_rate,
        "type": InstructionType.weekly_rent.value,
        "frequency": "weekly",
        "next_due_date": start.isoformat(),
    })
    for instruction in instructions:
        try:
            client.table("payment_instructions").insert(instruction).execute()
        except Exception as e:
            logger.warning(f"Failed to create {instruction['type']} instruction: {extract_supabase_error(e)}")

    record_booking_history(
        client,
        booking_id,
        "booking_created",
        payload.driver_id,
        "driver",
        f"Booking created for {car_label} ({vehicle.get('registration_number')})",
        details={
            "vehicle_id": payload.vehicle_id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "weekly_rate": payload.weekly_rate,
            "total_amount": total_amount,
            "deposit_amount": payload.deposit_amount,
        },
    )

    driver_name = driver.get("full_name") or driver.get("email")
    create_notification(
        client,
        "new_booking",
        "New Booking Request",
        f"New booking request from {driver_name} for {car_label}",
        recipient_id=payload.partner_id,
        recipient_type="partner",
        data={"booking_id": booking_id, "driver_name": driver_name, "vehicle": car_label},
        priority="high",
    )
    create_notification(
        client,
        "booking_created",
        "Booking Submitted",
        f"Your booking request for {car_label} has been submitted",
        recipient_id=payload.driver_id,
        recipient_type="driver",
        data={"booking_id": booking_id, "vehicle": car_label},
    )

    logger.info(f"Booking {booking_id} created for vehicle {payload.vehicle_id}")

    return {
        "success": True,
        "booking": booking or record,
        "bookingId": booking_id,
        "totalAmount": total_amount,
    }


# -----------------------------------------------------
# CANCEL BOOKING
# -----------------------------------------------------
def _refund_transactions(client, booking: dict, refund_amount: float, insurance_refund: float, now_iso: str):
    """Negative ledger rows reversing what the driver paid."""
    description = f"Refund for cancelled booking {booking.get('id')}"
    if refund_amount > 0:
        record_transaction(
            client, booking, "income", "Vehicle Rental", -refund_amount,
            description, now_iso, source="booking_cancellation",
        )
        record_transaction(
            client, booking, "expense", "Vehicle Rental", -refund_amount,
            description, now_iso, source="booking_cancellation",
        )
    if insurance_refund > 0:
        record_transaction(
            client, booking, "expense", "Insurance", -insurance_refund,
            f"Insurance refund for cancelled booking {booking.get('id')}", now_iso, source="booking_cancellation",
        )


@router.post("/cancel", summary="Cancel a booking and compute the refund")
def cancel_booking(
    payload: BookingCancel,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)

    if booking.get("driver_id") != current_user.id and not is_admin(current_user):
        raise HTTPException(403, "Forbidden")

    if booking.get("status") == BookingStatus.cancelled.value:
        raise HTTPException(400, "Booking is already cancelled")

    paid = paid_total(client, payload.booking_id)

    now = utc_now()
    now_iso = now.isoformat()
    refund = compute_refund(booking, paid, payload.cancel_type, now)
    refund_amount = refund["refund_amount"]
    insurance_refund = payload.insurance_refund_amount or 0
    performed_by_type = "driver" if booking.get("driver_id") == current_user.id else "admin"

    try:
        client.table("bookings").update({
            "status": BookingStatus.cancelled.value,
            "cancelled_at": now_iso,
            "cancelled_by": current_user.id,
            "cancelled_by_type": performed_by_type,
            "cancel_reason": payload.reason,
            "cancel_type": payload.cancel_type.value,
            "refund_amount": refund_amount,
            "insurance_refund": insurance_refund,
            "days_used": refund["days_used"],
            "remaining_days": refund["remaining_days"],
            "payment_status": "refunded" if refund_amount > 0 else booking.get("payment_status"),
            "updated_at": now_iso,
        }).eq("id", payload.booking_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update booking")

    description = f"Booking cancelled by {performed_by_type}: {payload.reason}"
    if refund_amount > 0:
        description += f" (£{refund_amount} refunded)"
    if insurance_refund > 0:
        description += f" (Insurance refund: £{insurance_refund})"

    record_booking_history(
        client,
        payload.booking_id,
        "booking_cancelled",
        current_user.id,
        performed_by_type,
        description,
        details={
            "reason": payload.reason,
            "cancel_type": payload.cancel_type.value,
            "refund_amount": refund_amount,
            "insurance_refund": insurance_refund,
            **refund,
        },
    )

    if booking.get("payment_status") in SETTLED_PAYMENT_STATUSES:
        _refund_transactions(client, booking, refund_amount, insurance_refund, now_iso)

    release_vehicle(client, booking, now_iso)

    notification_data = {
        "booking_id": payload.booking_id,
        "cancel_type": payload.cancel_type.value,
        "refund_amount": refund_amount,
        "insurance_refund": insurance_refund,
        "reason": payload.reason,
    }
    create_notification(
        client,
        "booking_cancelled",
        "Booking Cancelled",
        f"Booking {payload.booking_id} has been cancelled. Reason: {payload.reason}",
        recipient_id=booking.get("partner_id"),
        recipient_type="partner",
        data=notification_data,
    )
    if performed_by_type == "driver":
        driver_name = (booking.get("driver") or {}).get("full_name") or "Unknown"
        admin_message = f"Driver {driver_name} cancelled booking {payload.booking_id}. Reason: {payload.reason}"
    else:
        admin_message = f"Admin {current_user.id} cancelled booking {payload.booking_id}. Reason: {payload.reason}"
        create_notification(
            client,
            "booking_cancelled",
            "Booking Cancelled",
            f"Your booking {payload.booking_id} has been cancelled. Reason: {payload.reason}",
            recipient_id=booking.get("driver_id"),
            recipient_type="driver",
            data=notification_data,
        )
    create_notification(
        client,
        "booking_cancelled",
        f"Booking Cancelled by {performed_by_type.title()}",
        admin_message,
        data=notification_data,
    )

    return {
        "success": True,
        "message": "Booking cancelled successfully",
        "refund_amount": refund_amount,
        "insurance_refund": insurance_refund,
    }


# -----------------------------------------------------
# RECENT BOOKINGS (public ticker)
# -----------------------------------------------------
@router.get("/recent", summary="Most recent live bookings")
def recent_bookings(limit: int = Query(1, ge=1, le=RECENT_SAMPLE_SIZE)):
    client = _client()

    try:
        sample = rows(
            client.table("bookings")
            .select("id, created_at, status, vehicle_id, car_id, driver, partner, car")
            .order("created_at", desc=True)
            .limit(RECENT_SAMPLE_SIZE)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch recent bookings")

    live = {s.value for s in LIVE_BOOKING_STATUSES}
    hidden_vehicle_states = {VehicleStatus.deleted.value, VehicleStatus.removed.value}
    bookings = []

    for booking in sample:
        if booking.get("status") not in live:
            continue

        vehicle_id = booking.get("vehicle_id") or booking.get("car_id")
        if not vehicle_id:
            continue

        try:
            vehicle = first_row(
                client.table("vehicles")
                .select("id, make, model, image_url, image_urls, price_per_week, weekly_rate, status")
                .eq("id", vehicle_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Vehicle lookup failed for {vehicle_id}: {extract_supabase_error(e)}")
            continue

        if not vehicle or vehicle.get("status") in hidden_vehicle_states:
            continue

        bookings.append({
            "id": booking["id"],
            "created_at": booking.get("created_at"),
            "car": {
                "id": vehicle_id,
                "make": vehicle.get("make") or "",
                "model": vehicle.get("model") or "",
                "image": vehicle_image(vehicle),
                "price_per_week": vehicle.get("price_per_week") or vehicle.get("weekly_rate") or "",
            },
            "driver": booking.get("driver") or {},
            "partner": booking.get("partner") or {},
            "status": booking.get("status"),
        })

        if len(bookings) >= limit:
            break

    return {"success": True, "bookings": bookings}
