# routers/booking_lifecycle.py

import math
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.activity_log import create_notification, record_booking_history
from core.booking_helpers import (
    SETTLED_PAYMENT_STATUSES,
    booking_actor,
    booking_vehicle_id,
    car_fields,
    load_booking,
    paid_total,
    person_name,
    record_transaction,
    release_vehicle,
    set_vehicle_status,
)
from core.errors import supabase_error, extract_supabase_error
from core.logging_config import logger
from core.supabase_client import get_supabase_client
from core.supabase_helpers import first_row, rows
from core.utils import parse_iso_datetime, utc_now
from dependencies.auth import get_current_user, CurrentUser
from models.booking import (
    BookingRef,
    FinishBooking,
    IssueReport,
    PartnerResponse,
    ReturnRequest,
    StartActive,
    VehicleChange,
    VehicleRelease,
)
from models.enums import (
    ACTIVATABLE_STATUSES,
    FINISHABLE_STATUSES,
    RETURNABLE_STATUSES,
    VEHICLE_CHANGE_STATUSES,
    VEHICLE_RELEASE_STATUSES,
    AdjustmentType,
    BookingStatus,
    InstructionStatus,
    InstructionType,
    IssueSeverity,
    PartnerAction,
    ReturnAction,
    VehicleStatus,
)


router = APIRouter(
    prefix="/api/bookings",
    tags=["Bookings"],
)

ACTIVATION_PAYMENT_STATUSES = SETTLED_PAYMENT_STATUSES + ("active",)
DEPOSIT_HELD_STATUSES = (
    InstructionStatus.deposit_received.value,
    InstructionStatus.completed.value,
    InstructionStatus.received.value,
)
REMINDER_WINDOW = timedelta(hours=2)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def _update_booking(client, booking_id: str, update: dict):
    try:
        client.table("bookings").update(update).eq("id", booking_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update booking")


def car_label(booking: dict) -> str:
    car = booking.get("car") or {}
    return f"{car.get('make') or ''} {car.get('model') or ''}".strip() or booking.get("car_name") or "vehicle"


def activation_checks(booking: dict) -> dict:
    return {
        "valid_status": booking.get("status") in {s.value for s in ACTIVATABLE_STATUSES},
        "payment_confirmed": booking.get("payment_status") in ACTIVATION_PAYMENT_STATUSES,
        "insurance_valid": bool(
            not booking.get("insurance_required")
            or booking.get("driver_insurance_valid")
            or booking.get("partner_provides_insurance")
        ),
        "documents_approved": bool(
            not booking.get("requires_document_verification") or booking.get("all_documents_approved")
        ),
    }


def activation_requirements(booking: dict) -> list:
    """Unmet conditions for handing the vehicle over, in display order."""
    checks = activation_checks(booking)
    requirements = []
    if not checks["payment_confirmed"]:
        requirements.append("Payment must be confirmed")
    if not checks["insurance_valid"]:
        requirements.append("Valid insurance certificate required")
    if not checks["documents_approved"]:
        requirements.append("Document verification must be completed")
    return requirements


def final_settlement(booking: dict, paid: float, now: datetime) -> dict:
    """
    Charge for the days actually used, billed in whole weeks (rounded up),
    less what has already been paid.
    """
    start = parse_iso_datetime(booking.get("start_date"))
    if start is None:
        raise HTTPException(400, "Invalid start_date")

    total_days = max(0, math.ceil((now - start) / timedelta(days=1)))
    total_weeks = math.ceil(total_days / 7)
    weekly_rate = float(booking.get("weekly_rate") or 0)
    final_amount = total_weeks * weekly_rate
    outstanding = round(max(0, final_amount - paid), 2)

    return {
        "total_days": total_days,
        "total_weeks": total_weeks,
        "final_amount": final_amount,
        "actual_paid": paid,
        "outstanding_amount": outstanding,
    }


# -----------------------------------------------------
# PARTNER RESPONSE
# -----------------------------------------------------
def _link_driver(client, booking: dict, now_iso: str):
    """Accepted drivers show up in the partner's driver list."""
    driver_id = booking.get("driver_id")
    if not driver_id:
        return

    driver = booking.get("driver") or {}
    partner_id = booking.get("partner_id")
    records = (
        ("partner_drivers", {
            "partner_id": partner_id,
            "driver_id": driver_id,
            "full_name": driver.get("full_name") or "Unknown",
            "email": driver.get("email") or "",
            "phone": driver.get("phone") or "",
            "first_booking_at": now_iso,
            "updated_at": now_iso,
        }),
        ("drivers", {
            "id": driver_id,
            "partner_id": partner_id,
            "name": driver.get("full_name") or "Unknown",
            "email": driver.get("email") or "",
            "phone": driver.get("phone") or "",
            "status": "active",
            "updated_at": now_iso,
        }),
    )
    for table, record in records:
        try:
            client.table(table).upsert(record).execute()
        except Exception as e:
            logger.warning(f"Failed to link driver {driver_id} in {table}: {extract_supabase_error(e)}")


def _rejection_refunds(client, booking: dict, reason: str, now_iso: str):
    """Pending refund instructions for whatever the driver has paid so far."""
    try:
        instructions = rows(
            client.table("payment_instructions")
            .select("amount, status, type")
            .eq("booking_id", booking["id"])
            .execute()
        )
    except Exception as e:
        logger.warning(f"Failed to load payments for {booking['id']}: {extract_supabase_error(e)}")
        return

    deposit = sum(
        float(i.get("amount") or 0) for i in instructions
        if i.get("type") == InstructionType.deposit.value and i.get("status") in DEPOSIT_HELD_STATUSES
    )
    weekly = sum(
        float(i.get("amount") or 0) for i in instructions
        if i.get("type") != InstructionType.deposit.value
        and i.get("status") in (InstructionStatus.completed.value, InstructionStatus.received.value)
    )

    vehicle_reg = (booking.get("car") or {}).get("registration_number") or booking.get("car_plate") or ""
    for method, amount in (("deposit", deposit), ("weekly", weekly)):
        if amount <= 0:
            continue
        try:
            client.table("payment_instructions").insert({
                "booking_id": booking["id"],
                "driver_id": booking.get("driver_id"),
                "partner_id": booking.get("partner_id"),
                "vehicle_reg": vehicle_reg,
                "amount": amount,
                "type": InstructionType.refund.value,
                "method": method,
                "status": InstructionStatus.pending.value,
                "reason": f"Refund for rejected booking ({method}): {reason}",
                "created_at": now_iso,
                "updated_at": now_iso,
            }).execute()
        except Exception as e:
            logger.warning(f"Failed to create {method} refund for {booking['id']}: {extract_supabase_error(e)}")


@router.post("/partner-response", summary="Partner accepts or rejects a booking")
def partner_response(
    payload: PartnerResponse,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)

    actor = booking_actor(client, booking, current_user)
    if actor == "driver":
        raise HTTPException(403, "Only the partner can respond to a booking")

    if booking.get("status") != BookingStatus.pending_partner_approval.value:
        raise HTTPException(
            400, f"Booking is no longer pending approval. Current status: {booking.get('status')}"
        )

    now = utc_now()
    now_iso = now.isoformat()
    created = parse_iso_datetime(booking.get("created_at"))
    response_ms = int((now - created).total_seconds() * 1000) if created else 0
    partner_name = person_name(client, booking.get("partner_id"), "Partner")
    label = car_label(booking)

    update = {"updated_at": now_iso, "partner_response_time": response_ms}

    if payload.action == PartnerAction.accept:
        update["partner_accepted_at"] = now_iso
        if payload.override_insurance:
            update["driver_insurance_valid"] = True
            update["driver_insurance_status"] = "approved"

        accepted_booking = {**booking, **update}
        if not activation_checks(accepted_booking)["insurance_valid"]:
            status = BookingStatus.pending_insurance_upload
            title = "Insurance Required"
            message = (
                f"Your booking for {label} has been accepted, but you must upload "
                "a valid insurance certificate before pickup."
            )
        elif not activation_requirements(accepted_booking):
            status = BookingStatus.active
            update.update({
                "activated_at": now_iso,
                "activated_by": current_user.id,
                "activated_by_type": actor,
                "activated_trigger": "auto_on_acceptance",
            })
            title = "Booking Active - Ready for Collection!"
            message = f"Your booking for {label} has been accepted and is now active! You can collect the vehicle from the partner."
        else:
            status = BookingStatus.partner_accepted
            title = "Booking Accepted"
            message = f"Your booking for {label} has been accepted by the partner. Please review and sign the rental agreement."

        history_action = "partner_accepted"
        description = f"Booking accepted by partner {partner_name}"
        details = {"override_insurance": payload.override_insurance}
    else:
        reason = payload.rejection_reason or "No reason provided"
        status = BookingStatus.partner_rejected
        update["partner_rejected_at"] = now_iso
        update["rejection_reason"] = reason

        title = "Booking Rejected"
        message = f"Your booking for {label} has been rejected by the partner."
        if payload.rejection_reason:
            message += f" Reason: {payload.rejection_reason}"
        message += " Refund(s) will be processed."

        history_action = "partner_rejected"
        description = f"Booking rejected by partner {partner_name}"
        if payload.rejection_reason:
            description += f": {payload.rejection_reason}"
        details = {"rejection_reason": reason}

    update["status"] = status.value
    _update_booking(client, payload.booking_id, update)

    if payload.action == PartnerAction.accept:
        _link_driver(client, booking, now_iso)
    else:
        release_vehicle(client, booking, now_iso)
        _rejection_refunds(client, booking, update["rejection_reason"], now_iso)

    record_booking_history(
        client,
        payload.booking_id,
        history_action,
        current_user.id,
        actor,
        description,
        details={"response_time_ms": response_ms, "partner_name": partner_name, **details},
    )
    accepted = payload.action == PartnerAction.accept
    create_notification(
        client,
        "booking_accepted" if accepted else "booking_rejected",
        title,
        message,
        recipient_id=booking.get("driver_id"),
        recipient_type="driver",
        data={"booking_id": payload.booking_id},
        priority="high" if accepted else "medium",
    )
    create_notification(
        client,
        f"booking_{payload.action.value}ed_admin",
        f"Booking {'Accepted' if accepted else 'Rejected'}",
        f"Partner {partner_name} has {payload.action.value}ed booking for {label}",
        data={"booking_id": payload.booking_id, "partner_name": partner_name},
    )

    logger.info(f"Booking {payload.booking_id} {status.value} by {actor} {current_user.id}")

    return {
        "success": True,
        "status": status.value,
        "message": f"Booking {payload.action.value}ed successfully",
        "response_time": round(response_ms / 60000),
    }


# -----------------------------------------------------
# ACTIVATION (vehicle handover)
# -----------------------------------------------------
@router.get("/start-active", summary="Whether a booking can be activated")
def activation_readiness(
    booking_id: Optional[str] = Query(None, alias="bookingId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    if not booking_id:
        raise HTTPException(400, "Missing bookingId parameter")

    client = _client()
    booking = load_booking(client, booking_id)
    booking_actor(client, booking, current_user)

    checks = activation_checks(booking)
    requirements = activation_requirements(booking)
    if not checks["valid_status"]:
        requirements.insert(
            0,
            "Status must be partner_accepted, pending_insurance_upload, or confirmed "
            f"(current: {booking.get('status')})",
        )

    return {
        "success": True,
        "can_activate": not requirements,
        "current_status": booking.get("status"),
        "requirements": requirements,
        "checks": checks,
    }


@router.post("/start-active", summary="Activate a booking for vehicle collection")
def start_active(
    payload: StartActive,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)

    actor = booking_actor(client, booking, current_user)
    if actor == "driver":
        raise HTTPException(403, "Not authorized to activate this booking")

    current_status = booking.get("status")
    if current_status == BookingStatus.active.value:
        return {"success": True, "status": "already_active"}
    if current_status not in {s.value for s in ACTIVATABLE_STATUSES}:
        raise HTTPException(400, f"Cannot activate booking with status: {current_status}")

    if not payload.bypass_requirements:
        requirements = activation_requirements(booking)
        if requirements:
            raise HTTPException(400, f"Cannot activate booking. Requirements not met: {'; '.join(requirements)}")

    now_iso = utc_now().isoformat()

    _update_booking(client, payload.booking_id, {
        "status": BookingStatus.active.value,
        "activated_at": now_iso,
        "activated_by": current_user.id,
        "activated_by_type": actor,
        "activated_trigger": payload.triggered_by,
        "updated_at": now_iso,
    })

    set_vehicle_status(client, booking, VehicleStatus.booked, now_iso, active_booking_started=now_iso)

    if payload.bypass_requirements:
        description = f"Booking force activated by {actor} (requirements bypassed)."
    else:
        description = f"Booking activated by {actor}. Vehicle ready for collection."
    record_booking_history(
        client,
        payload.booking_id,
        "booking_activated",
        current_user.id,
        actor,
        description,
        details={
            "triggered_by": payload.triggered_by,
            "activated_at": now_iso,
            "bypass_requirements": payload.bypass_requirements,
        },
    )
    create_notification(
        client,
        "booking_activated",
        "Booking Now Active - Ready for Collection!",
        "Your booking is now active! Please contact your partner to arrange vehicle collection. "
        "Make sure to complete the handover inspection.",
        recipient_id=booking.get("driver_id"),
        recipient_type="driver",
        data={"booking_id": payload.booking_id},
        priority="high",
    )
    create_notification(
        client,
        "booking_activated_admin",
        "Booking Activated",
        f"Booking {payload.booking_id} has been activated by {actor}. Vehicle collection phase started.",
        data={"booking_id": payload.booking_id, "partner_id": booking.get("partner_id")},
        priority="low",
    )

    return {
        "success": True,
        "status": BookingStatus.active.value,
        "message": "Booking activated successfully",
        "activated_at": now_iso,
    }


# -----------------------------------------------------
# RETURN REQUESTS
# -----------------------------------------------------
@router.post("/request-return", summary="Request, approve or reject an early return")
def request_return(
    payload: ReturnRequest,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)
    actor = booking_actor(client, booking, current_user)

    now_iso = utc_now().isoformat()
    reason = payload.reason or "No reason provided"
    name = person_name(client, current_user.id)
    update = {"updated_at": now_iso}

    if payload.action == ReturnAction.request:
        if booking.get("status") not in {s.value for s in RETURNABLE_STATUSES}:
            raise HTTPException(400, f"Cannot request return. Booking status: {booking.get('status')}")
        if booking.get("return_requested"):
            raise HTTPException(400, "Return already requested")

        update.update({
            "return_requested": True,
            "return_requested_at": now_iso,
            "return_requested_by": current_user.id,
            "return_requested_by_type": actor,
            "return_reason": reason,
        })
        description = f"Return requested by {name}"
    else:
        verb = payload.action.value
        if not booking.get("return_requested"):
            raise HTTPException(400, f"No return request to {verb}")
        if booking.get("return_approved"):
            raise HTTPException(400, "Return already approved")
        if actor != "admin" and actor == booking.get("return_requested_by_type"):
            raise HTTPException(403, "Cannot respond to your own return request")

        if payload.action == ReturnAction.approve:
            update.update({
                "status": BookingStatus.completed.value,
                "return_approved": True,
                "return_approved_at": now_iso,
                "return_approved_by": current_user.id,
                "return_approved_by_type": actor,
                "completed_at": now_iso,
            })
            description = f"Return approved by {name}. Booking completed."
        else:
            update.update({
                "return_requested": False,
                "return_rejected_at": now_iso,
                "return_rejected_by": current_user.id,
                "return_rejected_by_type": actor,
                "return_rejection_reason": reason,
            })
            description = f"Return rejected by {name}"

    if payload.reason and payload.action != ReturnAction.approve:
        description += f": {payload.reason}"

    _update_booking(client, payload.booking_id, update)

    if payload.action == ReturnAction.approve:
        release_vehicle(client, booking, now_iso)

    history_action = {
        ReturnAction.request: "return_requested",
        ReturnAction.approve: "return_approved",
        ReturnAction.reject: "return_rejected",
    }[payload.action]
    record_booking_history(
        client,
        payload.booking_id,
        history_action,
        current_user.id,
        actor,
        description,
        details={"reason": reason, "original_return_reason": booking.get("return_reason")},
    )

    if payload.action == ReturnAction.request:
        # The other party answers the request
        recipient_type = "partner" if actor == "driver" else "driver"
        create_notification(
            client,
            "return_requested",
            "Return Requested",
            description,
            recipient_id=booking.get(f"{recipient_type}_id"),
            recipient_type=recipient_type,
            data={"booking_id": payload.booking_id},
            priority="high",
        )
        create_notification(
            client,
            "return_requested_admin",
            "Return Requested",
            f"Return requested for booking {payload.booking_id} by {name} ({actor})",
            data={"booking_id": payload.booking_id, "requester_type": actor},
        )
    else:
        recipient_type = booking.get("return_requested_by_type") or "driver"
        if recipient_type not in ("driver", "partner"):
            recipient_type = "driver"
        create_notification(
            client,
            history_action,
            f"Return {'Approved' if payload.action == ReturnAction.approve else 'Rejected'}",
            description,
            recipient_id=booking.get(f"{recipient_type}_id"),
            recipient_type=recipient_type,
            data={"booking_id": payload.booking_id},
            priority="high",
        )

    return {
        "success": True,
        "status": update.get("status", booking.get("status")),
        "message": f"Return {history_action.split('_')[1]} successfully",
    }


# -----------------------------------------------------
# FINISH
# -----------------------------------------------------
@router.post("/finish", summary="Complete a booking and settle the final amount")
def finish_booking(
    payload: FinishBooking,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)
    actor = booking_actor(client, booking, current_user)

    if booking.get("status") not in {s.value for s in FINISHABLE_STATUSES}:
        raise HTTPException(400, f"Cannot finish booking with status: {booking.get('status')}")

    now = utc_now()
    now_iso = now.isoformat()
    settlement = final_settlement(booking, paid_total(client, payload.booking_id), now)
    final_amount = settlement["final_amount"]
    outstanding = settlement["outstanding_amount"]
    name = person_name(client, current_user.id)

    _update_booking(client, payload.booking_id, {
        "status": BookingStatus.completed.value,
        "finished_at": now_iso,
        "finished_by": current_user.id,
        "finished_by_type": actor,
        "final_notes": payload.final_notes,
        "final_mileage": payload.final_mileage,
        "final_fuel_level": payload.final_fuel_level,
        "total_days": settlement["total_days"],
        "total_weeks": settlement["total_weeks"],
        "final_amount": final_amount,
        "outstanding_amount": outstanding,
        "payment_status": "outstanding" if outstanding > 0 else "completed",
        "updated_at": now_iso,
    })

    release_vehicle(client, booking, now_iso, final_mileage=payload.final_mileage)

    description = (
        f"Booking finished by {name}. Total: {settlement['total_days']} days, "
        f"{settlement['total_weeks']} weeks. Final amount: £{final_amount}"
    )
    if outstanding > 0:
        description += f" (Outstanding: £{outstanding})"
    record_booking_history(
        client,
        payload.booking_id,
        "booking_finished",
        current_user.id,
        actor,
        description,
        details={
            "final_notes": payload.final_notes,
            "final_mileage": payload.final_mileage,
            "final_fuel_level": payload.final_fuel_level,
            **settlement,
        },
    )

    if outstanding > 0:
        try:
            client.table("payment_instructions").insert({
                "booking_id": payload.booking_id,
                "driver_id": booking.get("driver_id"),
                "partner_id": booking.get("partner_id"),
                "vehicle_reg": (booking.get("car") or {}).get("registration_number") or booking.get("car_plate") or "",
                "amount": outstanding,
                "type": InstructionType.final_payment.value,
                "method": booking.get("payment_method") or "bank_transfer",
                "status": InstructionStatus.pending.value,
                "reason": "Final payment for completed booking",
                "created_at": now_iso,
                "updated_at": now_iso,
            }).execute()
        except Exception as e:
            logger.warning(f"Failed to create final payment for {payload.booking_id}: {extract_supabase_error(e)}")

    record_transaction(
        client,
        booking,
        "income",
        "Vehicle Rental",
        final_amount,
        "Final payment for completed booking",
        now_iso,
        source="booking_completion",
        booking_details=settlement,
    )

    notification_data = {
        "booking_id": payload.booking_id,
        "final_amount": final_amount,
        "outstanding_amount": outstanding,
    }
    driver_message = f"Your booking for {car_label(booking)} has been completed."
    if outstanding > 0:
        driver_message += f" Outstanding amount: £{outstanding}"
    create_notification(
        client, "booking_finished", "Booking Completed", driver_message,
        recipient_id=booking.get("driver_id"), recipient_type="driver", data=notification_data,
    )
    create_notification(
        client, "booking_finished", "Booking Completed",
        f"Booking {payload.booking_id} has been completed by {name}. Final amount: £{final_amount}",
        recipient_id=booking.get("partner_id"), recipient_type="partner", data=notification_data,
    )
    create_notification(
        client, "booking_finished_admin", "Booking Completed",
        f"Booking {payload.booking_id} has been completed by {name} ({actor}). Final amount: £{final_amount}",
        data={**notification_data, "performer_type": actor}, priority="low",
    )

    logger.info(f"Booking {payload.booking_id} finished by {actor} {current_user.id}")

    return {
        "success": True,
        "message": "Booking completed successfully",
        "final_amount": final_amount,
        "outstanding_amount": outstanding,
        "total_days": settlement["total_days"],
        "total_weeks": settlement["total_weeks"],
    }


# -----------------------------------------------------
# ISSUES
# -----------------------------------------------------
def generate_issue_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"issue_{int(time.time() * 1000)}_{suffix}"


@router.post("/report-issue", summary="Report a problem with a booked vehicle")
def report_issue(
    payload: IssueReport,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)
    actor = booking_actor(client, booking, current_user)

    now_iso = utc_now().isoformat()
    name = person_name(client, current_user.id)
    issue = {
        "id": generate_issue_id(),
        "type": payload.issue_type.value,
        "description": payload.description,
        "severity": payload.severity.value,
        "status": "open",
        "reported_by": current_user.id,
        "reported_by_type": actor,
        "reported_by_name": name,
        "reported_at": now_iso,
        "images": payload.images,
        "resolved_at": None,
        "resolved_by": None,
        "resolution_notes": None,
        "updates": [],
    }

    _update_booking(client, payload.booking_id, {
        "issues": [*(booking.get("issues") or []), issue],
        "updated_at": now_iso,
    })

    description = f"{payload.issue_type.value.capitalize()} issue reported by {name}: {payload.description}"
    record_booking_history(
        client,
        payload.booking_id,
        "issue_reported",
        current_user.id,
        actor,
        description,
        details={
            "issue_id": issue["id"],
            "issue_type": payload.issue_type.value,
            "severity": payload.severity.value,
            "vehicle": car_label(booking),
        },
    )

    priority = "high" if payload.severity in (IssueSeverity.high, IssueSeverity.critical) else "medium"
    data = {"booking_id": payload.booking_id, "issue_id": issue["id"], "severity": payload.severity.value}
    if actor != "partner":
        create_notification(
            client, "issue_reported", "Vehicle Issue Reported", description,
            recipient_id=booking.get("partner_id"), recipient_type="partner", data=data, priority=priority,
        )
    if actor != "driver":
        create_notification(
            client, "issue_reported", "Vehicle Issue Reported", description,
            recipient_id=booking.get("driver_id"), recipient_type="driver", data=data, priority=priority,
        )
    create_notification(
        client, "issue_reported_admin", "Vehicle Issue Reported",
        f"{description} (booking {payload.booking_id})", data=data, priority=priority,
    )

    return {"success": True, "issue_id": issue["id"], "message": "Issue reported successfully"}


# -----------------------------------------------------
# VEHICLE RELEASE / CHANGE
# -----------------------------------------------------
def _load_vehicle(client, vehicle_id: str) -> Optional[dict]:
    try:
        return first_row(client.table("vehicles").select("*").eq("id", vehicle_id).limit(1).execute())
    except Exception as e:
        supabase_error(e, "Failed to load vehicle")


def vehicle_summary(vehicle_id: str, vehicle: dict) -> dict:
    return {
        "id": vehicle_id,
        "make": vehicle.get("make"),
        "model": vehicle.get("model"),
        "registration_number": vehicle.get("registration_number"),
    }


@router.post("/release-vehicle", summary="Detach the vehicle from a booking")
def release_booking_vehicle(
    payload: VehicleRelease,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)
    actor = booking_actor(client, booking, current_user)

    if booking.get("status") not in {s.value for s in VEHICLE_RELEASE_STATUSES}:
        raise HTTPException(400, f"Cannot release vehicle for booking with status: {booking.get('status')}")

    vehicle_id = booking_vehicle_id(booking)
    if not vehicle_id:
        raise HTTPException(400, "No vehicle assigned to this booking")

    vehicle = _load_vehicle(client, vehicle_id)
    vehicle_name = f"{(vehicle or {}).get('make') or ''} {(vehicle or {}).get('model') or ''}".strip() or "Unknown"

    now_iso = utc_now().isoformat()
    reason = payload.reason or "No reason provided"
    name = person_name(client, current_user.id)

    _update_booking(client, payload.booking_id, {
        "vehicle_id": None,
        "current_vehicle_id": None,
        "car_id": None,
        "car": None,
        "car_name": None,
        "car_image": None,
        "car_plate": None,
        "vehicle_released_at": now_iso,
        "vehicle_released_by": current_user.id,
        "vehicle_released_by_type": actor,
        "vehicle_release_reason": reason,
        "updated_at": now_iso,
    })

    release_vehicle(client, booking, now_iso)

    suffix = f". Reason: {payload.reason}" if payload.reason else ""
    record_booking_history(
        client,
        payload.booking_id,
        "vehicle_released",
        current_user.id,
        actor,
        f"Vehicle released by {name}" + (f": {payload.reason}" if payload.reason else ""),
        details={
            "performer_name": name,
            "vehicle_id": vehicle_id,
            "vehicle_name": vehicle_name,
            "vehicle_registration": (vehicle or {}).get("registration_number") or "Unknown",
            "reason": reason,
        },
    )

    data = {"booking_id": payload.booking_id, "vehicle_name": vehicle_name, "reason": payload.reason}
    create_notification(
        client, "vehicle_released", "Vehicle Released",
        f"The vehicle for your booking has been released{suffix}.",
        recipient_id=booking.get("driver_id"), recipient_type="driver", data=data,
    )
    create_notification(
        client, "vehicle_released", "Vehicle Released",
        f"Vehicle has been released from booking {payload.booking_id} by {name}{suffix}",
        recipient_id=booking.get("partner_id"), recipient_type="partner",
        data={**data, "performer_name": name},
    )
    create_notification(
        client, "vehicle_released_admin", "Vehicle Released",
        f"Vehicle has been released from booking {payload.booking_id} by {name} ({actor}){suffix}",
        data={**data, "performer_name": name, "performer_type": actor}, priority="low",
    )

    logger.info(f"Vehicle {vehicle_id} released from booking {payload.booking_id} by {actor} {current_user.id}")

    return {
        "success": True,
        "message": "Vehicle released successfully",
        "vehicle": vehicle_summary(vehicle_id, vehicle) if vehicle else None,
    }


def vehicle_adjustment(
    booking: dict,
    old_rate: float,
    new_rate: float,
    paid: float,
    adjustment_type: AdjustmentType,
    now: datetime,
) -> dict:
    """
    Charge (positive) or refund (negative) for moving a booking to a vehicle
    with a different weekly rate.

    prorated    -> daily difference over the paid days not yet used
    immediate   -> one week's difference
    next_cycle  -> nothing now; the new rate applies from the next instruction

    Paid days are whole paid weeks at the old rate. Days are only counted as
    used once the booking is active.
    """
    difference = new_rate - old_rate
    signed = f"{'+' if difference >= 0 else '-'}£{abs(difference):g}/week"

    paid_days = math.ceil(paid / old_rate) * 7 if old_rate > 0 else 0
    days_used = 0
    if booking.get("status") == BookingStatus.active.value:
        start = parse_iso_datetime(booking.get("start_date"))
        if start:
            days_used = max(0, math.ceil((now - start) / timedelta(days=1)))
    remaining_days = max(0, paid_days - days_used)

    if adjustment_type == AdjustmentType.prorated:
        amount = difference / 7 * remaining_days
        reason = f"Prorated rate adjustment: {remaining_days} paid days remaining at {signed}"
    elif adjustment_type == AdjustmentType.immediate:
        amount = difference
        reason = f"Immediate rate adjustment: {signed}"
    else:
        amount = 0
        reason = f"Rate change will apply to next billing cycle: {signed}"

    return {
        "adjustment_amount": round(amount, 2),
        "adjustment_reason": reason,
        "rate_difference": difference,
        "days_used": days_used,
        "remaining_days": remaining_days,
    }


def _adjustment_instruction(client, booking: dict, amount: float, reason: str, vehicle_reg: str, now_iso: str):
    """A payment instruction for the driver to pay, or a refund to them when negative."""
    if amount > 0:
        kind, method = InstructionType.vehicle_change, booking.get("payment_method") or "bank_transfer"
    else:
        kind, method = InstructionType.refund, "adjustment"

    try:
        client.table("payment_instructions").insert({
            "booking_id": booking["id"],
            "driver_id": booking.get("driver_id"),
            "partner_id": booking.get("partner_id"),
            "vehicle_reg": vehicle_reg,
            "amount": abs(amount),
            "type": kind.value,
            "method": method,
            "status": InstructionStatus.pending.value,
            "reason": reason,
            "created_at": now_iso,
            "updated_at": now_iso,
        }).execute()
    except Exception as e:
        logger.warning(f"Failed to create vehicle change instruction for {booking['id']}: {extract_supabase_error(e)}")


@router.post("/change-vehicle", summary="Move a booking onto another vehicle")
def change_vehicle(
    payload: VehicleChange,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)

    actor = booking_actor(client, booking, current_user)
    if actor == "driver":
        raise HTTPException(403, "Only the partner can change the vehicle")

    if booking.get("status") not in {s.value for s in VEHICLE_CHANGE_STATUSES}:
        raise HTTPException(400, f"Cannot change vehicle for booking with status: {booking.get('status')}")

    new_vehicle = _load_vehicle(client, payload.new_vehicle_id)
    if not new_vehicle:
        raise HTTPException(404, "New vehicle not found")
    if new_vehicle.get("status") != VehicleStatus.available.value:
        raise HTTPException(400, "Selected vehicle is not available")

    now = utc_now()
    now_iso = now.isoformat()
    old_vehicle_id = booking_vehicle_id(booking)
    old_rate = float(booking.get("weekly_rate") or (booking.get("car") or {}).get("price_per_week") or 0)
    new_rate = float(new_vehicle.get("price_per_week") or 0)

    adjustment = vehicle_adjustment(
        booking, old_rate, new_rate, paid_total(client, payload.booking_id), payload.adjustment_type, now
    )
    amount = adjustment["adjustment_amount"]

    name = person_name(client, current_user.id)
    car = car_fields(payload.new_vehicle_id, new_vehicle)
    old_label = car_label(booking)
    new_label = car["car_name"] or "vehicle"
    plate = new_vehicle.get("registration_number") or ""
    charge = f" ({'+' if amount > 0 else '-'}£{abs(amount)})" if amount else ""

    history_entry = {
        "vehicle_id": payload.new_vehicle_id,
        "assigned_at": now_iso,
        "assigned_by": current_user.id,
        "assigned_by_type": actor,
        "assigned_by_name": name,
        "reason": payload.reason,
        "status": "active",
        "previous_vehicle_id": old_vehicle_id,
    }

    _update_booking(client, payload.booking_id, {
        "vehicle_id": payload.new_vehicle_id,
        "current_vehicle_id": payload.new_vehicle_id,
        "car_id": payload.new_vehicle_id,
        **car,
        "weekly_rate": new_rate,
        "vehicle_history": [*(booking.get("vehicle_history") or []), history_entry],
        "updated_at": now_iso,
    })

    if old_vehicle_id and old_vehicle_id != payload.new_vehicle_id:
        release_vehicle(client, booking, now_iso)
    set_vehicle_status(
        client, {"id": payload.booking_id, "vehicle_id": payload.new_vehicle_id}, VehicleStatus.booked, now_iso
    )

    if amount:
        _adjustment_instruction(client, booking, amount, adjustment["adjustment_reason"], plate, now_iso)

    record_booking_history(
        client,
        payload.booking_id,
        "vehicle_assigned",
        current_user.id,
        actor,
        f"Vehicle changed from {old_label} to {new_label} by {name}. Reason: {payload.reason}{charge}",
        details={
            "old_vehicle_id": old_vehicle_id,
            "new_vehicle_id": payload.new_vehicle_id,
            "old_vehicle": old_label,
            "new_vehicle": f"{new_label} ({plate})",
            "reason": payload.reason,
            "performer_name": name,
            "old_weekly_rate": old_rate,
            "new_weekly_rate": new_rate,
            **adjustment,
        },
    )

    data = {
        "booking_id": payload.booking_id,
        "old_vehicle": old_label,
        "new_vehicle": new_label,
        "adjustment_amount": amount,
    }
    create_notification(
        client, "vehicle_assigned", "Vehicle Changed",
        f"Your assigned vehicle has been changed to {new_label} ({plate}). Reason: {payload.reason}{charge}",
        recipient_id=booking.get("driver_id"), recipient_type="driver", data=data, priority="high",
    )
    create_notification(
        client, "vehicle_assigned_admin", "Vehicle Assignment Changed",
        f"Partner {name} changed vehicle for booking {payload.booking_id} from {old_label} to {new_label}",
        data={**data, "partner_name": name},
    )

    logger.info(f"Booking {payload.booking_id} moved to vehicle {payload.new_vehicle_id} by {actor} {current_user.id}")

    return {
        "success": True,
        "message": "Vehicle assigned successfully",
        "new_vehicle": vehicle_summary(payload.new_vehicle_id, new_vehicle),
        "adjustment_amount": amount,
        "adjustment_reason": adjustment["adjustment_reason"],
    }


# -----------------------------------------------------
# DEADLINES
# -----------------------------------------------------
@dataclass(frozen=True)
class DeadlineRule:
    status: BookingStatus
    column: str
    expired: BookingStatus
    action: str
    reason: str
    title: str
    message: str
    frees_vehicle: bool = False


DEADLINE_RULES = (
    DeadlineRule(
        BookingStatus.pending_partner_approval, "partner_acceptance_deadline", BookingStatus.auto_rejected,
        "booking_auto_rejected", "Partner acceptance deadline exceeded", "Booking Auto-Rejected",
        "Your booking has been automatically rejected because the partner did not respond within the required time.",
        frees_vehicle=True,
    ),
    DeadlineRule(
        BookingStatus.pending_payment, "payment_deadline", BookingStatus.payment_expired,
        "payment_expired", "Payment deadline exceeded", "Payment Deadline Expired",
        "Your payment deadline has expired. Please contact support to resolve this issue.",
    ),
    DeadlineRule(
        BookingStatus.pending_insurance_upload, "insurance_upload_deadline", BookingStatus.insurance_expired,
        "insurance_expired", "Insurance upload deadline exceeded", "Insurance Upload Deadline Expired",
        "Your insurance upload deadline has expired. Please contact support to resolve this issue.",
    ),
    DeadlineRule(
        BookingStatus.active, "end_date", BookingStatus.overdue,
        "booking_overdue", "Booking end date exceeded", "Booking Overdue",
        "Your booking has exceeded its end date. Please contact your partner to arrange vehicle return.",
    ),
)


@router.post("/check-deadlines", summary="Expire a booking whose deadline has passed")
def check_deadlines(
    payload: BookingRef,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    booking = load_booking(client, payload.booking_id)
    booking_actor(client, booking, current_user)

    now = utc_now()
    now_iso = now.isoformat()
    results = {"checks_performed": [], "actions_taken": [], "notifications_sent": []}

    rule = next((r for r in DEADLINE_RULES if r.status.value == booking.get("status")), None)
    deadline = parse_iso_datetime(booking.get(rule.column)) if rule else None

    if rule and deadline:
        results["checks_performed"].append(rule.column)

        if now > deadline:
            update = {
                "status": rule.expired.value,
                f"{rule.expired.value}_at": now_iso,
                "updated_at": now_iso,
            }
            if rule.expired == BookingStatus.auto_rejected:
                update["auto_rejection_reason"] = rule.reason
            _update_booking(client, payload.booking_id, update)
            results["actions_taken"].append(rule.action)

            record_booking_history(
                client,
                payload.booking_id,
                rule.action,
                "system",
                "system",
                rule.reason,
                details={
                    "reason": rule.reason,
                    "deadline": booking.get(rule.column),
                    "exceeded_by_ms": int((now - deadline).total_seconds() * 1000),
                },
            )
            if rule.frees_vehicle:
                release_vehicle(client, booking, now_iso)

            if create_notification(
                client, rule.action, rule.title, rule.message,
                recipient_id=booking.get("driver_id"), recipient_type="driver",
                data={"booking_id": payload.booking_id, "reason": rule.reason}, priority="high",
            ):
                results["notifications_sent"].append("driver_notification")
            if create_notification(
                client, f"{rule.action}_admin", rule.title,
                f"Booking {payload.booking_id}: {rule.reason}.",
                data={"booking_id": payload.booking_id, "reason": rule.reason}, priority="low",
            ):
                results["notifications_sent"].append("admin_notification")

            logger.info(f"Booking {payload.booking_id} moved to {rule.expired.value}: {rule.reason}")

        elif rule.expired == BookingStatus.auto_rejected and deadline - now <= REMINDER_WINDOW:
            hours_left = round((deadline - now) / timedelta(hours=1))
            if create_notification(
                client,
                "partner_acceptance_reminder",
                "URGENT: Booking Response Required",
                f"You have {hours_left} hours to respond to booking {payload.booking_id}. "
                "Please accept or reject the booking.",
                recipient_id=booking.get("partner_id"),
                recipient_type="partner",
                data={"booking_id": payload.booking_id, "hours_remaining": hours_left},
                priority="high",
            ):
                results["notifications_sent"].append("partner_reminder")

    return {"success": True, "booking_id": payload.booking_id, **results}
