# routers/payments.py

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from core.activity_log import create_notification, record_booking_history
from core.booking_helpers import ensure_booking_partner, record_transaction
from core.errors import supabase_error, extract_supabase_error
from core.logging_config import logger
from core.partners import partner_scope, ensure_partner_access, ensure_self_or_admin
from core.permission_helpers import is_admin
from core.supabase_client import get_supabase_client
from core.supabase_helpers import first_row, rows
from core.utils import parse_iso_datetime, utc_now, utc_now_iso
from dependencies.auth import get_current_user, CurrentUser
from models.enums import BookingStatus, InstructionStatus, InstructionType, PaymentMethod
from models.partner import ConfirmBankTransfer, ConfirmReceived, MarkPaymentSent, RefundDeposit, RejectRefund


router = APIRouter(
    prefix="/api",
    tags=["Payments"],
)

PARTNER_ACCEPTANCE_WINDOW = timedelta(hours=2)
REFUNDABLE_STATUSES = (
    InstructionStatus.pending.value,
    InstructionStatus.deposit_refund_pending.value,
    InstructionStatus.sent.value,
)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def _instruction(client, instruction_id: str) -> dict:
    try:
        instruction = first_row(
            client.table("payment_instructions").select("*").eq("id", instruction_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to load payment instruction")

    if not instruction:
        raise HTTPException(404, "Instruction not found")
    return instruction


def _ledger_booking(client, instruction: dict) -> dict:
    """Booking row for ledger snapshots; the instruction's parties win."""
    booking_id = instruction.get("booking_id")
    try:
        booking = first_row(client.table("bookings").select("*").eq("id", booking_id).limit(1).execute())
    except Exception as e:
        logger.warning(f"Failed to load booking {booking_id}: {extract_supabase_error(e)}")
        booking = None

    return {
        **(booking or {}),
        "id": booking_id,
        "driver_id": instruction.get("driver_id"),
        "partner_id": instruction.get("partner_id"),
        "payment_method": instruction.get("method"),
    }


# -----------------------------------------------------
# PARTNER: PAYMENT INSTRUCTIONS
# -----------------------------------------------------
@router.get("/partner/payments/list", summary="Payment instructions for the caller's partner")
def list_instructions(scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("payment_instructions")
            .select("*")
            .eq("partner_id", partner_id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch payment instructions")

    return {"success": True, "instructions": rows(result)}


@router.get("/partner/payments/stats", summary="Aggregated payment figures")
def instruction_stats(scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = client.rpc("payment_instruction_stats", {"p_partner": partner_id}).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch payment stats")

    return {"success": True, "stats": first_row(result) or {}}


@router.post("/partner/payments/confirm-bank-transfer", summary="Confirm a received bank transfer")
def confirm_bank_transfer(
    payload: ConfirmBankTransfer,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()

    try:
        booking = first_row(
            client.table("bookings").select("id, partner_id").eq("id", payload.booking_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to load booking")

    if not booking:
        raise HTTPException(404, "Booking not found")

    ensure_partner_access(client, current_user, booking.get("partner_id"))

    now = utc_now_iso()

    try:
        payment = first_row(
            client.table("payments")
            .update({"status": "COMPLETED", "updated_at": now})
            .eq("id", payload.payment_id)
            .eq("booking_id", payload.booking_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to update payment status")

    if not payment:
        raise HTTPException(404, "Payment not found")

    try:
        client.table("bookings").update(
            {"payment_status": "confirmed", "updated_at": now}
        ).eq("id", payload.booking_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update booking status")

    try:
        client.table("payment_instructions").update(
            {"status": InstructionStatus.received.value, "updated_at": now}
        ).eq("booking_id", payload.booking_id).eq("status", InstructionStatus.pending.value).execute()
    except Exception as e:
        logger.warning(f"Failed to update payment instructions for {payload.booking_id}: {extract_supabase_error(e)}")

    amount = payment.get("amount")
    currency = (payment.get("currency") or "gbp").upper()

    record_booking_history(
        client,
        payload.booking_id,
        "bank_transfer_confirmed",
        current_user.id,
        payload.confirmed_by_type,
        f"Bank transfer payment confirmed by {payload.confirmed_by_type}",
        details={
            "paymentId": payload.payment_id,
            "amount": amount,
            "currency": currency,
            "confirmed_at": now,
        },
    )
    create_notification(
        client,
        "payment_confirmed",
        "Payment Confirmed",
        f"Your bank transfer payment of {currency} {amount} has been confirmed.",
        recipient_id=payment.get("driver_id"),
        recipient_type="driver",
        data={
            "bookingId": payload.booking_id,
            "paymentId": payload.payment_id,
            "amount": amount,
            "currency": currency,
        },
    )

    return {
        "success": True,
        "paymentId": payment.get("id"),
        "bookingId": payload.booking_id,
        "message": "Bank transfer payment confirmed successfully",
    }


# -----------------------------------------------------
# DRIVER: MARK A TRANSFER AS SENT
# -----------------------------------------------------
def _promote_to_partner_approval(client, instruction: dict, driver_id: str):
    """First transfer sent: the booking now waits on the partner, with a deadline."""
    booking_id = instruction.get("booking_id")
    try:
        booking = first_row(client.table("bookings").select("id, status").eq("id", booking_id).limit(1).execute())
    except Exception as e:
        logger.warning(f"Failed to load booking {booking_id}: {extract_supabase_error(e)}")
        return

    if not booking or booking.get("status") != BookingStatus.pending_payment.value:
        return

    now = utc_now()
    deadline = (now + PARTNER_ACCEPTANCE_WINDOW).isoformat()

    try:
        client.table("bookings").update({
            "status": BookingStatus.pending_partner_approval.value,
            "partner_acceptance_deadline": deadline,
            "updated_at": now.isoformat(),
        }).eq("id", booking_id).execute()
    except Exception as e:
        logger.warning(f"Failed to promote booking {booking_id}: {extract_supabase_error(e)}")
        return

    record_booking_history(
        client,
        booking_id,
        "first_payment_sent",
        driver_id,
        "driver",
        f"Driver marked first payment of £{instruction.get('amount')} as sent.",
        details={"amount": instruction.get("amount"), "instruction_id": instruction.get("id")},
    )
    create_notification(
        client,
        "new_booking",
        "New Booking Request",
        f"Payment sent. Please approve or reject booking for {instruction.get('vehicle_reg')}.",
        recipient_id=instruction.get("partner_id"),
        recipient_type="partner",
        data={
            "booking_id": booking_id,
            "instruction_id": instruction.get("id"),
            "amount": instruction.get("amount"),
            "partner_acceptance_deadline": deadline,
        },
        priority="high",
    )
    logger.info(f"Booking {booking_id} awaiting partner approval until {deadline}")


@router.post("/payments/mark-sent", summary="Driver marks a bank transfer as sent")
def mark_sent(
    payload: MarkPaymentSent,
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, payload.driver_id)
    client = _client()

    instruction = _instruction(client, payload.instruction_id)

    if instruction.get("driver_id") != payload.driver_id:
        raise HTTPException(403, "Forbidden")

    if instruction.get("method") != PaymentMethod.bank_transfer.value:
        raise HTTPException(400, "Only manual transfers can be marked sent")

    if instruction.get("status") == InstructionStatus.sent.value:
        raise HTTPException(400, "Already marked sent")

    due = parse_iso_datetime(instruction.get("next_due_date"))
    is_overdue = due is not None and due < utc_now()
    if not is_overdue and instruction.get("status") == InstructionStatus.pending.value:
        raise HTTPException(400, "Payment is not due yet")

    now = utc_now_iso()

    try:
        client.table("payment_instructions").update({
            "status": InstructionStatus.sent.value,
            "last_sent_at": now,
            "updated_at": now,
        }).eq("id", payload.instruction_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update instruction status")

    try:
        client.table("transactions").insert({
            "booking_id": instruction.get("booking_id"),
            "driver_id": instruction.get("driver_id"),
            "partner_id": instruction.get("partner_id"),
            "amount": instruction.get("amount"),
            "type": "payment_sent",
            "status": "pending_confirmation",
            "method": instruction.get("method"),
            "description": f"Payment marked as sent for {instruction.get('type')}",
            "category": "Booking Revenue",
            "created_at": now,
            "updated_at": now,
        }).execute()
    except Exception as e:
        logger.warning(f"Failed to record transaction for {payload.instruction_id}: {extract_supabase_error(e)}")

    create_notification(
        client,
        "payment_sent",
        "Payment Marked as Sent",
        f"Driver has marked payment of £{instruction.get('amount')} as sent for {instruction.get('vehicle_reg')}",
        recipient_id=instruction.get("partner_id"),
        recipient_type="partner",
        data={
            "instruction_id": payload.instruction_id,
            "booking_id": instruction.get("booking_id"),
            "amount": instruction.get("amount"),
            "vehicle_reg": instruction.get("vehicle_reg"),
        },
    )

    _promote_to_partner_approval(client, instruction, payload.driver_id)

    return {
        "success": True,
        "message": "Payment marked as sent successfully",
        "instruction": {"id": payload.instruction_id, "status": InstructionStatus.sent.value, "last_sent_at": now},
    }


# -----------------------------------------------------
# PARTNER: CONFIRM A TRANSFER ARRIVED
# -----------------------------------------------------
@router.post("/payments/confirm-received", summary="Partner confirms a manual transfer arrived")
def confirm_received(
    payload: ConfirmReceived,
    current_user: CurrentUser = Depends(get_current_user),
):
    if not payload.instruction_id and not payload.booking_id:
        raise HTTPException(400, "Missing instructionId or bookingId")

    client = _client()

    if payload.instruction_id:
        instruction = _instruction(client, payload.instruction_id)
    else:
        try:
            instruction = first_row(
                client.table("payment_instructions")
                .select("*")
                .eq("booking_id", payload.booking_id)
                .eq("type", InstructionType.deposit.value)
                .eq("status", InstructionStatus.sent.value)
                .limit(1)
                .execute()
            )
        except Exception as e:
            supabase_error(e, "Failed to load payment instruction")
        if not instruction:
            raise HTTPException(404, "No pending deposit instruction found for this booking")

    ensure_booking_partner(client, current_user, instruction.get("partner_id"))

    if instruction.get("method") != PaymentMethod.bank_transfer.value:
        raise HTTPException(400, "Only manual transfers require confirmation")
    if instruction.get("status") != InstructionStatus.sent.value:
        raise HTTPException(400, "Payment not marked sent yet")

    instruction_id = instruction["id"]
    now = utc_now()
    now_iso = now.isoformat()
    one_off = instruction.get("type") == InstructionType.deposit.value or instruction.get("frequency") == "one_off"

    if one_off:
        next_due: Optional[str] = None
        update = {"status": InstructionStatus.deposit_received.value, "updated_at": now_iso}
    else:
        # Weekly rent rolls on to the following week
        due = parse_iso_datetime(instruction.get("next_due_date")) or now
        next_due = (due + timedelta(weeks=1)).isoformat()
        update = {"status": InstructionStatus.pending.value, "next_due_date": next_due, "updated_at": now_iso}

    try:
        client.table("payment_instructions").update(update).eq("id", instruction_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update instruction status")

    amount = instruction.get("amount")
    vehicle_reg = instruction.get("vehicle_reg")
    booking_id = instruction.get("booking_id")
    ledger_booking = _ledger_booking(client, instruction)
    label = "Deposit" if one_off else "Weekly payment"

    record_transaction(
        client, ledger_booking, "income", "Booking Revenue", amount,
        f"{label} received for {vehicle_reg}", now_iso, source="driver", instruction_id=instruction_id,
    )
    record_transaction(
        client, ledger_booking, "expense", "Vehicle Rental", amount,
        f"{label} paid for {vehicle_reg}", now_iso, source="partner", instruction_id=instruction_id,
    )

    try:
        client.table("bookings").update({
            "last_payment_date": now_iso,
            "payment_status": "active",
            "updated_at": now_iso,
        }).eq("id", booking_id).execute()
    except Exception as e:
        logger.warning(f"Failed to update payment status on {booking_id}: {extract_supabase_error(e)}")

    record_booking_history(
        client,
        booking_id,
        "deposit_received" if one_off else "weekly_payment_received",
        current_user.id,
        "admin" if is_admin(current_user) else "partner",
        f"{label} of £{amount} received for {vehicle_reg}",
        details={"amount": amount, "instruction_id": instruction_id, "received_at": now_iso},
    )
    data = {"instruction_id": instruction_id, "booking_id": booking_id, "amount": amount}
    create_notification(
        client,
        "payment_received",
        "Payment Received",
        f"Partner has confirmed receipt of your {label.lower()} (£{amount}) for {vehicle_reg}.",
        recipient_id=instruction.get("driver_id"),
        recipient_type="driver",
        data=data,
    )
    create_notification(
        client,
        "payment_received",
        "Payment Received",
        f"{label} (£{amount}) for {vehicle_reg} has been confirmed as received.",
        recipient_id=instruction.get("partner_id"),
        recipient_type="partner",
        data=data,
    )

    return {"success": True, "nextDue": next_due, "message": "Payment confirmed successfully"}


# -----------------------------------------------------
# PARTNER: DEPOSIT REFUNDS
# -----------------------------------------------------
@router.post("/partner/payments/refund-deposit", summary="Refund a driver's deposit")
def refund_deposit(
    payload: RefundDeposit,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    instruction = _instruction(client, payload.instruction_id)
    ensure_booking_partner(client, current_user, instruction.get("partner_id"))

    if instruction.get("type") != InstructionType.deposit.value:
        raise HTTPException(400, "Only deposit instructions are refundable")
    if instruction.get("status") == InstructionStatus.deposit_refunded.value:
        raise HTTPException(400, "Deposit already refunded")

    try:
        existing = rows(
            client.table("transactions")
            .select("id")
            .eq("instruction_id", payload.instruction_id)
            .eq("category", "Deposit Refund")
            .eq("type", "expense")
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.warning(f"Failed to check refund ledger for {payload.instruction_id}: {extract_supabase_error(e)}")
        existing = []

    now_iso = utc_now_iso()

    try:
        client.table("payment_instructions").update({
            "status": InstructionStatus.deposit_refunded.value,
            "refunded_amount": payload.refund_amount,
            "refunded_at": now_iso,
            "updated_at": now_iso,
        }).eq("id", payload.instruction_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update instruction status")

    # Mark the deposit income rows refunded
    try:
        client.table("transactions").update({"status": "refunded", "updated_at": now_iso}).eq(
            "instruction_id", payload.instruction_id
        ).eq("type", "income").execute()
    except Exception as e:
        logger.warning(f"Failed to mark deposit income refunded for {payload.instruction_id}: {extract_supabase_error(e)}")

    vehicle_reg = instruction.get("vehicle_reg")
    booking_id = instruction.get("booking_id")
    if not existing:
        ledger_booking = _ledger_booking(client, instruction)
        record_transaction(
            client, ledger_booking, "expense", "Deposit Refund", payload.refund_amount,
            f"Deposit refund to driver for {vehicle_reg}", now_iso, source="partner",
            instruction_id=payload.instruction_id,
        )
        record_transaction(
            client, ledger_booking, "income", "Deposit Refund", payload.refund_amount,
            f"Deposit refund received for {vehicle_reg}", now_iso, source="partner",
            instruction_id=payload.instruction_id,
        )

    try:
        client.table("bookings").update({
            "deposit_refunded": payload.refund_amount,
            "updated_at": now_iso,
        }).eq("id", booking_id).execute()
    except Exception as e:
        logger.warning(f"Failed to record deposit refund on {booking_id}: {extract_supabase_error(e)}")

    record_booking_history(
        client,
        booking_id,
        "deposit_refunded",
        current_user.id,
        "admin" if is_admin(current_user) else "partner",
        f"Deposit refund of £{payload.refund_amount} issued",
        details={"amount": payload.refund_amount, "instruction_id": payload.instruction_id, "refunded_at": now_iso},
    )
    create_notification(
        client,
        "deposit_refunded",
        "Deposit Refunded",
        f"Your deposit (£{payload.refund_amount}) has been refunded by the partner.",
        recipient_id=instruction.get("driver_id"),
        recipient_type="driver",
        data={"instruction_id": payload.instruction_id, "booking_id": booking_id, "amount": payload.refund_amount},
    )

    return {"success": True, "message": "Deposit refunded successfully"}


@router.post("/partner/payments/reject-refund", summary="Decline a pending refund")
def reject_refund(
    payload: RejectRefund,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    instruction = _instruction(client, payload.instruction_id)
    ensure_booking_partner(client, current_user, instruction.get("partner_id"))

    if instruction.get("status") not in REFUNDABLE_STATUSES:
        raise HTTPException(400, "Refund not pending")

    now_iso = utc_now_iso()

    try:
        client.table("payment_instructions").update({
            "status": InstructionStatus.refund_rejected.value,
            "refund_rejection_reason": payload.reason,
            "refund_rejected_at": now_iso,
            "updated_at": now_iso,
        }).eq("id", payload.instruction_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update instruction status")

    booking_id = instruction.get("booking_id")
    create_notification(
        client,
        "refund_rejected",
        "Refund Rejected",
        f"Your refund request for booking {booking_id} was rejected. Reason: {payload.reason}",
        recipient_id=instruction.get("driver_id"),
        recipient_type="driver",
        data={"instruction_id": payload.instruction_id, "booking_id": booking_id, "reason": payload.reason},
    )
    record_booking_history(
        client,
        booking_id,
        "refund_rejected",
        current_user.id,
        "admin" if is_admin(current_user) else "partner",
        f"Refund rejected: {payload.reason}",
        details={"instruction_id": payload.instruction_id, "reason": payload.reason, "rejected_at": now_iso},
    )

    return {"success": True, "message": "Refund rejected successfully"}
