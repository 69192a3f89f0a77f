from enum import Enum


class BaseStrEnum(str, Enum):
    """Serializes to its value so rows and log lines carry the plain string."""

    def __str__(self):
        return str(self.value)


# -----------------------------------------------------
# BOOKINGS
# -----------------------------------------------------
class BookingStatus(BaseStrEnum):
    pending = "pending"
    pending_payment = "pending_payment"
    pending_partner_approval = "pending_partner_approval"
    pending_documents = "pending_documents"
    pending_insurance_upload = "pending_insurance_upload"
    partner_accepted = "partner_accepted"
    partner_rejected = "partner_rejected"
    auto_rejected = "auto_rejected"
    confirmed = "confirmed"
    active = "active"
    in_progress = "in_progress"
    overdue = "overdue"
    payment_expired = "payment_expired"
    insurance_expired = "insurance_expired"
    completed = "completed"
    cancelled = "cancelled"


# Partner may activate from these
ACTIVATABLE_STATUSES = (
    BookingStatus.partner_accepted,
    BookingStatus.pending_insurance_upload,
    BookingStatus.confirmed,
)

# Partner may swap the vehicle in these
VEHICLE_CHANGE_STATUSES = (
    BookingStatus.active,
    BookingStatus.partner_accepted,
    BookingStatus.confirmed,
    BookingStatus.pending_insurance_upload,
)

# Vehicle may be handed back in these
VEHICLE_RELEASE_STATUSES = (
    BookingStatus.active,
    BookingStatus.in_progress,
    BookingStatus.partner_accepted,
    BookingStatus.pending_insurance_upload,
)

FINISHABLE_STATUSES = (
    BookingStatus.active,
    BookingStatus.in_progress,
    BookingStatus.partner_accepted,
)

RETURNABLE_STATUSES = FINISHABLE_STATUSES


class PartnerAction(BaseStrEnum):
    accept = "accept"
    reject = "reject"


class ReturnAction(BaseStrEnum):
    request = "request"
    approve = "approve"
    reject = "reject"


class IssueType(BaseStrEnum):
    mechanical = "mechanical"
    damage = "damage"
    cleanliness = "cleanliness"
    documentation = "documentation"
    other = "other"


class IssueSeverity(BaseStrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class AdjustmentType(BaseStrEnum):
    """How a rate difference is charged when the vehicle is swapped."""

    prorated = "prorated"
    immediate = "immediate"
    next_cycle = "next_cycle"


# Statuses shown in the "recent bookings" ticker
LIVE_BOOKING_STATUSES = (
    BookingStatus.pending,
    BookingStatus.pending_partner_approval,
    BookingStatus.pending_documents,
    BookingStatus.active,
    BookingStatus.confirmed,
    BookingStatus.partner_accepted,
)


class CancelType(BaseStrEnum):
    """How much of the paid amount is refunded on cancellation."""

    full = "full"
    prorated = "prorated"
    none = "none"


class VehicleStatus(BaseStrEnum):
    available = "available"
    unavailable = "unavailable"
    booked = "booked"
    maintenance = "maintenance"
    deleted = "deleted"
    removed = "removed"


# -----------------------------------------------------
# PAYMENTS
# -----------------------------------------------------
class PaymentMethod(BaseStrEnum):
    bank_transfer = "bank_transfer"
    card = "card"


class InstructionStatus(BaseStrEnum):
    pending = "pending"
    sent = "sent"
    received = "received"
    completed = "completed"
    overdue = "overdue"
    deposit_received = "deposit_received"
    deposit_refund_pending = "deposit_refund_pending"
    deposit_refunded = "deposit_refunded"
    refund_rejected = "refund_rejected"


class InstructionType(BaseStrEnum):
    deposit = "deposit"
    weekly_rent = "weekly_rent"
    refund = "refund"
    final_payment = "final_payment"
    vehicle_change = "vehicle_change"


# -----------------------------------------------------
# SUPPORT
# -----------------------------------------------------
class TicketStatus(BaseStrEnum):
    open = "open"
    in_progress = "in_progress"
    waiting = "waiting"
    resolved = "resolved"
    closed = "closed"


class TicketPriority(BaseStrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class ChatStatus(BaseStrEnum):
    waiting = "waiting"
    active = "active"
    closed = "closed"


# -----------------------------------------------------
# MARKETING
# -----------------------------------------------------
class DiscountType(BaseStrEnum):
    percentage = "percentage"
    fixed = "fixed"
