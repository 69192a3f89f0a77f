from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field


# -------------------------------------------------
# Vehicles
# -------------------------------------------------
class VehicleCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    partner_id: str = Field(..., alias="partnerId", min_length=1)
    name: str = Field(..., min_length=1)
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)

    year: Optional[int] = None
    license_plate: Optional[str] = Field(None, alias="licensePlate")
    registration_number: Optional[str] = Field(None, alias="registrationNumber")
    color: Optional[str] = None
    seats: Optional[int] = None
    fuel_type: Optional[str] = Field(None, alias="fuelType")
    transmission: Optional[str] = None
    category: Optional[str] = None

    daily_rate: Optional[float] = Field(None, alias="dailyRate", ge=0)
    weekly_rate: Optional[float] = Field(None, alias="weeklyRate", ge=0)
    monthly_rate: Optional[float] = Field(None, alias="monthlyRate", ge=0)
    price_per_day: Optional[float] = Field(None, alias="pricePerDay", ge=0)
    price_per_week: Optional[float] = Field(None, alias="pricePerWeek", ge=0)
    ride_hailing_categories: Optional[List[str]] = Field(None, alias="rideHailingCategories")

    is_active: bool = Field(True, alias="isActive")
    is_available: bool = Field(True, alias="isAvailable")


# -------------------------------------------------
# Notifications
# -------------------------------------------------
class NotificationIds(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_ids: List[str] = Field(..., alias="notificationIds", min_length=1)


# -------------------------------------------------
# Payments
# -------------------------------------------------
class ConfirmBankTransfer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: str = Field(..., alias="bookingId", min_length=1)
    payment_id: str = Field(..., alias="paymentId", min_length=1)
    # Recorded from the session; accepted for older clients
    confirmed_by: Optional[str] = Field(None, alias="confirmedBy")
    confirmed_by_type: str = Field("partner", alias="confirmedByType")


class MarkPaymentSent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instruction_id: str = Field(..., alias="instructionId", min_length=1)
    driver_id: str = Field(..., alias="driverId", min_length=1)


class ConfirmReceived(BaseModel):
    """Either the instruction, or the booking whose sent deposit is confirmed."""

    model_config = ConfigDict(populate_by_name=True)

    instruction_id: Optional[str] = Field(None, alias="instructionId")
    booking_id: Optional[str] = Field(None, alias="bookingId")


class RefundDeposit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instruction_id: str = Field(..., alias="instructionId", min_length=1)
    refund_amount: float = Field(..., alias="refundAmount", gt=0)


class RejectRefund(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instruction_id: str = Field(..., alias="instructionId", min_length=1)
    reason: str = Field(..., min_length=1)
