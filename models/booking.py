from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import (
    AdjustmentType,
    CancelType,
    IssueSeverity,
    IssueType,
    PartnerAction,
    PaymentMethod,
    ReturnAction,
)


# -------------------------------------------------
# Create (camelCase on the wire, like the web client sends)
# -------------------------------------------------
class BookingCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    driver_id: str = Field(..., alias="driverId", min_length=1)
    partner_id: str = Field(..., alias="partnerId", min_length=1)
    vehicle_id: str = Field(..., alias="vehicleId", min_length=1)

    # ISO-8601 strings; parsed by the router so a bad value gets a clear message
    start_date: str = Field(..., alias="startDate", min_length=1)
    end_date: str = Field(..., alias="endDate", min_length=1)

    weekly_rate: float = Field(..., alias="weeklyRate", gt=0)
    deposit_amount: float = Field(0, alias="depositAmount", ge=0)

    insurance_required: bool = Field(False, alias="insuranceRequired")
    partner_provides_insurance: bool = Field(False, alias="partnerProvidesInsurance")
    requires_document_verification: bool = Field(False, alias="requiresDocumentVerification")

    payment_method: PaymentMethod = Field(PaymentMethod.bank_transfer, alias="paymentMethod")


# -------------------------------------------------
# Cancel
# -------------------------------------------------
class BookingCancel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: str = Field(..., alias="bookingId", min_length=1)
    reason: str = Field(..., min_length=1)
    cancel_type: CancelType = Field(..., alias="cancelType")
    insurance_refund_amount: Optional[float] = Field(None, alias="insuranceRefundAmount", ge=0)


# -------------------------------------------------
# Lifecycle (the acting party comes from the session)
# -------------------------------------------------
class BookingRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: str = Field(..., alias="bookingId", min_length=1)


class PartnerResponse(BookingRef):
    action: PartnerAction
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")
    override_insurance: bool = Field(False, alias="overrideInsurance")


class StartActive(BookingRef):
    triggered_by: str = Field("partner", alias="triggeredBy")
    bypass_requirements: bool = Field(False, alias="bypassRequirements")


class ReturnRequest(BookingRef):
    action: ReturnAction = ReturnAction.request
    reason: Optional[str] = None


class FinishBooking(BookingRef):
    final_notes: Optional[str] = Field(None, alias="finalNotes")
    final_mileage: Optional[float] = Field(None, alias="finalMileage", ge=0)
    final_fuel_level: Optional[str] = Field(None, alias="finalFuelLevel")


class IssueReport(BookingRef):
    issue_type: IssueType = Field(..., alias="issueType")
    description: str = Field(..., min_length=1)
    severity: IssueSeverity = IssueSeverity.medium
    images: List[str] = Field(default_factory=list)


class VehicleRelease(BookingRef):
    reason: Optional[str] = None


class VehicleChange(BookingRef):
    new_vehicle_id: str = Field(..., alias="newVehicleId", min_length=1)
    reason: str = Field(..., min_length=1)
    adjustment_type: AdjustmentType = Field(AdjustmentType.prorated, alias="adjustmentType")
