from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import DiscountType


class PromoCodeBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    discount_type: Optional[DiscountType] = Field(None, alias="discountType")
    discount_value: Optional[float] = Field(None, alias="discountValue", gt=0)
    min_amount: Optional[float] = Field(None, alias="minAmount", ge=0)
    max_discount: Optional[float] = Field(None, alias="maxDiscount", ge=0)
    usage_limit: Optional[int] = Field(None, alias="usageLimit", ge=0)
    valid_from: Optional[str] = Field(None, alias="validFrom")
    valid_until: Optional[str] = Field(None, alias="validUntil")
    description: Optional[str] = None


# -------------------------------------------------
# Create
# -------------------------------------------------
class PromoCodeCreate(PromoCodeBase):
    partner_id: str = Field(..., alias="partnerId", min_length=1)
    code: str = Field(..., min_length=1)
    discount_type: DiscountType = Field(..., alias="discountType")
    discount_value: float = Field(..., alias="discountValue", gt=0)
    is_active: bool = Field(True, alias="isActive")

    @field_validator("code", mode="before")
    def upper_code(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# -------------------------------------------------
# Update (PUT): only provided fields are written
# -------------------------------------------------
class PromoCodeUpdate(PromoCodeBase):
    code: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")

    @field_validator("code", mode="before")
    def upper_code(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# -------------------------------------------------
# Toggle (PATCH)
# -------------------------------------------------
class PromoCodeToggle(BaseModel):
    is_active: bool
