from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# -----------------------------------------------------
# LOGIN REQUEST (using Supabase email/password)
# -----------------------------------------------------
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# -----------------------------------------------------
# TOKEN RESPONSE (Supabase session JWT)
# -----------------------------------------------------
class TokenResponse(BaseModel):
    success: bool = True
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"
    role: str
    redirect_to: str


# -----------------------------------------------------
# SELF-SERVICE REGISTRATION
# -----------------------------------------------------
class RegisterBase(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    def lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def first_name(self) -> str:
        return (self.name.split(" ")[0] or self.name).strip()

    @property
    def last_name(self) -> str:
        return " ".join(self.name.split(" ")[1:]).strip()


class DriverRegister(RegisterBase):
    pass


class PartnerAddress(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None


class PartnerRegister(RegisterBase):
    model_config = ConfigDict(populate_by_name=True)

    company_name: Optional[str] = Field(None, alias="companyName")
    business_email: Optional[str] = Field(None, alias="businessEmail")
    director_name: Optional[str] = Field(None, alias="directorName")
    director_email: Optional[str] = Field(None, alias="directorEmail")
    director_phone: Optional[str] = Field(None, alias="directorPhone")
    address: Optional[PartnerAddress] = None
