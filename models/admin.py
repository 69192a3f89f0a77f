from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from core.roles import Role


class DeleteUserRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class BlockUserRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    blocked: bool = True


class UpdateUserRoleRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    # Validated against Role in the router so the caller gets "Invalid role"
    role: str = Field(..., min_length=1)


class ResolveAlertRequest(BaseModel):
    alert_id: str = Field(..., min_length=1)


class TerminateSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


# -----------------------------------------------------
# ADMIN STAFF
# -----------------------------------------------------
class StaffBase(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    department: str = Field(..., min_length=1)
    position: str = Field(..., min_length=1)

    permissions: Optional[dict] = None
    sidebar_access: Optional[dict] = None

    @field_validator("email", mode="before")
    def lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class StaffCreate(StaffBase):
    # Strength is checked in the router so the caller gets the specific rule
    password: str = Field(..., min_length=1)
    role: str = Role.ADMIN_STAFF.value


class StaffUpdate(StaffBase):
    model_config = ConfigDict(populate_by_name=True)

    staff_id: str = Field(..., alias="staffId", min_length=1)
    password: Optional[str] = None
    role: Optional[str] = None
