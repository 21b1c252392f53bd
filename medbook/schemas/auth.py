from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from ..core.security import UserRole
from .common import reject_null, utc_naive

PHONE_PATTERN = r"^[0-9+\-\s()]+$"


class UserRegister(BaseModel):
    """Public patient registration. There is deliberately no role field."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, max_length=20)
    date_of_birth: Optional[datetime] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    address: Optional[str] = Field(None, max_length=200)

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, v):
        v = utc_naive(v)
        if v is not None and v > datetime.utcnow():
            raise ValueError("Date of birth cannot be in the future")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, max_length=20)
    date_of_birth: Optional[datetime] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    address: Optional[str] = Field(None, max_length=200)

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v):
        return reject_null(v)

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, v):
        v = utc_naive(v)
        if v is not None and v > datetime.utcnow():
            raise ValueError("Date of birth cannot be in the future")
        return v


class ChangePassword(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    role: UserRole
    is_active: bool
    email_verified: bool = False
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
