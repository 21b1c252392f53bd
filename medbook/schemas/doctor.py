from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator, model_validator

from .auth import PHONE_PATTERN
from .common import reject_null, utc_naive


class DoctorRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, max_length=20)
    license_number: str = Field(..., min_length=1, max_length=50)
    specialty: str = Field(..., min_length=1, max_length=100)
    experience: int = Field(0, ge=0, le=50)
    education: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=1000)
    consultation_fee: int = Field(..., ge=0, description="Fee in cents")


class DoctorUpdate(BaseModel):
    # Account fields
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, max_length=20)
    # Profile fields
    specialty: Optional[str] = Field(None, min_length=1, max_length=100)
    experience: Optional[int] = Field(None, ge=0, le=50)
    education: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=1000)
    consultation_fee: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None

    # Omitted means unchanged; these columns cannot be cleared
    @field_validator("name", "specialty", "experience", "consultation_fee", "is_available")
    @classmethod
    def not_null(cls, v):
        return reject_null(v)


class DoctorVerify(BaseModel):
    is_verified: bool = True


class SlotCreate(BaseModel):
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, v):
        return utc_naive(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        if self.start_time <= datetime.utcnow():
            raise ValueError("Start time must be in the future")
        return self


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    doctor_id: int
    start_time: datetime
    end_time: datetime
    is_available: bool


class DoctorUserInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    phone: Optional[str] = None
    is_active: bool


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    license_number: str
    specialty: str
    experience: Optional[int] = 0
    education: Optional[str] = None
    bio: Optional[str] = None
    consultation_fee: int
    rating: Optional[float] = 0.0
    total_reviews: Optional[int] = 0
    is_verified: bool
    is_available: bool
    user: DoctorUserInfo


class DoctorDetailResponse(DoctorResponse):
    slots: List[SlotResponse] = []


class DoctorStats(BaseModel):
    total_bookings: int
    pending_bookings: int
    confirmed_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    no_show_bookings: int
    total_revenue: int
    average_rating: float
