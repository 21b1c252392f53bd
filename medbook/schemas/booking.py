from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from ..models.booking import BookingStatus, ConsultationType, PaymentStatus
from .common import utc_naive
from .doctor import SlotResponse


class BookingCreate(BaseModel):
    doctor_id: int
    slot_id: Optional[int] = None
    appointment_date: datetime
    consultation_type: ConsultationType
    symptoms: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("appointment_date")
    @classmethod
    def in_future(cls, v):
        v = utc_naive(v)
        if v <= datetime.utcnow():
            raise ValueError("Appointment date must be in the future")
        return v


class BookingUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    symptoms: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)
    prescription: Optional[str] = Field(None, max_length=2000)


class BookingRate(BaseModel):
    rating: int = Field(..., ge=1, le=5)


class BookingParty(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    email: Optional[str] = None


class BookingDoctor(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    specialty: str


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    slot_id: Optional[int] = None
    appointment_date: datetime
    consultation_type: ConsultationType
    status: BookingStatus
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    prescription: Optional[str] = None
    total_amount: int
    payment_status: PaymentStatus
    rating: Optional[int] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    patient: Optional[BookingParty] = None
    doctor: Optional[BookingDoctor] = None
    slot: Optional[SlotResponse] = None


class BookingStats(BaseModel):
    total_bookings: int
    pending_bookings: int
    confirmed_bookings: int
    cancelled_bookings: int
    completed_bookings: int
    no_show_bookings: int
