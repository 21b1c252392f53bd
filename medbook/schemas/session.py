from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict

from ..models.consultation import SessionStatus, MessageType


class SessionCreate(BaseModel):
    """A patient names the doctor; a doctor names the patient."""
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    booking_id: Optional[int] = None


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    type: MessageType = MessageType.TEXT


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: int
    sender_id: int
    content: str
    type: MessageType
    is_read: bool
    created_at: Optional[datetime] = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    booking_id: Optional[int] = None
    status: SessionStatus
    created_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class SessionDetailResponse(SessionResponse):
    messages: List[MessageResponse] = []
