from sqlalchemy import Column, Integer, ForeignKey, DateTime, Boolean, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class SessionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"

class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    PRESCRIPTION = "PRESCRIPTION"

class ConsultSession(Base):
    """Messaging thread between a patient and a doctor."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.ACTIVE)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    ended_at = Column(DateTime, nullable=True)

    patient = relationship("User")
    doctor = relationship("Doctor")
    messages = relationship(
        "Message",
        back_populates="session",
        order_by="Message.id",
        cascade="all, delete-orphan",
    )

    def participant_ids(self):
        """User ids of both participants: the patient and the doctor's account."""
        return {self.patient_id, self.doctor.user_id}

    def __repr__(self):
        return f"<ConsultSession(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, status='{self.status}')>"

class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(SQLEnum(MessageType), nullable=False, default=MessageType.TEXT)
    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    session = relationship("ConsultSession", back_populates="messages")
    sender = relationship("User")

    def __repr__(self):
        return f"<Message(id={self.id}, session_id={self.session_id}, sender_id={self.sender_id})>"
