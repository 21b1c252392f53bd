from sqlalchemy import Column, Integer, ForeignKey, DateTime, Text, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"

class ConsultationType(str, enum.Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

# Statuses that hold a slot
LIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

_live_slot_clause = text("slot_id IS NOT NULL AND status IN ('PENDING', 'CONFIRMED')")

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one live booking per slot, enforced by the store
        Index(
            "uq_bookings_live_slot",
            "slot_id",
            unique=True,
            postgresql_where=_live_slot_clause,
            sqlite_where=_live_slot_clause,
        ),
        Index("idx_bookings_patient", "patient_id"),
        Index("idx_bookings_doctor", "doctor_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=True)

    # Booking details
    appointment_date = Column(DateTime, nullable=False, index=True)
    consultation_type = Column(SQLEnum(ConsultationType), nullable=False)
    status = Column(SQLEnum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    symptoms = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    prescription = Column(Text, nullable=True)

    # Fee captured from the doctor at creation time, in cents
    total_amount = Column(Integer, nullable=False, default=0)
    payment_status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    rating = Column(Integer, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    patient = relationship("User", back_populates="bookings")
    doctor = relationship("Doctor", back_populates="bookings")
    slot = relationship("Slot")

    def __repr__(self):
        return f"<Booking(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, status='{self.status}')>"
