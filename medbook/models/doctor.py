from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Float
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Professional information
    license_number = Column(String(50), nullable=False, unique=True)
    specialty = Column(String(100), nullable=False, index=True)
    experience = Column(Integer, default=0)
    education = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    consultation_fee = Column(Integer, nullable=False, default=0)  # cents

    # Reputation
    rating = Column(Float, default=0.0)
    total_reviews = Column(Integer, default=0)

    # Availability
    is_verified = Column(Boolean, default=False)
    is_available = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor")
    bookings = relationship("Booking", back_populates="doctor")
    slots = relationship("Slot", back_populates="doctor", order_by="Slot.start_time")

    @property
    def name(self):
        return self.user.name if self.user else None

    def __repr__(self):
        return f"<Doctor(id={self.id}, license='{self.license_number}', specialty='{self.specialty}')>"
