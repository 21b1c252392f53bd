from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.database import transaction
from ..core.exceptions import ConflictError, NotFoundError
from ..core.security import UserRole, get_password_hash
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.doctor import Doctor
from ..models.slot import Slot
from ..models.user import User
from ..schemas.doctor import DoctorRegister, DoctorUpdate, DoctorStats, SlotCreate
from .auth_service import EMAIL_TAKEN, AuthService

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "phone")

LICENSE_TAKEN = "Doctor with this license number already exists"

class DoctorService:
    def __init__(self, db: Session):
        self.db = db

    def register(self, doctor_data: DoctorRegister):
        """Create the doctor account and profile together, then sign in.

        Returns (doctor, tokens).
        """
        accounts = AuthService(self.db)
        if accounts.email_taken(doctor_data.email):
            raise ConflictError(EMAIL_TAKEN)

        if self.license_taken(doctor_data.license_number):
            raise ConflictError(LICENSE_TAKEN)

        try:
            with transaction(self.db):
                user = User(
                    email=doctor_data.email,
                    password_hash=get_password_hash(doctor_data.password),
                    name=doctor_data.name,
                    phone=doctor_data.phone,
                    role=UserRole.DOCTOR,
                    is_active=True,
                )
                self.db.add(user)
                self.db.flush()

                doctor = Doctor(
                    user_id=user.id,
                    license_number=doctor_data.license_number,
                    specialty=doctor_data.specialty,
                    experience=doctor_data.experience,
                    education=doctor_data.education,
                    bio=doctor_data.bio,
                    consultation_fee=doctor_data.consultation_fee,
                )
                self.db.add(doctor)
                self.db.flush()
                tokens = accounts.issue_tokens(user)
        except IntegrityError:
            # Lost a race with a concurrent registration; nothing was kept
            if accounts.email_taken(doctor_data.email):
                raise ConflictError(EMAIL_TAKEN)
            raise ConflictError(LICENSE_TAKEN)

        self.db.refresh(doctor)
        logger.info(f"Registered doctor {doctor.id} (user {user.id})")
        return doctor, tokens

    def license_taken(self, license_number: str) -> bool:
        return self.db.query(Doctor.id).filter(
            Doctor.license_number == license_number
        ).first() is not None

    def get_profile(self, doctor_id: int) -> Doctor:
        doctor = self.db.query(Doctor).options(joinedload(Doctor.user)).filter(
            Doctor.id == doctor_id
        ).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor

    def get_by_user(self, user_id: int) -> Doctor:
        doctor = self.db.query(Doctor).filter(Doctor.user_id == user_id).first()
        if not doctor:
            raise NotFoundError("Doctor profile not found")
        return doctor

    def update_profile(self, doctor: Doctor, update_data: DoctorUpdate) -> Doctor:
        """Patch account and profile fields in one unit of work."""
        changes = update_data.model_dump(exclude_unset=True)

        with transaction(self.db):
            for field, value in changes.items():
                target = doctor.user if field in USER_FIELDS else doctor
                setattr(target, field, value)

        self.db.refresh(doctor)
        return doctor

    def _directory_query(self):
        return self.db.query(Doctor).join(User, Doctor.user_id == User.id).filter(
            Doctor.is_available == True,
            Doctor.is_verified == True,
            User.is_active == True,
        )

    def list_directory(
        self,
        offset: int,
        limit: int,
        specialty: Optional[str] = None,
        search: Optional[str] = None,
    ):
        """Bookable doctors only: available, verified and with an active account."""
        query = self._directory_query()

        if specialty:
            query = query.filter(Doctor.specialty == specialty)

        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(User.name).like(pattern),
                func.lower(Doctor.specialty).like(pattern),
                func.lower(Doctor.bio).like(pattern),
            ))

        total = query.count()
        doctors = query.options(joinedload(Doctor.user)).order_by(
            Doctor.rating.desc(), Doctor.total_reviews.desc(), Doctor.id
        ).offset(offset).limit(limit).all()
        return doctors, total

    def get_public(self, doctor_id: int):
        """Public detail page. Returns (doctor, upcoming available slots)."""
        doctor = self._directory_query().filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor, self.list_slots(doctor.id, only_available=True)

    def verify(self, doctor_id: int, is_verified: bool = True) -> Doctor:
        doctor = self.get_profile(doctor_id)
        doctor.is_verified = is_verified
        self.db.commit()
        self.db.refresh(doctor)
        logger.info(f"Doctor {doctor_id} {'verified' if is_verified else 'unverified'}")
        return doctor

    def get_stats(self, doctor_id: int) -> DoctorStats:
        counts = dict(
            self.db.query(Booking.status, func.count(Booking.id))
            .filter(Booking.doctor_id == doctor_id)
            .group_by(Booking.status)
            .all()
        )

        revenue = self.db.query(func.coalesce(func.sum(Booking.total_amount), 0)).filter(
            Booking.doctor_id == doctor_id,
            Booking.status == BookingStatus.COMPLETED,
            Booking.payment_status == PaymentStatus.COMPLETED,
        ).scalar()

        average_rating = self.db.query(func.avg(Booking.rating)).filter(
            Booking.doctor_id == doctor_id,
            Booking.status == BookingStatus.COMPLETED,
        ).scalar()

        return DoctorStats(
            total_bookings=sum(counts.values()),
            pending_bookings=counts.get(BookingStatus.PENDING, 0),
            confirmed_bookings=counts.get(BookingStatus.CONFIRMED, 0),
            completed_bookings=counts.get(BookingStatus.COMPLETED, 0),
            cancelled_bookings=counts.get(BookingStatus.CANCELLED, 0),
            no_show_bookings=counts.get(BookingStatus.NO_SHOW, 0),
            total_revenue=int(revenue or 0),
            average_rating=float(average_rating or 0),
        )

    # Slots

    def create_slot(self, doctor: Doctor, slot_data: SlotCreate) -> Slot:
        slot = Slot(
            doctor_id=doctor.id,
            start_time=slot_data.start_time,
            end_time=slot_data.end_time,
            is_available=True,
        )
        self.db.add(slot)
        self.db.commit()
        self.db.refresh(slot)
        return slot

    def list_slots(self, doctor_id: int, only_available: bool = False):
        query = self.db.query(Slot).filter(Slot.doctor_id == doctor_id)
        if only_available:
            query = query.filter(
                Slot.is_available == True,
                Slot.start_time >= datetime.utcnow(),
            )
        return query.order_by(Slot.start_time.asc()).all()

    def delete_slot(self, doctor: Doctor, slot_id: int) -> None:
        slot = self.db.query(Slot).filter(
            Slot.id == slot_id, Slot.doctor_id == doctor.id
        ).first()
        if not slot:
            raise NotFoundError("Slot not found")

        # Bookings keep a reference to their slot, cancelled ones included
        referenced = self.db.query(Booking.id).filter(Booking.slot_id == slot_id).first()
        if referenced:
            raise ConflictError("Cannot delete a slot that has bookings")

        self.db.delete(slot)
        self.db.commit()
