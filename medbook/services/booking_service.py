from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import false, func, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.database import transaction
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError
from ..core.security import UserRole
from ..models.booking import Booking, BookingStatus, LIVE_STATUSES
from ..models.doctor import Doctor
from ..models.slot import Slot
from ..models.user import User
from ..schemas.booking import BookingCreate, BookingUpdate, BookingStats

logger = logging.getLogger(__name__)

# Legal status moves. CANCELLED, COMPLETED and NO_SHOW are terminal.
TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.NO_SHOW, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.NO_SHOW: set(),
}

# Statuses only the practitioner side may set
PRACTITIONER_STATUSES = {BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}

SLOT_TAKEN = "Selected slot is already booked"

class BookingService:
    def __init__(self, db: Session):
        self.db = db

    def ownership_clause(self, user: User):
        """Filter restricting bookings to the ones the requester may see."""
        if user.role == UserRole.ADMIN:
            return true()
        if user.role == UserRole.DOCTOR:
            if user.doctor is None:
                return false()
            return Booking.doctor_id == user.doctor.id
        if user.role == UserRole.PATIENT:
            return Booking.patient_id == user.id
        raise ValueError(f"Unhandled role: {user.role}")

    @staticmethod
    def _eager():
        return (
            joinedload(Booking.patient),
            joinedload(Booking.doctor).joinedload(Doctor.user),
            joinedload(Booking.slot),
        )

    def create_booking(self, booking_data: BookingCreate, patient: User) -> Booking:
        """Book a consultation, reserving the slot when one is named.

        The slot check, the booking insert and the slot flip share one
        transaction; the partial unique index on bookings.slot_id catches a
        concurrent booking that slipped past the check.
        """
        doctor = self.db.query(Doctor).filter(Doctor.id == booking_data.doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")

        if not doctor.is_available or not doctor.is_verified:
            raise ConflictError("Doctor is not available for bookings")

        try:
            with transaction(self.db):
                slot = None
                if booking_data.slot_id is not None:
                    slot = self._reserve_slot(booking_data.slot_id, doctor.id)

                booking = Booking(
                    patient_id=patient.id,
                    doctor_id=doctor.id,
                    slot_id=slot.id if slot else None,
                    appointment_date=booking_data.appointment_date,
                    consultation_type=booking_data.consultation_type,
                    status=BookingStatus.PENDING,
                    symptoms=booking_data.symptoms,
                    notes=booking_data.notes,
                    # Captured now; later fee changes do not touch this booking
                    total_amount=doctor.consultation_fee,
                )
                self.db.add(booking)
                if slot is not None:
                    slot.is_available = False
                self.db.flush()
        except IntegrityError:
            # Rolled back; see whether a rival booking now holds the slot
            if booking_data.slot_id is not None and self._slot_held(booking_data.slot_id):
                logger.warning(f"Concurrent booking rejected for slot {booking_data.slot_id}")
                raise ConflictError(SLOT_TAKEN)
            logger.exception(f"Booking insert for doctor {doctor.id} violated a constraint")
            raise ConflictError("Booking could not be created")

        logger.info(f"Booking {booking.id} created by patient {patient.id} with doctor {doctor.id}")
        return self.get_booking(booking.id, patient)

    def _reserve_slot(self, slot_id: int, doctor_id: int) -> Slot:
        slot = self.db.query(Slot).filter(Slot.id == slot_id).with_for_update().first()

        if not slot or slot.doctor_id != doctor_id or not slot.is_available:
            raise ConflictError("Selected slot is not available")

        if self._slot_held(slot_id):
            logger.warning(f"Double booking rejected for slot {slot_id}")
            raise ConflictError(SLOT_TAKEN)

        return slot

    def _slot_held(self, slot_id: int) -> bool:
        return self.db.query(Booking.id).filter(
            Booking.slot_id == slot_id,
            Booking.status.in_(LIVE_STATUSES),
        ).first() is not None

    def list_bookings(
        self,
        user: User,
        offset: int,
        limit: int,
        status: Optional[BookingStatus] = None,
    ):
        query = self.db.query(Booking).filter(self.ownership_clause(user))
        if status:
            query = query.filter(Booking.status == status)

        total = query.count()
        bookings = query.options(*self._eager()).order_by(
            Booking.appointment_date.desc(), Booking.id.desc()
        ).offset(offset).limit(limit).all()
        return bookings, total

    def get_booking(self, booking_id: int, user: User) -> Booking:
        """Missing and not-yours are both reported as NotFound."""
        booking = self.db.query(Booking).options(*self._eager()).filter(
            Booking.id == booking_id,
            self.ownership_clause(user),
        ).first()
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def update_booking(self, booking_id: int, update_data: BookingUpdate, user: User) -> Booking:
        booking = self.get_booking(booking_id, user)
        changes = update_data.model_dump(exclude_unset=True)
        new_status = changes.pop("status", None)

        if new_status is not None and new_status != booking.status:
            self._check_transition(booking, new_status, user)

        with transaction(self.db):
            for field, value in changes.items():
                setattr(booking, field, value)
            if new_status is not None and new_status != booking.status:
                if new_status == BookingStatus.CANCELLED:
                    self._mark_cancelled(booking)
                else:
                    booking.status = new_status

        logger.info(f"Booking {booking_id} updated by user {user.id}")
        self.db.refresh(booking)
        return booking

    def _check_transition(self, booking: Booking, new_status: BookingStatus, user: User):
        if new_status not in TRANSITIONS[booking.status]:
            raise ConflictError(
                f"Cannot change booking status from {booking.status.value} to {new_status.value}"
            )
        if new_status in PRACTITIONER_STATUSES and user.role == UserRole.PATIENT:
            raise ForbiddenError(f"Patients cannot set booking status to {new_status.value}")

    def cancel_booking(self, booking_id: int, user: User) -> Booking:
        booking = self.get_booking(booking_id, user)

        if booking.status == BookingStatus.CANCELLED:
            raise ConflictError("Booking is already cancelled")

        if booking.status == BookingStatus.COMPLETED:
            raise ConflictError("Cannot cancel completed booking")

        if booking.status == BookingStatus.NO_SHOW:
            raise ConflictError("Cannot cancel a booking marked as no-show")

        with transaction(self.db):
            self._mark_cancelled(booking)

        logger.info(f"Booking {booking_id} cancelled by user {user.id}")
        self.db.refresh(booking)
        return booking

    def _mark_cancelled(self, booking: Booking):
        """Cancel and hand the slot back. Caller owns the transaction."""
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = datetime.utcnow()
        if booking.slot_id is not None:
            self.db.query(Slot).filter(Slot.id == booking.slot_id).update(
                {"is_available": True}, synchronize_session="fetch"
            )

    def rate_booking(self, booking_id: int, rating: int, user: User) -> Booking:
        """Patient rates a completed consultation once; the doctor's average follows."""
        booking = self.get_booking(booking_id, user)

        if user.role != UserRole.PATIENT:
            raise ForbiddenError("Only the patient can rate a booking")
        if booking.status != BookingStatus.COMPLETED:
            raise ConflictError("Only completed bookings can be rated")
        if booking.rating is not None:
            raise ConflictError("Booking has already been rated")

        with transaction(self.db):
            doctor = booking.doctor
            reviews = doctor.total_reviews or 0
            doctor.rating = ((doctor.rating or 0) * reviews + rating) / (reviews + 1)
            doctor.total_reviews = reviews + 1
            booking.rating = rating

        self.db.refresh(booking)
        return booking

    def get_stats(self, user: User) -> BookingStats:
        counts = dict(
            self.db.query(Booking.status, func.count(Booking.id))
            .filter(self.ownership_clause(user))
            .group_by(Booking.status)
            .all()
        )
        return BookingStats(
            total_bookings=sum(counts.values()),
            pending_bookings=counts.get(BookingStatus.PENDING, 0),
            confirmed_bookings=counts.get(BookingStatus.CONFIRMED, 0),
            cancelled_bookings=counts.get(BookingStatus.CANCELLED, 0),
            completed_bookings=counts.get(BookingStatus.COMPLETED, 0),
            no_show_bookings=counts.get(BookingStatus.NO_SHOW, 0),
        )
