from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.exceptions import envelope
from ...api.deps import get_current_user, get_patient_user, pagination
from ...services.booking_service import BookingService
from ...schemas.booking import BookingCreate, BookingUpdate, BookingRate, BookingResponse
from ...schemas.common import PageParams, Pagination
from ...models.booking import Booking, BookingStatus
from ...models.user import User

router = APIRouter(prefix="/bookings", tags=["Bookings"])

def _booking(booking: Booking) -> dict:
    return BookingResponse.model_validate(booking).model_dump(mode="json")

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    booking = BookingService(db).create_booking(booking_data, current_user)
    return envelope("Booking created successfully", {"booking": _booking(booking)})

@router.get("")
async def list_bookings(
    status: Optional[BookingStatus] = None,
    page: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    bookings, total = BookingService(db).list_bookings(current_user, page.offset, page.limit, status)
    return envelope("Bookings retrieved successfully", {
        "bookings": [_booking(booking) for booking in bookings],
        "pagination": Pagination.build(page.page, page.limit, total).model_dump(),
    })

@router.get("/stats")
async def booking_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    stats = BookingService(db).get_stats(current_user)
    return envelope("Booking stats retrieved successfully", stats.model_dump())

@router.get("/{booking_id}")
async def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = BookingService(db).get_booking(booking_id, current_user)
    return envelope("Booking retrieved successfully", {"booking": _booking(booking)})

@router.put("/{booking_id}")
async def update_booking(
    booking_id: int,
    update_data: BookingUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = BookingService(db).update_booking(booking_id, update_data, current_user)
    return envelope("Booking updated successfully", {"booking": _booking(booking)})

@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = BookingService(db).cancel_booking(booking_id, current_user)
    return envelope("Booking cancelled successfully", {"booking": _booking(booking)})

@router.post("/{booking_id}/rate")
async def rate_booking(
    booking_id: int,
    rate_data: BookingRate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = BookingService(db).rate_booking(booking_id, rate_data.rating, current_user)
    return envelope("Booking rated successfully", {"booking": _booking(booking)})
