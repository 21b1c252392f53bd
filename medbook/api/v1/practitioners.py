from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.exceptions import envelope
from ...api.deps import get_admin_user, get_current_doctor, pagination, rate_limit_check
from ...services.doctor_service import DoctorService
from ...schemas.doctor import (
    DoctorRegister, DoctorUpdate, DoctorVerify, DoctorResponse,
    DoctorDetailResponse, SlotCreate, SlotResponse
)
from ...schemas.common import PageParams, Pagination
from ...models.doctor import Doctor
from ...models.user import User

router = APIRouter(prefix="/practitioners", tags=["Practitioners"])

def _doctor(doctor: Doctor) -> dict:
    return DoctorResponse.model_validate(doctor).model_dump(mode="json")

def _slot(slot) -> dict:
    return SlotResponse.model_validate(slot).model_dump(mode="json")

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    doctor_data: DoctorRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Register a doctor account together with its profile."""
    doctor, tokens = DoctorService(db).register(doctor_data)
    return envelope("Doctor registered successfully", {
        "doctor": _doctor(doctor),
        **tokens.model_dump(),
    })

@router.get("")
async def list_doctors(
    specialty: Optional[str] = None,
    search: Optional[str] = None,
    page: PageParams = Depends(pagination),
    db: Session = Depends(get_db)
):
    """Public directory of bookable doctors."""
    doctors, total = DoctorService(db).list_directory(page.offset, page.limit, specialty, search)
    return envelope("Doctors retrieved successfully", {
        "doctors": [_doctor(doctor) for doctor in doctors],
        "pagination": Pagination.build(page.page, page.limit, total).model_dump(),
    })

# Doctor routes; declared before /{doctor_id} so "me" is not read as an id
@router.get("/me")
async def get_profile(doctor: Doctor = Depends(get_current_doctor)):
    return envelope("Doctor profile retrieved successfully", {"doctor": _doctor(doctor)})

@router.put("/me")
async def update_profile(
    update_data: DoctorUpdate,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    doctor = DoctorService(db).update_profile(doctor, update_data)
    return envelope("Doctor profile updated successfully", {"doctor": _doctor(doctor)})

@router.get("/me/stats")
async def get_stats(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    stats = DoctorService(db).get_stats(doctor.id)
    return envelope("Doctor stats retrieved successfully", stats.model_dump())

@router.post("/me/slots", status_code=status.HTTP_201_CREATED)
async def create_slot(
    slot_data: SlotCreate,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    slot = DoctorService(db).create_slot(doctor, slot_data)
    return envelope("Slot created successfully", {"slot": _slot(slot)})

@router.get("/me/slots")
async def list_own_slots(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    slots = DoctorService(db).list_slots(doctor.id)
    return envelope("Slots retrieved successfully", {"slots": [_slot(slot) for slot in slots]})

@router.delete("/me/slots/{slot_id}")
async def delete_slot(
    slot_id: int,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    DoctorService(db).delete_slot(doctor, slot_id)
    return envelope("Slot deleted successfully")

# Public detail
@router.get("/{doctor_id}")
async def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    doctor, slots = DoctorService(db).get_public(doctor_id)
    detail = DoctorDetailResponse.model_validate(doctor).model_copy(
        update={"slots": [SlotResponse.model_validate(slot) for slot in slots]}
    )
    return envelope("Doctor retrieved successfully", {"doctor": detail.model_dump(mode="json")})

@router.get("/{doctor_id}/slots")
async def list_doctor_slots(doctor_id: int, db: Session = Depends(get_db)):
    _, slots = DoctorService(db).get_public(doctor_id)
    return envelope("Slots retrieved successfully", {"slots": [_slot(slot) for slot in slots]})

# Admin routes
@router.put("/{doctor_id}/verify")
async def verify_doctor(
    doctor_id: int,
    verify_data: DoctorVerify,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    doctor = DoctorService(db).verify(doctor_id, verify_data.is_verified)
    action = "verified" if verify_data.is_verified else "unverified"
    return envelope(f"Doctor {action} successfully", {"doctor": _doctor(doctor)})
