from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.exceptions import envelope
from ...api.deps import get_admin_user
from ...services.specialty_service import SpecialtyService
from ...schemas.specialty import SpecialtyCreate, SpecialtyUpdate, SpecialtyResponse
from ...models.user import User

router = APIRouter(prefix="/specialties", tags=["Specialties"])

def _specialty(specialty) -> dict:
    return SpecialtyResponse.model_validate(specialty).model_dump(mode="json")

@router.get("")
async def list_specialties(db: Session = Depends(get_db)):
    specialties = SpecialtyService(db).list()
    return envelope("Specialties retrieved successfully", {
        "specialties": [_specialty(specialty) for specialty in specialties]
    })

@router.get("/stats")
async def specialty_stats(
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    stats = SpecialtyService(db).stats()
    return envelope("Specialty stats retrieved successfully", {
        "specialties": [stat.model_dump(mode="json") for stat in stats]
    })

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_specialty(
    specialty_data: SpecialtyCreate,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    specialty = SpecialtyService(db).create(specialty_data)
    return envelope("Specialty created successfully", {"specialty": _specialty(specialty)})

@router.put("/{specialty_id}")
async def update_specialty(
    specialty_id: int,
    update_data: SpecialtyUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    specialty = SpecialtyService(db).update(specialty_id, update_data)
    return envelope("Specialty updated successfully", {"specialty": _specialty(specialty)})

@router.delete("/{specialty_id}")
async def delete_specialty(
    specialty_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    SpecialtyService(db).delete(specialty_id)
    return envelope("Specialty deleted successfully")
