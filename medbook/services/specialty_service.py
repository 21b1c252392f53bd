from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from ..core.database import transaction
from ..core.exceptions import ConflictError, NotFoundError
from ..models.doctor import Doctor
from ..models.specialty import Specialty
from ..schemas.specialty import SpecialtyCreate, SpecialtyUpdate, SpecialtyStat

logger = logging.getLogger(__name__)

class SpecialtyService:
    def __init__(self, db: Session):
        self.db = db

    def list(self):
        return self.db.query(Specialty).order_by(Specialty.name.asc()).all()

    def get(self, specialty_id: int) -> Specialty:
        specialty = self.db.query(Specialty).filter(Specialty.id == specialty_id).first()
        if not specialty:
            raise NotFoundError("Specialty not found")
        return specialty

    def _name_taken(self, name: str, exclude_id: int = None) -> bool:
        query = self.db.query(Specialty).filter(Specialty.name == name)
        if exclude_id is not None:
            query = query.filter(Specialty.id != exclude_id)
        return query.first() is not None

    def usage_count(self, name: str) -> int:
        """Number of doctors whose specialty tag is this name."""
        return self.db.query(func.count(Doctor.id)).filter(Doctor.specialty == name).scalar()

    def create(self, specialty_data: SpecialtyCreate) -> Specialty:
        if self._name_taken(specialty_data.name):
            raise ConflictError("Specialty with this name already exists")

        specialty = Specialty(
            name=specialty_data.name,
            description=specialty_data.description,
        )
        self.db.add(specialty)
        self.db.commit()
        self.db.refresh(specialty)
        return specialty

    def update(self, specialty_id: int, update_data: SpecialtyUpdate) -> Specialty:
        """Doctors are tagged by name, so a rename carries their tags along."""
        specialty = self.get(specialty_id)
        changes = update_data.model_dump(exclude_unset=True)
        old_name = specialty.name
        new_name = changes.get("name", old_name)

        if new_name != old_name and self._name_taken(new_name, exclude_id=specialty_id):
            raise ConflictError("Specialty with this name already exists")

        with transaction(self.db):
            for field, value in changes.items():
                setattr(specialty, field, value)
            if new_name != old_name:
                moved = self.db.query(Doctor).filter(Doctor.specialty == old_name).update(
                    {"specialty": new_name}, synchronize_session="fetch"
                )
                logger.info(f"Specialty {specialty_id} renamed; {moved} doctors retagged")

        self.db.refresh(specialty)
        return specialty

    def delete(self, specialty_id: int) -> None:
        specialty = self.get(specialty_id)

        in_use = self.usage_count(specialty.name)
        if in_use:
            logger.warning(f"Refusing to delete specialty {specialty_id}: used by {in_use} doctors")
            raise ConflictError("Cannot delete specialty that is being used by doctors")

        self.db.delete(specialty)
        self.db.commit()

    def stats(self):
        counts = dict(
            self.db.query(Doctor.specialty, func.count(Doctor.id))
            .group_by(Doctor.specialty)
            .all()
        )
        return [
            SpecialtyStat(
                id=specialty.id,
                name=specialty.name,
                description=specialty.description,
                created_at=specialty.created_at,
                doctor_count=counts.get(specialty.name, 0),
            )
            for specialty in self.list()
        ]
