"""
Seed the database with the specialty taxonomy and sample accounts.

Run with ``python -m medbook.seed``. Existing rows are left untouched, so
the command is safe to run more than once.
"""
import logging

from sqlalchemy.orm import Session

from .core.database import SessionLocal, init_db
from .core.security import UserRole, get_password_hash
from .models.doctor import Doctor
from .models.specialty import Specialty
from .models.user import User

logger = logging.getLogger(__name__)

SPECIALTIES = [
    "Cardiology",
    "Dermatology",
    "Endocrinology",
    "Gastroenterology",
    "General Medicine",
    "Hematology",
    "Infectious Disease",
    "Nephrology",
    "Neurology",
    "Oncology",
    "Orthopedics",
    "Pediatrics",
    "Psychiatry",
    "Pulmonology",
    "Radiology",
    "Rheumatology",
    "Urology",
]

SAMPLE_ACCOUNTS = [
    ("admin@medbook.com", "admin123", "Admin User", UserRole.ADMIN, "+1234567890"),
    ("doctor@medbook.com", "doctor123", "Dr. John Smith", UserRole.DOCTOR, "+1234567891"),
    ("patient@medbook.com", "patient123", "Jane Doe", UserRole.PATIENT, "+1234567892"),
]

def _get_or_create_user(db: Session, email, password, name, role, phone) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        password_hash=get_password_hash(password),
        name=name,
        role=role,
        phone=phone,
    )
    db.add(user)
    db.flush()
    logger.info(f"Created {role.value} account {email}")
    return user

def seed(db: Session) -> None:
    existing = {name for (name,) in db.query(Specialty.name).all()}
    for name in SPECIALTIES:
        if name not in existing:
            db.add(Specialty(name=name))

    users = {
        role: _get_or_create_user(db, email, password, name, role, phone)
        for email, password, name, role, phone in SAMPLE_ACCOUNTS
    }

    doctor_user = users[UserRole.DOCTOR]
    if not db.query(Doctor).filter(Doctor.user_id == doctor_user.id).first():
        db.add(Doctor(
            user_id=doctor_user.id,
            license_number="LIC-0001",
            specialty="Cardiology",
            experience=10,
            bio="Experienced cardiologist specializing in heart disease prevention and treatment.",
            consultation_fee=5000,
            is_verified=True,
        ))

    db.commit()

def main():
    logging.basicConfig(level=logging.INFO)
    init_db()
    db = SessionLocal()
    try:
        seed(db)
        logger.info("Database setup completed")
    finally:
        db.close()

if __name__ == "__main__":
    main()
