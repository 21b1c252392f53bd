import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

# Must be set before the application modules are imported
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from medbook.main import app
from medbook.core.database import Base, get_db, get_redis
from medbook.core.security import UserRole, get_password_hash
import medbook.models  # registers every table on Base.metadata
from medbook.models.doctor import Doctor
from medbook.models.user import User

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

def override_get_redis():
    redis_client = MagicMock()
    redis_client.get.return_value = None
    return redis_client

app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_redis] = override_get_redis

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

def future(days=1, hours=0):
    return (datetime.utcnow() + timedelta(days=days, hours=hours)).replace(microsecond=0)

def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}

def register_patient(client, email="patient@example.com", password="secret123", name="Pat Patient"):
    response = client.post("/api/v1/accounts/register", json={
        "email": email,
        "password": password,
        "name": name,
    })
    assert response.status_code == 201, response.json()
    data = response.json()["data"]
    return data["user"], auth_headers(data["access_token"])

def register_doctor(
    client,
    email="doctor@example.com",
    license_number="LIC-100",
    specialty="Cardiology",
    consultation_fee=5000,
    name="Dr. Heart",
    bio="Heart specialist",
    verified=True,
):
    response = client.post("/api/v1/practitioners/register", json={
        "email": email,
        "password": "secret123",
        "name": name,
        "license_number": license_number,
        "specialty": specialty,
        "consultation_fee": consultation_fee,
        "bio": bio,
    })
    assert response.status_code == 201, response.json()
    data = response.json()["data"]
    if verified:
        session = TestingSessionLocal()
        try:
            session.query(Doctor).filter(Doctor.id == data["doctor"]["id"]).update({"is_verified": True})
            session.commit()
        finally:
            session.close()
    return data["doctor"], auth_headers(data["access_token"])

def create_admin(client, email="admin@example.com", password="admin123"):
    session = TestingSessionLocal()
    try:
        session.add(User(
            email=email,
            password_hash=get_password_hash(password),
            name="Admin",
            role=UserRole.ADMIN,
        ))
        session.commit()
    finally:
        session.close()

    response = client.post("/api/v1/accounts/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.json()
    return auth_headers(response.json()["data"]["access_token"])

def create_slot(client, doctor_headers, days=2):
    response = client.post("/api/v1/practitioners/me/slots", json={
        "start_time": future(days).isoformat(),
        "end_time": future(days, hours=1).isoformat(),
    }, headers=doctor_headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]["slot"]
