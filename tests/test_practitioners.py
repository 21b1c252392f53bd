from datetime import datetime, timedelta

import pytest

from medbook.core.exceptions import ConflictError
from medbook.models.doctor import Doctor
from medbook.models.user import User
from medbook.schemas.doctor import DoctorRegister
from medbook.services.doctor_service import LICENSE_TAKEN, DoctorService

from .conftest import create_admin, create_slot, future, register_doctor, register_patient

class TestDoctorRegistration:

    def test_register_doctor(self, client):
        doctor, headers = register_doctor(client, verified=False)
        assert doctor["license_number"] == "LIC-100"
        assert doctor["consultation_fee"] == 5000
        assert doctor["is_verified"] is False
        assert doctor["user"]["email"] == "doctor@example.com"

        response = client.get("/api/v1/accounts/me", headers=headers)
        assert response.json()["data"]["user"]["role"] == "DOCTOR"

    def test_duplicate_email_conflicts(self, client):
        register_patient(client, email="taken@example.com")

        response = client.post("/api/v1/practitioners/register", json={
            "email": "taken@example.com",
            "password": "secret123",
            "name": "Dr. Dup",
            "license_number": "LIC-200",
            "specialty": "Neurology",
            "consultation_fee": 1000,
        })
        assert response.status_code == 409

    def test_duplicate_license_conflicts_and_creates_nothing(self, client):
        register_doctor(client)
        admin_headers = create_admin(client)

        response = client.post("/api/v1/practitioners/register", json={
            "email": "other@example.com",
            "password": "secret123",
            "name": "Dr. Other",
            "license_number": "LIC-100",
            "specialty": "Neurology",
            "consultation_fee": 1000,
        })
        assert response.status_code == 409
        assert "license" in response.json()["message"]

        users = client.get("/api/v1/accounts", headers=admin_headers).json()["data"]["users"]
        assert "other@example.com" not in [user["email"] for user in users]

    def test_license_claimed_between_check_and_insert(self, client, db, monkeypatch):
        register_doctor(client)

        # The second request checked before the first one committed
        monkeypatch.setattr(DoctorService, "license_taken", lambda self, license_number: False)

        with pytest.raises(ConflictError) as exc_info:
            DoctorService(db).register(DoctorRegister(
                email="late@example.com",
                password="secret123",
                name="Dr. Late",
                license_number="LIC-100",
                specialty="Neurology",
                consultation_fee=1000,
            ))
        assert exc_info.value.detail == LICENSE_TAKEN

        assert db.query(User).filter(User.email == "late@example.com").count() == 0
        assert db.query(Doctor).count() == 1

class TestDirectory:

    def test_directory_hides_unverified_and_unavailable(self, client):
        register_doctor(client, email="a@example.com", license_number="A")
        register_doctor(client, email="b@example.com", license_number="B", verified=False)
        _, hidden_headers = register_doctor(client, email="c@example.com", license_number="C")
        client.put("/api/v1/practitioners/me", json={"is_available": False}, headers=hidden_headers)

        response = client.get("/api/v1/practitioners")
        assert response.status_code == 200
        doctors = response.json()["data"]["doctors"]
        assert [doctor["license_number"] for doctor in doctors] == ["A"]

    def test_directory_hides_deactivated_accounts(self, client):
        _, headers = register_doctor(client)
        client.post("/api/v1/accounts/me/deactivate", headers=headers)

        response = client.get("/api/v1/practitioners")
        assert response.json()["data"]["doctors"] == []

    def test_search_matches_name_specialty_or_bio(self, client):
        register_doctor(client, email="a@example.com", license_number="A",
                        name="Dr. Alice Heart", specialty="Cardiology", bio="Cardiac care")
        register_doctor(client, email="b@example.com", license_number="B",
                        name="Dr. Bob Skin", specialty="Dermatology", bio="Treats eczema")

        def search(text):
            response = client.get("/api/v1/practitioners", params={"search": text})
            return sorted(doctor["license_number"] for doctor in response.json()["data"]["doctors"])

        assert search("alice") == ["A"]
        assert search("DERMA") == ["B"]
        assert search("eczema") == ["B"]
        assert search("dr.") == ["A", "B"]

    def test_filter_by_specialty(self, client):
        register_doctor(client, email="a@example.com", license_number="A", specialty="Cardiology")
        register_doctor(client, email="b@example.com", license_number="B", specialty="Neurology")

        response = client.get("/api/v1/practitioners", params={"specialty": "Neurology"})
        data = response.json()["data"]
        assert [doctor["license_number"] for doctor in data["doctors"]] == ["B"]
        assert data["pagination"]["total"] == 1

    def test_public_detail_lists_open_slots(self, client):
        doctor, headers = register_doctor(client)
        slot = create_slot(client, headers)

        response = client.get(f"/api/v1/practitioners/{doctor['id']}")
        assert response.status_code == 200
        detail = response.json()["data"]["doctor"]
        assert [s["id"] for s in detail["slots"]] == [slot["id"]]

    def test_public_detail_of_unverified_doctor_is_not_found(self, client):
        doctor, _ = register_doctor(client, verified=False)

        response = client.get(f"/api/v1/practitioners/{doctor['id']}")
        assert response.status_code == 404

class TestDoctorProfile:

    def test_profile_requires_doctor_role(self, client):
        _, headers = register_patient(client)

        response = client.get("/api/v1/practitioners/me", headers=headers)
        assert response.status_code == 403

    def test_update_touches_account_and_profile(self, client):
        _, headers = register_doctor(client)

        response = client.put("/api/v1/practitioners/me", json={
            "name": "Dr. Renamed",
            "consultation_fee": 7500,
            "experience": 12,
        }, headers=headers)
        assert response.status_code == 200

        doctor = response.json()["data"]["doctor"]
        assert doctor["user"]["name"] == "Dr. Renamed"
        assert doctor["consultation_fee"] == 7500
        assert doctor["experience"] == 12
        assert doctor["specialty"] == "Cardiology"

    @pytest.mark.parametrize("field", ["name", "specialty", "consultation_fee", "experience", "is_available"])
    def test_update_rejects_null_for_required_fields(self, client, field):
        _, headers = register_doctor(client)

        response = client.put("/api/v1/practitioners/me", json={field: None}, headers=headers)
        assert response.status_code == 400
        assert any(error.startswith(f"{field}:") for error in response.json()["errors"])

        doctor = client.get("/api/v1/practitioners/me", headers=headers).json()["data"]["doctor"]
        assert doctor["consultation_fee"] == 5000
        assert doctor["user"]["name"] == "Dr. Heart"

    def test_stats_start_empty(self, client):
        _, headers = register_doctor(client)

        response = client.get("/api/v1/practitioners/me/stats", headers=headers)
        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["total_bookings"] == 0
        assert stats["total_revenue"] == 0
        assert stats["average_rating"] == 0

class TestSlots:

    def test_slot_end_must_follow_start(self, client):
        _, headers = register_doctor(client)

        response = client.post("/api/v1/practitioners/me/slots", json={
            "start_time": future(2).isoformat(),
            "end_time": future(1).isoformat(),
        }, headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Validation error"

    def test_slot_times_are_stored_in_utc(self, client):
        _, headers = register_doctor(client)
        start = future(2)
        offset = timedelta(hours=5)

        response = client.post("/api/v1/practitioners/me/slots", json={
            "start_time": (start + offset).isoformat() + "+05:00",
            "end_time": (start + offset + timedelta(hours=1)).isoformat() + "+05:00",
        }, headers=headers)
        assert response.status_code == 201
        slot = response.json()["data"]["slot"]
        assert slot["start_time"] == start.isoformat()
        assert slot["end_time"] == (start + timedelta(hours=1)).isoformat()

    def test_slot_start_in_the_past_once_converted_to_utc(self, client):
        _, headers = register_doctor(client)
        # An hour ahead on the wall clock at +05:00 is four hours ago in UTC
        local_start = datetime.utcnow().replace(microsecond=0) + timedelta(hours=1)

        response = client.post("/api/v1/practitioners/me/slots", json={
            "start_time": local_start.isoformat() + "+05:00",
            "end_time": (local_start + timedelta(hours=1)).isoformat() + "+05:00",
        }, headers=headers)
        assert response.status_code == 400

    def test_delete_free_slot(self, client):
        doctor, headers = register_doctor(client)
        slot = create_slot(client, headers)

        response = client.delete(f"/api/v1/practitioners/me/slots/{slot['id']}", headers=headers)
        assert response.status_code == 200

        response = client.get(f"/api/v1/practitioners/{doctor['id']}/slots")
        assert response.json()["data"]["slots"] == []

    def test_cannot_delete_booked_slot(self, client):
        doctor, doctor_headers = register_doctor(client)
        slot = create_slot(client, doctor_headers)
        _, patient_headers = register_patient(client)

        client.post("/api/v1/bookings", json={
            "doctor_id": doctor["id"],
            "slot_id": slot["id"],
            "appointment_date": future(2).isoformat(),
            "consultation_type": "ONLINE",
        }, headers=patient_headers)

        response = client.delete(f"/api/v1/practitioners/me/slots/{slot['id']}", headers=doctor_headers)
        assert response.status_code == 409

class TestVerification:

    def test_admin_verifies_doctor(self, client):
        doctor, _ = register_doctor(client, verified=False)
        admin_headers = create_admin(client)

        response = client.put(
            f"/api/v1/practitioners/{doctor['id']}/verify",
            json={"is_verified": True},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["doctor"]["is_verified"] is True

        listed = client.get("/api/v1/practitioners").json()["data"]["doctors"]
        assert [d["id"] for d in listed] == [doctor["id"]]

    def test_verify_requires_admin(self, client):
        doctor, headers = register_doctor(client, verified=False)

        response = client.put(
            f"/api/v1/practitioners/{doctor['id']}/verify",
            json={"is_verified": True},
            headers=headers,
        )
        assert response.status_code == 403

    def test_verify_unknown_doctor(self, client):
        admin_headers = create_admin(client)

        response = client.put("/api/v1/practitioners/999/verify", json={}, headers=admin_headers)
        assert response.status_code == 404
