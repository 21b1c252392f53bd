import pytest

from .conftest import create_admin, register_doctor, register_patient

@pytest.fixture
def parties(client):
    doctor, doctor_headers = register_doctor(client)
    patient, patient_headers = register_patient(client)
    return doctor, doctor_headers, patient, patient_headers

def open_session(client, headers, **payload):
    response = client.post("/api/v1/sessions", json=payload, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]["session"]

def send(client, headers, session_id, content="Hello"):
    return client.post(
        f"/api/v1/sessions/{session_id}/messages",
        json={"content": content},
        headers=headers,
    )

def unread(client, headers):
    response = client.get("/api/v1/messages/unread-count", headers=headers)
    assert response.status_code == 200
    return response.json()["data"]["unread_count"]

class TestSessions:

    def test_patient_opens_session(self, client, parties):
        doctor, _, patient, patient_headers = parties

        session = open_session(client, patient_headers, doctor_id=doctor["id"])
        assert session["status"] == "ACTIVE"
        assert session["patient_id"] == patient["id"]
        assert session["doctor_id"] == doctor["id"]

    def test_doctor_opens_session_with_patient(self, client, parties):
        doctor, doctor_headers, patient, _ = parties

        session = open_session(client, doctor_headers, patient_id=patient["id"])
        assert session["doctor_id"] == doctor["id"]
        assert session["patient_id"] == patient["id"]

    def test_missing_counterpart_is_a_validation_error(self, client, parties):
        _, _, _, patient_headers = parties

        response = client.post("/api/v1/sessions", json={}, headers=patient_headers)
        assert response.status_code == 400
        assert response.json()["errors"] == ["doctor_id is required"]

    def test_unknown_doctor_is_not_found(self, client, parties):
        _, _, _, patient_headers = parties

        response = client.post("/api/v1/sessions", json={"doctor_id": 999}, headers=patient_headers)
        assert response.status_code == 404

    def test_sessions_require_authentication(self, client):
        assert client.get("/api/v1/sessions").status_code == 401
        assert client.get("/api/v1/sessions/1").status_code == 401

    def test_missing_session_is_not_found(self, client, parties):
        _, _, _, patient_headers = parties

        response = client.get("/api/v1/sessions/999", headers=patient_headers)
        assert response.status_code == 404
        assert send(client, patient_headers, 999).status_code == 404

    def test_outsider_cannot_read_but_admin_can(self, client, parties):
        doctor, _, _, patient_headers = parties
        _, outsider_headers = register_patient(client, email="outsider@example.com")
        admin_headers = create_admin(client)
        session = open_session(client, patient_headers, doctor_id=doctor["id"])

        response = client.get(f"/api/v1/sessions/{session['id']}", headers=outsider_headers)
        assert response.status_code == 403

        response = client.get(f"/api/v1/sessions/{session['id']}", headers=admin_headers)
        assert response.status_code == 200

    def test_list_sessions_is_scoped(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        _, outsider_headers = register_patient(client, email="outsider@example.com")
        open_session(client, patient_headers, doctor_id=doctor["id"])

        def total(headers):
            return client.get("/api/v1/sessions", headers=headers).json()["data"]["pagination"]["total"]

        assert total(patient_headers) == 1
        assert total(doctor_headers) == 1
        assert total(outsider_headers) == 0

    def test_end_session_twice_conflicts(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])
        url = f"/api/v1/sessions/{session['id']}/end"

        response = client.post(url, headers=doctor_headers)
        assert response.status_code == 200
        ended = response.json()["data"]["session"]
        assert ended["status"] == "ENDED"
        assert ended["ended_at"] is not None

        assert client.post(url, headers=doctor_headers).status_code == 409

class TestMessages:

    def test_exchange_and_history_order(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])

        assert send(client, patient_headers, session["id"], "first").status_code == 201
        assert send(client, doctor_headers, session["id"], "second").status_code == 201
        assert send(client, patient_headers, session["id"], "third").status_code == 201

        response = client.get(f"/api/v1/sessions/{session['id']}/messages", headers=doctor_headers)
        assert response.status_code == 200
        contents = [m["content"] for m in response.json()["data"]["messages"]]
        assert contents == ["first", "second", "third"]

        detail = client.get(f"/api/v1/sessions/{session['id']}", headers=patient_headers).json()
        assert len(detail["data"]["session"]["messages"]) == 3

    def test_outsider_cannot_send(self, client, parties):
        doctor, _, _, patient_headers = parties
        _, outsider_headers = register_patient(client, email="outsider@example.com")
        session = open_session(client, patient_headers, doctor_id=doctor["id"])

        response = send(client, outsider_headers, session["id"])
        assert response.status_code == 403

    def test_admin_cannot_send(self, client, parties):
        doctor, _, _, patient_headers = parties
        admin_headers = create_admin(client)
        session = open_session(client, patient_headers, doctor_id=doctor["id"])

        assert send(client, admin_headers, session["id"]).status_code == 403

    def test_cannot_send_after_end(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])
        client.post(f"/api/v1/sessions/{session['id']}/end", headers=doctor_headers)

        response = send(client, patient_headers, session["id"])
        assert response.status_code == 409
        assert response.json()["message"] == "Cannot send message to inactive session"

    def test_empty_message_rejected(self, client, parties):
        doctor, _, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])

        assert send(client, patient_headers, session["id"], "").status_code == 400

    def test_mark_read_only_touches_other_side(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])

        send(client, patient_headers, session["id"], "from patient")
        send(client, doctor_headers, session["id"], "from doctor 1")
        send(client, doctor_headers, session["id"], "from doctor 2")

        assert unread(client, patient_headers) == 2
        assert unread(client, doctor_headers) == 1

        response = client.post(f"/api/v1/sessions/{session['id']}/read", headers=patient_headers)
        assert response.status_code == 200
        assert response.json()["data"]["updated"] == 2

        assert unread(client, patient_headers) == 0
        assert unread(client, doctor_headers) == 1

        messages = client.get(
            f"/api/v1/sessions/{session['id']}/messages", headers=patient_headers
        ).json()["data"]["messages"]
        read_flags = {m["content"]: m["is_read"] for m in messages}
        assert read_flags == {"from patient": False, "from doctor 1": True, "from doctor 2": True}

    def test_unread_count_ignores_ended_sessions(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])
        send(client, doctor_headers, session["id"])
        assert unread(client, patient_headers) == 1

        client.post(f"/api/v1/sessions/{session['id']}/end", headers=patient_headers)
        assert unread(client, patient_headers) == 0

    def test_only_sender_deletes_message(self, client, parties):
        doctor, doctor_headers, _, patient_headers = parties
        session = open_session(client, patient_headers, doctor_id=doctor["id"])
        message = send(client, patient_headers, session["id"]).json()["data"]["message"]

        response = client.delete(f"/api/v1/messages/{message['id']}", headers=doctor_headers)
        assert response.status_code == 403

        response = client.delete(f"/api/v1/messages/{message['id']}", headers=patient_headers)
        assert response.status_code == 200

        assert client.delete(f"/api/v1/messages/{message['id']}", headers=patient_headers).status_code == 404
