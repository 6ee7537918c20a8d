import pytest
from fastapi.testclient import TestClient
from medisync.main import create_app
from medisync.models import TranscriptExtraction
from medisync.routes import phone
from tests.conftest import FakeExtractor, FakeSuggester, FakeSummarizer


BOOKING = {
    "patient_name": "Sarah Connor",
    "patient_age": 35,
    "symptoms": "sore throat",
    "doctor_id": "doc1",
    "appointment_date": "2024-06-20T14:30:00",
}


@pytest.fixture
def extractor():
    return FakeExtractor(TranscriptExtraction.model_validate({
        "patientName": "sarah connor",
        "patientAge": 35,
        "symptoms": "sore throat",
        "doctorQuery": "Mehta",
        "appointmentDateYYYYMMDD": "2024-06-20",
        "appointmentTimeHHMM": "14:30",
    }))


@pytest.fixture
def suggester(cough_suggestion):
    return FakeSuggester(cough_suggestion)


@pytest.fixture
def client(engine, extractor, suggester, monkeypatch):
    monkeypatch.setattr(phone, "TWILIO_AUTH_TOKEN", None)
    app = create_app(bind=engine, extractor=extractor, suggester=suggester, summarizer=FakeSummarizer(), seed=True)
    with TestClient(app) as client:
        yield client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["doctors"] == 3
    assert response.json()["patients"] == 4


def test_list_patients_sort_and_search(client):
    names = [p["name"] for p in client.get("/api/patients", params={"sort": "name", "direction": "asc"}).json()]
    assert names == ["Amit Patel", "Priya Singh", "Rohan Sharma", "Sunita Reddy"]

    found = client.get("/api/patients", params={"search": "SHARMA"}).json()
    assert [p["name"] for p in found] == ["Rohan Sharma"]
    assert found[0]["is_temporary"] is False

    assert client.get("/api/patients", params={"sort": "height"}).status_code == 422


def test_create_get_and_update_patient(client):
    response = client.post("/api/patients", json={"name": "Jane Doe", "age": 40})
    assert response.status_code == 201
    patient_id = response.json()["data"]["id"]

    assert client.get(f"/api/patients/{patient_id}").json()["name"] == "Jane Doe"
    response = client.patch(f"/api/patients/{patient_id}", json={"diagnosis": "Flu"})
    assert response.json()["data"]["diagnosis"] == "Flu"
    assert client.get("/api/patients/missing").status_code == 404


def test_book_appointment_and_complete(client):
    response = client.post("/api/book-appointment", json=BOOKING)
    assert response.status_code == 201
    appointment = response.json()["data"]
    assert appointment["doctor_name"] == "Dr. Alisha Mehta"

    assert [a["id"] for a in client.get("/api/doctors/doc1/appointments").json()] == [appointment["id"]]

    url = f"/api/appointments/{appointment['id']}/status"
    assert client.patch(url, json={"status": "Completed"}).json()["data"]["status"] == "Completed"
    assert client.patch(url, json={"status": "Scheduled"}).status_code == 409
    assert client.patch("/api/appointments/nope/status", json={"status": "Completed"}).status_code == 404


def test_book_appointment_validation(client):
    response = client.post("/api/book-appointment", json={**BOOKING, "doctor_id": "doc9"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Selected doctor not found."


def test_doctor_lookup_by_email(client):
    assert client.get("/api/doctors/by-email", params={"email": " Vikram.Rao@medisync.now "}).json()["id"] == "doc2"
    assert client.get("/api/doctors/by-email", params={"email": "someone@else.com"}).status_code == 404


def test_appointment_patient_is_temporary_when_unknown(client):
    appointment = client.post("/api/book-appointment", json=BOOKING).json()["data"]
    patient = client.get(f"/api/appointments/{appointment['id']}/patient").json()
    assert patient["is_temporary"] is True
    assert patient["id"] == f"temp-appointment-{appointment['id']}"

    known = client.post("/api/book-appointment", json={**BOOKING, "patient_name": "amit patel"}).json()["data"]
    assert client.get(f"/api/appointments/{known['id']}/patient").json()["name"] == "Amit Patel"


def test_prescription_flow_promotes_temporary_patient(client):
    appointment = client.post("/api/book-appointment", json=BOOKING).json()["data"]

    response = client.post("/api/prescriptions/suggest", json={
        "appointment_id": appointment["id"],
        "symptoms": "sore throat",
        "diagnosis": "Pharyngitis",
        "doctor_id": "doc1",
    })
    assert response.status_code == 200
    assistant_id = response.json()["assistant_id"]
    assert response.json()["patient"]["is_temporary"] is True

    response = client.patch(f"/api/prescriptions/{assistant_id}/medications/0", json={"field": "dosage", "value": "20mg"})
    assert response.json()["suggestion"]["medications"][0]["dosage"] == "20mg"

    response = client.post(f"/api/prescriptions/{assistant_id}/commit")
    assert response.status_code == 200
    body = response.json()
    assert body["patient"]["is_temporary"] is False
    assert body["prescription"].startswith("Prescribed on: ")
    assert "Dextromethorphan 20mg" in body["prescription"]

    patients = client.get("/api/patients").json()
    assert patients[0]["name"] == "Sarah Connor"
    assert len(patients) == 5


def test_suggest_reports_unavailable_collaborator(client, suggester, unavailable):
    suggester.result = unavailable
    patient_id = client.get("/api/patients").json()[0]["id"]
    response = client.post("/api/prescriptions/suggest", json={
        "patient_id": patient_id, "symptoms": "cough", "diagnosis": "Cold",
    })
    assert response.status_code == 502


def test_shift_summary(client):
    client.post("/api/book-appointment", json=BOOKING)
    client.post("/api/book-appointment", json={**BOOKING, "patient_name": "Amit Patel"})
    response = client.post("/api/doctors/doc1/summary", json={"shift_date": "2024-06-20"})
    assert response.status_code == 200
    assert response.json()["patientCount"] == 2


def test_transcript_endpoint_merges_into_form(client, extractor):
    response = client.post("/api/intake/transcript", json={
        "transcript": "Sarah Connor, 35, sore throat, Doctor Mehta on June 20th at 2:30",
        "current_date": "2024-06-18",
        "form": {"patient_name": "someone else", "doctor_id": "doc2"},
    })
    body = response.json()
    assert body["outcomes"] == ["fields_updated"]
    assert body["form"]["patient_name"] == "Sarah Connor"
    assert body["form"]["doctor_id"] == "doc1"
    assert extractor.calls[0][1] == "2024-06-18"


def receive_until(ws, prefix):
    while True:
        message = ws.receive_text()
        if message.startswith(prefix):
            return message


def test_websocket_intake_books(client):
    with client.websocket_connect("/ws/intake") as ws:
        assert "Dr. Alisha Mehta" in receive_until(ws, "DOCTORS: ")
        receive_until(ws, "FORM: ")

        ws.send_text("START")
        receive_until(ws, "STATE: listening")
        ws.send_text("TRANSCRIPT: Sarah Connor, 35, sore throat, Doctor Mehta on June 20th at 2:30")
        assert receive_until(ws, "TRANSCRIPT: ").endswith("2:30")
        assert "Sarah Connor" in receive_until(ws, "FORM: ")

        ws.send_text("BOOK")
        assert "Sarah Connor" in receive_until(ws, "BOOKED: ")

    assert len(client.get("/api/appointments").json()) == 1


def test_websocket_book_with_empty_form_is_rejected(client):
    with client.websocket_connect("/ws/intake") as ws:
        receive_until(ws, "FORM: ")
        ws.send_text("BOOK")
        assert receive_until(ws, "NOTICE: ") == "NOTICE: Selected doctor not found."


def test_phone_call_books_appointment(client):
    response = client.post("/api/phone/voice", data={"CallSid": "CA1", "From": "+15550001"})
    assert response.status_code == 200
    assert "<Gather" in response.text

    response = client.post("/api/phone/process_speech", data={
        "CallSid": "CA1",
        "SpeechResult": "Sarah Connor, 35, sore throat, Doctor Mehta on June 20th at 2:30",
    })
    assert "booked with Dr. Alisha Mehta" in response.text
    assert "<Hangup" in response.text
    assert client.app.state.phone_calls == {}
    assert len(client.get("/api/appointments").json()) == 1


def test_phone_call_reprompts_on_silence(client):
    client.post("/api/phone/voice", data={"CallSid": "CA2"})
    response = client.post("/api/phone/process_speech", data={"CallSid": "CA2", "SpeechResult": ""})
    assert "try again" in response.text
    assert "<Gather" in response.text

    response = client.post("/api/phone/no_input", data={"CallSid": "CA2"})
    assert "<Hangup" in response.text
    assert "CA2" not in client.app.state.phone_calls


def test_phone_webhook_signature_is_checked(client, monkeypatch):
    monkeypatch.setattr(phone, "TWILIO_AUTH_TOKEN", "secret")
    response = client.post("/api/phone/voice", data={"CallSid": "CA3"})
    assert response.status_code == 403
