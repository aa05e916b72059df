"""WebSocket channel and catalog endpoint.

The client is used without its context manager so the MongoDB lifespan never
runs; collaborators come from the in-memory fakes.
"""

import pytest
from fastapi.testclient import TestClient

from cardio_intake.api.chat import UNREADABLE_FRAME
from cardio_intake.api.dependencies import get_orchestrator, get_patients
from main import app


@pytest.fixture
def client(orchestrator, patients):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_patients] = lambda: patients
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_symptom_catalog(client):
    response = client.get("/api/v1/symptoms")

    assert response.status_code == 200
    names = [s["name"] for s in response.json()["symptoms"]]
    assert names == ["Chest Pain / Discomfort", "Palpitations", "Routine Heart Checkup"]


def test_symptom_catalog_failure(client, patients):
    patients.failing.add("list_symptom_catalog")

    response = client.get("/api/v1/symptoms")

    assert response.status_code == 500


def test_chat_conversation(client):
    with client.websocket_connect("/ws/chat") as ws:
        greeting = ws.receive_json()
        assert greeting["type"] == "bot_message"
        assert "describe what you're experiencing" in greeting["message"]

        ws.send_json({"type": "chat_message", "message": "I keep getting palpitations"})
        assert ws.receive_json()["type"] == "typing"
        reply = ws.receive_json()
        assert reply["type"] == "bot_message"
        assert "Does your heart race or skip beats?" in reply["message"]


def test_frame_without_type_is_a_chat_message(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.receive_json()

        ws.send_json({"message": "I have chest pain"})
        assert ws.receive_json()["type"] == "typing"
        assert "When did the chest pain start?" in ws.receive_json()["message"]


def test_malformed_frames_get_an_apology(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.receive_json()

        ws.send_text("{not json")
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["message"] == UNREADABLE_FRAME

        ws.send_json({"type": "chat_message", "message": "x" * 5000})
        assert ws.receive_json()["type"] == "error"


def test_attach_patient_frame(client, patients):
    with client.websocket_connect("/ws/chat") as ws:
        ws.receive_json()

        ws.send_json({"type": "typing"})
        ws.send_json({"type": "attach_patient", "email": "jane@example.com", "full_name": "Jane"})
        ws.send_json({"type": "chat_message", "message": "I keep getting palpitations"})

        assert ws.receive_json()["type"] == "typing"
        assert ws.receive_json()["type"] == "bot_message"

    assert [p.email for p in patients.patients.values()] == ["jane@example.com"]


def test_register_patient(client, patients):
    response = client.post(
        "/api/patient", json={"email": "jane@example.com", "fullName": "Jane Doe", "phone": "555"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["patient"]["email"] == "jane@example.com"
    assert body["patient"]["name"] == "Jane Doe"
    assert len(patients.patients) == 1


def test_register_patient_requires_email(client, patients):
    response = client.post("/api/patient", json={"fullName": "Jane Doe"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Email is required"
    assert patients.patients == {}


def test_register_patient_storage_failure(client, patients):
    patients.failing.add("upsert_patient_by_email")

    response = client.post("/api/patient", json={"email": "jane@example.com"})

    assert response.status_code == 500
