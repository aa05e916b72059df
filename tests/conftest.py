"""Shared fixtures: in-memory collaborators, no network and no MongoDB."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import pytest

from cardio_intake.consultation.negotiation import SlotNegotiationEngine
from cardio_intake.consultation.orchestrator import ConsultationOrchestrator
from cardio_intake.models.patient import (
    Appointment,
    BookingResult,
    CaseData,
    NotificationResult,
    Patient,
)
from cardio_intake.models.symptom import Symptom
from cardio_intake.models.triage import Severity
from cardio_intake.services.nlp_service import NLPService
from cardio_intake.services.session_service import InMemorySessionStore

FIRST_SLOT = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


def slot_series(count: int, start: datetime = FIRST_SLOT) -> List[datetime]:
    return [start + timedelta(minutes=30 * i) for i in range(count)]


class FakePatientRepository:
    def __init__(self, catalog: List[Symptom]):
        self.catalog = catalog
        self.patients: Dict[str, Patient] = {}
        self.complaints: List[dict] = []
        self.appointments: List[Appointment] = []
        self.snapshots: List[dict] = []
        self.severities: List[Severity] = []
        self.chat: List[dict] = []
        self.failing = set()

    def _check(self, operation: str):
        if operation in self.failing:
            raise RuntimeError(f"{operation} unavailable")

    async def upsert_patient(self, channel_id: str, patient: Patient) -> Patient:
        self._check("upsert_patient")
        existing = next((p for p in self.patients.values() if p.channel_id == channel_id), None)
        base = existing or Patient(id=f"patient-{len(self.patients) + 1}", channel_id=channel_id)
        fields = patient.model_dump(include={"name", "email", "phone", "severity"}, exclude_none=True)
        updated = base.model_copy(update=fields)
        self.patients[updated.id] = updated
        return updated

    async def upsert_patient_by_email(self, email, name=None, phone=None, channel_id=None):
        self._check("upsert_patient_by_email")
        existing = next((p for p in self.patients.values() if p.email == email), None)
        base = existing or Patient(id=f"patient-{len(self.patients) + 1}", email=email)
        fields = {"name": name, "phone": phone, "channel_id": channel_id}
        updated = base.model_copy(update={k: v for k, v in fields.items() if v})
        self.patients[updated.id] = updated
        return updated

    async def save_chief_complaint(self, patient_id, symptom_name, responses) -> str:
        self._check("save_chief_complaint")
        self.complaints.append(
            {"patient_id": patient_id, "symptom_name": symptom_name, "responses": responses}
        )
        return f"complaint-{len(self.complaints)}"

    async def save_appointment(self, appointment: Appointment) -> str:
        self._check("save_appointment")
        self.appointments.append(appointment)
        return appointment.appointment_id

    async def update_case_snapshot(
        self, patient_id: str, case: CaseData, appointment_time: Optional[datetime]
    ) -> Optional[Patient]:
        self._check("update_case_snapshot")
        self.snapshots.append({"patient_id": patient_id, "appointment_time": appointment_time})
        patient = self.patients.get(patient_id)
        if patient is None:
            return None
        updated = patient.model_copy(
            update={
                "symptom": case.symptom,
                "responses": case.responses,
                "severity": case.severity,
                "appointment_time": appointment_time,
            }
        )
        self.patients[patient_id] = updated
        return updated

    async def update_severity(self, patient_id: str, severity: Severity) -> bool:
        self._check("update_severity")
        self.severities.append(severity)
        return True

    async def list_symptom_catalog(self) -> List[Symptom]:
        self._check("list_symptom_catalog")
        return list(self.catalog)

    async def save_chat_message(self, patient_id, message, sender, message_type="text"):
        self._check("save_chat_message")
        self.chat.append({"patient_id": patient_id, "message": message, "sender": sender})


class FakeCalendar:
    def __init__(self, slots: Optional[List[datetime]] = None):
        self.slots = slots or []
        self.requests: List[int] = []
        self.bookings: List[datetime] = []
        self.lookup_error: Optional[Exception] = None
        self.rejected = set()

    async def next_available_slots(
        self, severity, duration_minutes=30, step_minutes=15, limit=1, now=None
    ) -> List[datetime]:
        self.requests.append(limit)
        if self.lookup_error:
            raise self.lookup_error
        return list(self.slots[:limit])

    async def book(self, patient, case, start) -> BookingResult:
        self.bookings.append(start)
        if start in self.rejected:
            return BookingResult(success=False, error="slot no longer free")
        return BookingResult(
            success=True, event_id=f"evt-{len(self.bookings)}", scheduled_time=start
        )

    async def book_next_available(self, patient, case) -> BookingResult:
        if not self.slots:
            return BookingResult(success=False, error="Google Calendar not configured")
        return await self.book(patient, case, self.slots[0])


class FakeNotifier:
    def __init__(self):
        self.sent: List[dict] = []
        self.error: Optional[Exception] = None

    async def notify_provider(self, patient, case, scheduled_time) -> NotificationResult:
        if self.error:
            raise self.error
        self.sent.append({"patient": patient, "case": case, "scheduled_time": scheduled_time})
        return NotificationResult(success=True, message_id=len(self.sent))


@pytest.fixture
def catalog() -> List[Symptom]:
    return [
        Symptom(
            name="Chest Pain / Discomfort",
            follow_up_questions={
                "onset": ["When did the chest pain start?"],
                "red_flags": ["Are you sweating heavily or feeling faint?"],
            },
        ),
        Symptom(
            name="Palpitations",
            follow_up_questions={
                "character": ["Does your heart race or skip beats?"],
                "triggers": ["Do you notice them after coffee?", "Or after exercise?"],
            },
        ),
        Symptom(name="Routine Heart Checkup", follow_up_questions={}),
    ]


@pytest.fixture
def patients(catalog) -> FakePatientRepository:
    return FakePatientRepository(catalog)


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar(slot_series(10))


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def nlp() -> NLPService:
    return NLPService(llm=None)


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def engine(calendar, patients, notifier, nlp) -> SlotNegotiationEngine:
    return SlotNegotiationEngine(
        calendar, patients, notifier, nlp, max_offered_slots=8, timezone_name="UTC"
    )


@pytest.fixture
def make_orchestrator(store, nlp, patients, calendar, notifier, engine):
    def factory(initial_state: str = "collecting_symptoms") -> ConsultationOrchestrator:
        return ConsultationOrchestrator(
            store,
            nlp,
            patients,
            calendar,
            notifier,
            negotiation=engine,
            initial_state=initial_state,
            symptom_hint_count=10,
        )

    return factory


@pytest.fixture
def orchestrator(make_orchestrator) -> ConsultationOrchestrator:
    return make_orchestrator()
