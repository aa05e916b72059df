"""Patient, complaint and appointment persistence."""

from cardio_intake.models.patient import Appointment, CaseData, ChiefComplaint, Patient
from cardio_intake.models.symptom import Symptom
from cardio_intake.models.triage import Severity
from cardio_intake.config.database import Database
from cardio_intake.config.settings import settings
from typing import Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel
import uuid
import logging

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_document(model: BaseModel, **kwargs) -> dict:
    """Dump for MongoDB: datetimes stay native, enums are stored by value."""
    doc = model.model_dump(**kwargs)
    return {k: v.value if isinstance(v, Enum) else v for k, v in doc.items()}


def _patient_from_doc(doc: dict) -> Patient:
    doc = dict(doc)
    doc.pop("_id", None)
    return Patient(**doc)


class PatientService:
    """Service for everything the consultation writes to MongoDB."""

    def _collection(self, name: str):
        return Database.get_collection(name)

    @property
    def patients(self):
        return self._collection(settings.mongodb_collection_patients)

    async def upsert_patient(self, channel_id: str, patient: Patient) -> Patient:
        """
        Create or update the patient linked to a channel.

        Args:
            channel_id: Channel the patient is chatting on
            patient: Known fields; None values never overwrite stored ones

        Returns:
            Refreshed Patient including its id
        """
        existing = await self.patients.find_one({"channel_id": channel_id})
        if existing is None and patient.id:
            existing = await self.patients.find_one({"id": patient.id})

        fields = _to_document(
            patient, include={"name", "email", "phone", "severity"}, exclude_none=True
        )

        if existing:
            await self.patients.update_one(
                {"id": existing["id"]},
                {"$set": {**fields, "channel_id": channel_id, "updated_at": _now()}},
            )
            logger.info(f"Updated patient {existing['id']} for channel {channel_id}")
            return _patient_from_doc({**existing, **fields, "channel_id": channel_id})

        created = Patient(id=str(uuid.uuid4()), channel_id=channel_id, **fields)
        await self.patients.insert_one(_to_document(created))
        logger.info(f"Created patient {created.id} for channel {channel_id}")
        return created

    async def upsert_patient_by_email(
        self,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> Patient:
        """Create or update a patient keyed by email (pre-chat form)."""
        fields = {"name": name, "phone": phone, "channel_id": channel_id}
        fields = {k: v for k, v in fields.items() if v}

        existing = await self.patients.find_one({"email": email})
        if existing:
            await self.patients.update_one(
                {"id": existing["id"]}, {"$set": {**fields, "updated_at": _now()}}
            )
            logger.info(f"Updated patient {existing['id']} by email")
            return _patient_from_doc({**existing, **fields})

        created = Patient(id=str(uuid.uuid4()), email=email, **fields)
        await self.patients.insert_one(_to_document(created))
        logger.info(f"Created patient {created.id} by email")
        return created

    async def save_chief_complaint(
        self, patient_id: Optional[str], symptom_name: str, responses: Dict[str, List[str]]
    ) -> str:
        """Store the answered follow-up questions; returns the complaint id."""
        complaint = ChiefComplaint(
            patient_id=patient_id, symptom_name=symptom_name, responses=responses
        )
        collection = self._collection(settings.mongodb_collection_complaints)
        await collection.insert_one(_to_document(complaint))
        logger.info(f"Saved chief complaint {complaint.complaint_id} ({symptom_name})")
        return complaint.complaint_id

    async def save_appointment(self, appointment: Appointment) -> str:
        collection = self._collection(settings.mongodb_collection_appointments)
        await collection.insert_one(_to_document(appointment))
        logger.info(
            f"Saved appointment {appointment.appointment_id} "
            f"for patient {appointment.patient_id} at {appointment.scheduled_time.isoformat()}"
        )
        return appointment.appointment_id

    async def update_case_snapshot(
        self, patient_id: str, case: CaseData, appointment_time: Optional[datetime]
    ) -> Optional[Patient]:
        """Record the latest case on the patient and return the refreshed copy."""
        update = {
            "symptom": case.symptom,
            "responses": case.responses,
            "severity": case.severity.value if case.severity else None,
            "appointment_time": appointment_time,
            "updated_at": _now(),
        }
        await self.patients.update_one({"id": patient_id}, {"$set": update})
        doc = await self.patients.find_one({"id": patient_id})
        return _patient_from_doc(doc) if doc else None

    async def update_severity(self, patient_id: str, severity: Severity) -> bool:
        result = await self.patients.update_one(
            {"id": patient_id},
            {"$set": {"severity": severity.value, "updated_at": _now()}},
        )
        return result.modified_count > 0

    async def list_symptom_catalog(self) -> List[Symptom]:
        collection = self._collection(settings.mongodb_collection_symptoms)
        cursor = collection.find({}, {"_id": 0}).sort("name", 1)
        return [Symptom(**doc) async for doc in cursor]

    async def seed_symptoms(self, symptoms: List[Symptom]) -> int:
        """Insert or replace catalog entries by name."""
        collection = self._collection(settings.mongodb_collection_symptoms)
        for symptom in symptoms:
            await collection.replace_one(
                {"name": symptom.name}, symptom.model_dump(), upsert=True
            )
        logger.info(f"Seeded {len(symptoms)} symptoms")
        return len(symptoms)

    async def save_chat_message(
        self, patient_id: str, message: str, sender: str, message_type: str = "text"
    ) -> None:
        collection = self._collection(settings.mongodb_collection_chat_history)
        await collection.insert_one(
            {
                "patient_id": patient_id,
                "message": message,
                "sender": sender,
                "message_type": message_type,
                "created_at": _now(),
            }
        )


# Global service instance
_patient_service: Optional[PatientService] = None


def get_patient_service() -> PatientService:
    """Get or create PatientService instance."""
    global _patient_service
    if _patient_service is None:
        _patient_service = PatientService()
    return _patient_service
