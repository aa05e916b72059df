"""MongoDB schema for patients, chief complaints and appointments."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime, timezone
from cardio_intake.models.triage import Severity
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Patient(BaseModel):
    """Durable patient identity plus the latest case snapshot."""

    id: Optional[str] = None
    channel_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    # Case snapshot (written after booking)
    severity: Optional[Severity] = None
    symptom: Optional[str] = None
    responses: Dict[str, List[str]] = Field(default_factory=dict)
    appointment_time: Optional[datetime] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CaseData(BaseModel):
    """What the patient reported, handed to calendar and notification."""

    symptom: str
    responses: Dict[str, List[str]] = Field(default_factory=dict)
    severity: Optional[Severity] = None


class ChiefComplaint(BaseModel):
    """One completed round of follow-up questioning."""

    complaint_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: Optional[str] = None
    symptom_name: str
    responses: Dict[str, List[str]] = Field(default_factory=dict)
    status: str = "active"
    created_at: datetime = Field(default_factory=_utcnow)


class Appointment(BaseModel):
    """Appointment created after explicit confirmation or selection."""

    appointment_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: Optional[str] = None
    external_event_id: str
    scheduled_time: datetime
    status: str = "scheduled"
    created_at: datetime = Field(default_factory=_utcnow)


class BookingResult(BaseModel):
    """Result of a calendar booking attempt."""

    success: bool
    event_id: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    event_link: Optional[str] = None
    error: Optional[str] = None


class NotificationResult(BaseModel):
    """Result of a provider notification attempt."""

    success: bool
    message_id: Optional[int] = None
    error: Optional[str] = None
