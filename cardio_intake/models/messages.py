"""WebSocket and REST message models."""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Union
from datetime import datetime, timezone
from cardio_intake.models.patient import Patient
from cardio_intake.models.symptom import Symptom


class ChatMessageIn(BaseModel):
    """Free-text message typed by the patient."""

    type: Literal["chat_message"] = "chat_message"
    message: str = Field(..., max_length=2000, description="User message")


class AttachPatientIn(BaseModel):
    """Details submitted through the pre-chat form."""

    type: Literal["attach_patient"]
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class TypingIn(BaseModel):
    """Typing indicator from the patient; never state-mutating."""

    type: Literal["typing"]
    active: bool = True


InboundMessage = Union[ChatMessageIn, AttachPatientIn, TypingIn]


class BotMessage(BaseModel):
    """Outbound frame sent to the patient."""

    type: Literal["bot_message", "typing", "error"] = "bot_message"
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SymptomCatalogResponse(BaseModel):
    """Response for the catalog endpoint."""

    success: bool = True
    symptoms: List[Symptom]


class PatientRegistrationIn(BaseModel):
    """Pre-chat form posted before the consultation starts."""

    email: Optional[str] = None
    full_name: Optional[str] = Field(default=None, alias="fullName")
    phone: Optional[str] = None

    model_config = {"populate_by_name": True}


class PatientRegistrationResponse(BaseModel):
    success: bool = True
    patient: Patient
