"""Per-channel consultation session, one model per state.

Each variant carries only the fields its state needs, so a session can never
hold both a single proposed slot and a multi-slot offer. Moving between
states builds a new variant via ``SessionBase.transition``.
"""

from pydantic import BaseModel, Field
from typing import Annotated, Dict, List, Literal, Optional, Type, TypeVar, Union
from datetime import datetime, timezone
from cardio_intake.models.patient import Patient
from cardio_intake.models.symptom import FollowUpQuestion, Symptom
from cardio_intake.models.triage import ConsultationState, Severity
import uuid

S = TypeVar("S", bound="SessionBase")


class SessionBase(BaseModel):
    """Fields shared by every state."""

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    channel_id: str
    patient: Patient = Field(default_factory=Patient)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def transition(self, target: Type[S], **fields) -> S:
        """Build the session for ``target`` state, keeping the shared fields."""
        shared = {
            "session_id": self.session_id,
            "channel_id": self.channel_id,
            "patient": self.patient,
            "started_at": self.started_at,
        }
        shared.update(fields)
        return target(**shared)


class WelcomeSession(SessionBase):
    state: Literal[ConsultationState.WELCOME] = ConsultationState.WELCOME


class CollectingNameSession(SessionBase):
    state: Literal[ConsultationState.COLLECTING_NAME] = ConsultationState.COLLECTING_NAME
    attempts: int = 0


class CollectingEmailSession(SessionBase):
    state: Literal[ConsultationState.COLLECTING_EMAIL] = ConsultationState.COLLECTING_EMAIL
    attempts: int = 0


class CollectingSymptomsSession(SessionBase):
    state: Literal[ConsultationState.COLLECTING_SYMPTOMS] = (
        ConsultationState.COLLECTING_SYMPTOMS
    )


class AskingFollowUpSession(SessionBase):
    state: Literal[ConsultationState.ASKING_FOLLOW_UP] = ConsultationState.ASKING_FOLLOW_UP
    symptom: Symptom
    questions: List[FollowUpQuestion] = Field(default_factory=list)
    question_index: int = Field(default=0, ge=0)
    responses: Dict[str, List[str]] = Field(default_factory=dict)

    @property
    def current_question(self) -> Optional[FollowUpQuestion]:
        if self.question_index < len(self.questions):
            return self.questions[self.question_index]
        return None

    @property
    def exhausted(self) -> bool:
        return self.question_index >= len(self.questions)


class ConfirmingSlotSession(SessionBase):
    state: Literal[ConsultationState.CONFIRMING_SLOT] = ConsultationState.CONFIRMING_SLOT
    symptom: Symptom
    responses: Dict[str, List[str]] = Field(default_factory=dict)
    severity: Severity
    proposed_slot: Optional[datetime] = None


class SelectingSlotSession(SessionBase):
    state: Literal[ConsultationState.SELECTING_SLOT] = ConsultationState.SELECTING_SLOT
    symptom: Symptom
    responses: Dict[str, List[str]] = Field(default_factory=dict)
    severity: Severity
    offered_slots: List[datetime] = Field(default_factory=list)


class CompletedSession(SessionBase):
    state: Literal[ConsultationState.COMPLETED] = ConsultationState.COMPLETED


Session = Annotated[
    Union[
        WelcomeSession,
        CollectingNameSession,
        CollectingEmailSession,
        CollectingSymptomsSession,
        AskingFollowUpSession,
        ConfirmingSlotSession,
        SelectingSlotSession,
        CompletedSession,
    ],
    Field(discriminator="state"),
]

# Sessions holding a classified case while a slot is being agreed.
NegotiatingSession = Union[ConfirmingSlotSession, SelectingSlotSession]

INITIAL_SESSIONS: Dict[ConsultationState, Type[SessionBase]] = {
    ConsultationState.WELCOME: WelcomeSession,
    ConsultationState.COLLECTING_NAME: CollectingNameSession,
    ConsultationState.COLLECTING_SYMPTOMS: CollectingSymptomsSession,
}
