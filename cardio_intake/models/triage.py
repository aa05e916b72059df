"""Consultation state and severity enums."""

from enum import Enum


class Severity(str, Enum):
    """Clinical urgency tiers, ordered LOW < MEDIUM < CRITICAL."""

    LOW = "low"  # Routine review, patient may browse options
    MEDIUM = "medium"  # Risk factors present, offer the earliest slot
    CRITICAL = "critical"  # Red flags, offer the earliest slot

    @property
    def label(self) -> str:
        """Decorated label shown to staff (calendar, notifications)."""
        return _SEVERITY_LABELS[self]

    @property
    def is_urgent(self) -> bool:
        return self in (Severity.MEDIUM, Severity.CRITICAL)


_SEVERITY_LABELS = {
    Severity.LOW: "🟢 Low",
    Severity.MEDIUM: "🟡 Medium!",
    Severity.CRITICAL: "🔴 CRITICAL!!!",
}


class ConsultationState(str, Enum):
    """States of the intake conversation."""

    WELCOME = "welcome"
    COLLECTING_NAME = "collecting_name"
    COLLECTING_EMAIL = "collecting_email"
    COLLECTING_SYMPTOMS = "collecting_symptoms"
    ASKING_FOLLOW_UP = "asking_follow_up"
    CONFIRMING_SLOT = "confirming_slot"
    SELECTING_SLOT = "selecting_slot"
    COMPLETED = "completed"
