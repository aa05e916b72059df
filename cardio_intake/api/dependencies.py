"""FastAPI dependencies wiring the orchestrator to its collaborators.

Tests replace these through ``app.dependency_overrides``.
"""

from typing import Optional
from cardio_intake.consultation.orchestrator import ConsultationOrchestrator
from cardio_intake.services.calendar_service import get_calendar_service
from cardio_intake.services.nlp_service import get_nlp_service
from cardio_intake.services.notification_service import get_notification_service
from cardio_intake.services.patient_service import PatientService, get_patient_service
from cardio_intake.services.session_service import get_session_store
import logging

logger = logging.getLogger(__name__)

_orchestrator: Optional[ConsultationOrchestrator] = None


def get_orchestrator() -> ConsultationOrchestrator:
    """Get or create the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ConsultationOrchestrator(
            store=get_session_store(),
            nlp=get_nlp_service(),
            patients=get_patient_service(),
            calendar=get_calendar_service(),
            notifier=get_notification_service(),
        )
        logger.info(f"Consultation orchestrator ready (initial state: {_orchestrator.initial_state.value})")
    return _orchestrator


def get_patients() -> PatientService:
    return get_patient_service()
