"""Patient pre-registration, submitted from the form shown before the chat."""

from fastapi import APIRouter, Depends, HTTPException, status
from cardio_intake.api.dependencies import get_patients
from cardio_intake.models.messages import PatientRegistrationIn, PatientRegistrationResponse
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patient", tags=["Patients"])


@router.post("", response_model=PatientRegistrationResponse)
async def register_patient(request: PatientRegistrationIn, patients=Depends(get_patients)):
    """Create or update a patient by email so the chat can attach to it."""
    email = (request.email or "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")

    try:
        patient = await patients.upsert_patient_by_email(
            email, name=request.full_name, phone=request.phone
        )
    except Exception as e:
        logger.error(f"Error creating/updating patient {email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create/update patient",
        )

    logger.info(f"📝 Patient {patient.id} registered from pre-chat form")
    return PatientRegistrationResponse(patient=patient)
