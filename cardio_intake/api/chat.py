"""Chat endpoints.

The WebSocket at ``/ws/chat`` is the consultation channel: one connection is
one session. Frames are JSON objects discriminated by ``type``.
"""

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import Field, TypeAdapter, ValidationError
from typing import Annotated
from cardio_intake.api.dependencies import get_orchestrator, get_patients
from cardio_intake.consultation.orchestrator import ConsultationOrchestrator
from cardio_intake.models.messages import (
    AttachPatientIn,
    BotMessage,
    ChatMessageIn,
    InboundMessage,
    SymptomCatalogResponse,
    TypingIn,
)
import json
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

_inbound = TypeAdapter(Annotated[InboundMessage, Field(discriminator="type")])

UNREADABLE_FRAME = "Sorry, I couldn't read that message. Could you please send it again?"


def parse_frame(raw: str):
    """Decode one inbound frame; frames without a type are chat messages."""
    data = json.loads(raw)
    if isinstance(data, dict):
        data.setdefault("type", "chat_message")
    return _inbound.validate_python(data)


async def _send(websocket: WebSocket, message: str, kind: str = "bot_message") -> None:
    frame = BotMessage(type=kind, message=message)
    await websocket.send_json(frame.model_dump(mode="json"))


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    """Run one consultation for the lifetime of the connection."""
    await websocket.accept()
    channel_id = str(uuid.uuid4())
    logger.info(f"User connected: {channel_id}")

    try:
        await _send(websocket, await orchestrator.on_session_start(channel_id))

        while True:
            raw = await websocket.receive_text()
            try:
                frame = parse_frame(raw)
            except (ValueError, ValidationError) as e:
                logger.warning(f"Malformed frame on {channel_id}: {e}")
                await _send(websocket, UNREADABLE_FRAME, "error")
                continue

            if isinstance(frame, TypingIn):
                continue

            if isinstance(frame, AttachPatientIn):
                reply = await orchestrator.on_attach_patient(
                    channel_id, frame.email, frame.full_name, frame.phone
                )
            elif isinstance(frame, ChatMessageIn):
                await _send(websocket, "", "typing")
                reply = await orchestrator.on_message(channel_id, frame.message)
            else:
                reply = None

            if reply:
                await _send(websocket, reply)

    except WebSocketDisconnect:
        logger.info(f"User disconnected: {channel_id}")
    finally:
        await orchestrator.on_session_end(channel_id)


@router.get("/api/v1/symptoms", response_model=SymptomCatalogResponse)
async def list_symptoms(patients=Depends(get_patients)):
    """Symptom catalog the assistant can recognise."""
    try:
        symptoms = await patients.list_symptom_catalog()
    except Exception as e:
        logger.error(f"Error fetching symptoms: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch symptoms",
        )
    return SymptomCatalogResponse(symptoms=symptoms)
