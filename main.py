from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from cardio_intake.config.database import Database
from cardio_intake.config.settings import settings
from cardio_intake.api.chat import router as chat_router
from cardio_intake.api.patients import router as patients_router
import logging

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _collaborators() -> dict:
    """Which optional integrations have credentials."""
    configured = {
        "github_models": bool(settings.github_token),
        "google_calendar": bool(settings.google_calendar_access_token),
        "telegram": bool(settings.telegram_bot_token and settings.doctor_telegram_chat_id),
    }
    return {
        name: "configured" if ok else "not configured" for name, ok in configured.items()
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🫀 {settings.service_name} starting ({settings.environment})")
    for name, status in _collaborators().items():
        logger.info(f"  {name}: {status}")

    await Database.connect_db()
    yield

    logger.info(f"{settings.service_name} stopping")
    await Database.close_db()


app = FastAPI(
    title="Cardio Intake Assistant",
    description=(
        "Conversational cardiology intake: symptom follow-up, urgency triage "
        "and appointment booking over WebSocket."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(patients_router)


@app.get("/health")
async def health_check():
    """Report MongoDB reachability and which integrations are configured."""
    try:
        await Database.ping()
        mongodb = "connected"
    except Exception as e:
        logger.warning(f"⚠️ MongoDB ping failed: {e}")
        mongodb = f"error: {e}"

    return {
        "status": "ok" if mongodb == "connected" else "degraded",
        "service": settings.service_name,
        "version": VERSION,
        "dependencies": {"mongodb": mongodb, **_collaborators()},
    }


@app.get("/")
async def root():
    return {
        "service": settings.service_name,
        "version": VERSION,
        "chat": "/ws/chat",
        "symptoms": "/api/v1/symptoms",
        "register": "/api/patient",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.environment == "development",
    )
