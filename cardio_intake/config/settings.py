"""Application configuration and settings."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Configuration
    service_name: str = "cardio-intake"
    port: int = 8024
    environment: str = "development"
    cors_origins: List[str] = ["http://localhost:3000"]

    # Conversation flow
    initial_state: str = "collecting_symptoms"  # or "collecting_name" / "welcome"
    name_max_attempts: int = 3
    email_max_attempts: int = 3
    symptom_hint_count: int = 10

    # MongoDB Configuration
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "cardio_intake"
    mongodb_collection_patients: str = "patients"
    mongodb_collection_complaints: str = "patient_symptoms"
    mongodb_collection_appointments: str = "appointments"
    mongodb_collection_symptoms: str = "symptoms"
    mongodb_collection_chat_history: str = "chat_history"

    # GitHub Models API (optional, heuristics only when unset)
    github_token: Optional[str] = None
    github_models_endpoint: str = "https://models.inference.ai.azure.com"
    model_name: str = "Phi-4-mini-instruct"
    model_temperature: float = 0.3
    model_max_tokens: int = 300
    llm_invoke_timeout: float = 15.0

    # Google Calendar
    google_calendar_api_base: str = "https://www.googleapis.com/calendar/v3"
    google_calendar_access_token: Optional[str] = None
    doctor_calendar_id: str = "primary"
    calendar_timeout: float = 10.0

    # Scheduling
    clinic_timezone: str = "UTC"
    business_hours_start: int = 9
    business_hours_end: int = 17
    appointment_duration_minutes: int = 30
    slot_step_minutes: int = 15
    slot_lead_minutes: int = 60
    max_offered_slots: int = 8
    search_days_critical: int = 2
    search_days_medium: int = 3
    search_days_low: int = 14

    # Telegram
    telegram_bot_token: Optional[str] = None
    doctor_telegram_chat_id: Optional[str] = None
    telegram_api_base: str = "https://api.telegram.org"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False
        protected_namespaces = ("settings_",)


# Global settings instance
settings = Settings()
