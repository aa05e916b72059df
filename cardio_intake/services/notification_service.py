"""Doctor notifications over the Telegram Bot API."""

import httpx
from datetime import datetime
from html import escape
from typing import Optional
from cardio_intake.config.settings import settings
from cardio_intake.models.patient import CaseData, NotificationResult, Patient
from cardio_intake.utils.scheduling import format_category_name, format_slot
import logging

logger = logging.getLogger(__name__)


def format_doctor_notification(
    patient: Patient, case: CaseData, scheduled_time: Optional[datetime]
) -> str:
    """HTML message summarising the case for the on-call cardiologist."""
    lines = [
        "🏥 <b>New Patient Consultation</b>",
        "",
        f"👤 <b>Patient:</b> {escape(patient.name or 'Unknown')}",
        f"📧 <b>Email:</b> {escape(patient.email or 'not provided')}",
    ]
    if patient.phone:
        lines.append(f"📞 <b>Phone:</b> {escape(patient.phone)}")
    lines.append(f"🩺 <b>Primary Symptom:</b> {escape(case.symptom)}")
    if case.severity:
        lines.append(f"🚦 <b>Severity:</b> {case.severity.label}")
    if scheduled_time:
        lines.append(
            f"📅 <b>Appointment:</b> {format_slot(scheduled_time, settings.clinic_timezone)}"
        )

    lines += ["", "📝 <b>Patient Responses:</b>"]
    for category, answers in case.responses.items():
        lines.append(f"\n<b>{escape(format_category_name(category))}:</b>")
        lines.extend(f"  {i}. {escape(answer)}" for i, answer in enumerate(answers, start=1))

    return "\n".join(lines)


class NotificationService:
    """Sends case summaries to the doctor's Telegram chat."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        api_base: Optional[str] = None,
    ):
        self.bot_token = bot_token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.doctor_telegram_chat_id
        self.api_base = (api_base or settings.telegram_api_base).rstrip("/")

        if not self.bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set - doctor notifications disabled")

    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def notify_provider(
        self, patient: Patient, case: CaseData, scheduled_time: Optional[datetime]
    ) -> NotificationResult:
        """Send the case summary; never raises."""
        if not self.is_configured():
            logger.warning("📱 Telegram bot not configured - skipping doctor notification")
            return NotificationResult(success=False, error="Telegram not configured")

        payload = {
            "chat_id": self.chat_id,
            "text": format_doctor_notification(patient, case, scheduled_time),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    f"{self.api_base}/bot{self.bot_token}/sendMessage", json=payload
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"⚠️ Telegram notification failed: {e}")
            return NotificationResult(success=False, error=f"Telegram notification failed: {e}")

        if not data.get("ok"):
            description = data.get("description", f"HTTP {response.status_code}")
            if "chat not found" in description:
                logger.error("   🔍 Chat ID not found - verify DOCTOR_TELEGRAM_CHAT_ID")
            elif "blocked" in description:
                logger.error("   🚫 Bot was blocked by the chat")
            logger.error(f"⚠️ Telegram notification rejected: {description}")
            return NotificationResult(success=False, error=description)

        message_id = data.get("result", {}).get("message_id")
        logger.info(f"✅ Telegram notification sent: {message_id}")
        return NotificationResult(success=True, message_id=message_id)


# Global service instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create NotificationService instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
