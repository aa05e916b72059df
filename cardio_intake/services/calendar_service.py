"""Doctor availability and booking on Google Calendar.

Talks to the Calendar v3 REST API directly: ``freeBusy`` for conflicts and
``events.insert`` to book. Slot generation itself lives in
``cardio_intake.utils.scheduling``.
"""

import httpx
from urllib.parse import quote
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo
from cardio_intake.config.settings import settings
from cardio_intake.models.patient import BookingResult, CaseData, Patient
from cardio_intake.models.triage import Severity
from cardio_intake.utils.scheduling import (
    BusyInterval,
    format_category_name,
    generate_candidate_slots,
    parse_instant,
    round_up_to_step,
)
import logging

logger = logging.getLogger(__name__)


def search_horizon(severity: Severity) -> timedelta:
    """How far ahead to look for a slot; urgent cases get a short horizon."""
    days = {
        Severity.CRITICAL: settings.search_days_critical,
        Severity.MEDIUM: settings.search_days_medium,
        Severity.LOW: settings.search_days_low,
    }[severity]
    return timedelta(days=days)


def format_event_description(patient: Patient, case: CaseData) -> str:
    """Event body for the doctor: who, what, and every answer."""
    lines = [
        f"Cardiology Consultation for {patient.name or 'Unknown patient'}",
        "",
        f"📧 Patient Email: {patient.email or 'not provided'}",
        f"🩺 Primary Symptom: {case.symptom}",
    ]
    if case.severity:
        lines.append(f"🚦 Severity: {case.severity.label} ({case.severity.value})")
    lines += ["", "📝 Patient Assessment:"]

    for category, answers in case.responses.items():
        lines.append(f"\n{format_category_name(category)}:")
        lines.extend(f"  {i}. {answer}" for i, answer in enumerate(answers, start=1))

    lines += [
        "",
        "---",
        "Generated by Cardio Intake Assistant",
        f"Consultation requested: {datetime.now(timezone.utc).isoformat(timespec='minutes')}",
    ]
    return "\n".join(lines)


class CalendarService:
    """Availability lookup and booking against the doctor's calendar."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        calendar_id: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token or settings.google_calendar_access_token
        self.calendar_id = calendar_id or settings.doctor_calendar_id
        self.api_base = (api_base or settings.google_calendar_api_base).rstrip("/")
        self.timeout = timeout or settings.calendar_timeout
        self.tz = ZoneInfo(settings.clinic_timezone)

        if not self.access_token:
            logger.warning("GOOGLE_CALENDAR_ACCESS_TOKEN not set - booking disabled")

    def is_configured(self) -> bool:
        return bool(self.access_token)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def earliest_start(self, now: Optional[datetime] = None) -> datetime:
        """Lead time from now, rounded up to the slot grid."""
        now = now or datetime.now(timezone.utc)
        return round_up_to_step(
            now + timedelta(minutes=settings.slot_lead_minutes), settings.slot_step_minutes
        )

    async def busy_intervals(self, start: datetime, end: datetime) -> List[BusyInterval]:
        """Busy periods on the doctor's calendar between ``start`` and ``end``."""
        payload = {
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "items": [{"id": self.calendar_id}],
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.api_base}/freeBusy", headers=self._headers(), json=payload
            )
            response.raise_for_status()
            data = response.json()

        calendars = data.get("calendars", {})
        entry = calendars.get(self.calendar_id) or calendars.get("primary") or {}
        if entry.get("errors"):
            raise RuntimeError(f"freeBusy error for {self.calendar_id}: {entry['errors']}")

        return [
            (parse_instant(period["start"]), parse_instant(period["end"]))
            for period in entry.get("busy", [])
        ]

    async def next_available_slots(
        self,
        severity: Severity,
        duration_minutes: int = 30,
        step_minutes: int = 15,
        limit: int = 1,
        now: Optional[datetime] = None,
    ) -> List[datetime]:
        """
        Free slots on the doctor's calendar, soonest first.

        Args:
            severity: Urgency tier; decides how far ahead to search
            duration_minutes: Appointment length
            step_minutes: Grid step between candidate starts
            limit: Maximum number of slots
            now: Reference time (defaults to the current time)

        Returns:
            Ascending list of UTC start instants, possibly empty
        """
        if not self.is_configured():
            logger.warning("📅 Google Calendar not configured - no slots available")
            return []

        start = self.earliest_start(now)
        end = start + search_horizon(severity)
        busy = await self.busy_intervals(start, end)

        slots = generate_candidate_slots(
            start,
            end,
            busy,
            tz=self.tz,
            duration_minutes=duration_minutes,
            step_minutes=step_minutes,
            opens_at=settings.business_hours_start,
            closes_at=settings.business_hours_end,
            limit=limit,
        )
        logger.info(
            f"📅 {len(slots)} slot(s) found for {severity.value} patient "
            f"({len(busy)} busy period(s) in window)"
        )
        return slots

    def _event_body(self, patient: Patient, case: CaseData, start: datetime) -> dict:
        end = start + timedelta(minutes=settings.appointment_duration_minutes)
        return {
            "summary": f"Cardiology Consultation - {patient.name or 'Patient'}",
            "description": format_event_description(patient, case),
            "start": {"dateTime": start.isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": end.isoformat(), "timeZone": "UTC"},
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
        }

    async def book(self, patient: Patient, case: CaseData, start: datetime) -> BookingResult:
        """Create the calendar event for ``start``; never raises."""
        if not self.is_configured():
            logger.warning("📅 Google Calendar not configured - skipping booking")
            return BookingResult(success=False, error="Google Calendar not configured")

        try:
            logger.info(f"📅 Creating event on calendar {self.calendar_id} at {start.isoformat()}")
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_base}/calendars/{quote(self.calendar_id, safe='')}/events",
                    headers=self._headers(),
                    json=self._event_body(patient, case, start),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 403:
                logger.error("   🔐 Permission denied - check calendar sharing")
            elif status == 400:
                logger.error("   📝 Invalid request format")
            logger.error(f"⚠️ Calendar booking failed: HTTP {status}")
            return BookingResult(success=False, error=f"Calendar booking failed: HTTP {status}")
        except httpx.HTTPError as e:
            logger.error(f"⚠️ Calendar booking failed: {e}")
            return BookingResult(success=False, error=f"Calendar booking failed: {e}")

        logger.info(f"✅ Calendar event created: {data.get('id')}")
        return BookingResult(
            success=True,
            event_id=data.get("id"),
            scheduled_time=start,
            event_link=data.get("htmlLink"),
        )

    async def book_next_available(self, patient: Patient, case: CaseData) -> BookingResult:
        """
        Book without negotiation: first free slot, else the earliest grid time.

        Used only when no slot could be offered to the patient.
        """
        try:
            slots = await self.next_available_slots(
                case.severity or Severity.LOW,
                duration_minutes=settings.appointment_duration_minutes,
                step_minutes=settings.slot_step_minutes,
                limit=1,
            )
        except Exception as e:
            logger.warning(f"Availability lookup failed, using earliest grid time: {e}")
            slots = []

        start = slots[0] if slots else self.earliest_start()
        return await self.book(patient, case, start)


# Global service instance
_calendar_service: Optional[CalendarService] = None


def get_calendar_service() -> CalendarService:
    """Get or create CalendarService instance."""
    global _calendar_service
    if _calendar_service is None:
        _calendar_service = CalendarService()
    return _calendar_service
