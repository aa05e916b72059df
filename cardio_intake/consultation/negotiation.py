"""Slot negotiation: propose, offer, confirm, select and book.

Urgent patients (MEDIUM/CRITICAL) get a single proposal to accept or
decline; everyone else, and urgent patients with no proposal available, get
an enumerated list of options. Booking is a pipeline in which only the
calendar event is mandatory; every later step is logged and skipped on
failure.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from cardio_intake.consultation.outcome import Outcome, attempt
from cardio_intake.models.patient import Appointment, BookingResult, CaseData, Patient
from cardio_intake.models.session import (
    CompletedSession,
    ConfirmingSlotSession,
    NegotiatingSession,
    SelectingSlotSession,
    SessionBase,
)
from cardio_intake.models.symptom import Symptom
from cardio_intake.models.triage import Severity
from cardio_intake.utils.scheduling import format_slot
import logging
import re

logger = logging.getLogger(__name__)

AFFIRMATIVE_TOKENS = {"yes", "y", "ok", "okay", "confirm", "book", "schedule"}
NEGATIVE_TOKENS = {"no", "n", "later", "change", "different"}
DECLINE_ALL_TOKENS = {"none", "no", "n"}

_CHOICE = re.compile(r"(?:option\s*)?#?\s*(\d+)\.?")

MANUAL_FOLLOW_UP = "📞 Our team will contact you shortly to schedule your appointment."
DECLINED_ALL = "No problem, I haven't booked an appointment. "
NO_ALTERNATIVES = "I couldn't find any other available times right now. "
COMPLETION_FALLBACK = "Thank you! I've collected all your symptom information."
NOTIFIED = "👨‍⚕️ The cardiologist has been notified and will review your case."
NOT_NOTIFIED = "👨‍⚕️ Your information has been saved and our medical team will be notified."


@dataclass
class NegotiationResult:
    """The session after the step and the text to send back."""

    session: SessionBase
    reply: str


@dataclass
class BookingReceipt:
    """What happened during one booking attempt."""

    booked: bool
    scheduled_time: Optional[datetime] = None
    event_id: Optional[str] = None
    notified: bool = False
    patient: Optional[Patient] = None
    error: Optional[str] = None


def _words(text: str) -> set:
    return set(re.findall(r"[a-z]+", text.lower()))


def is_affirmative_reply(text: str) -> bool:
    words = _words(text)
    return bool(words & AFFIRMATIVE_TOKENS) and not words & NEGATIVE_TOKENS


def is_negative_reply(text: str) -> bool:
    words = _words(text)
    return bool(words & NEGATIVE_TOKENS) and not words & AFFIRMATIVE_TOKENS


def is_decline_all(text: str) -> bool:
    return re.sub(r"[^a-z]", "", text.lower()) in DECLINE_ALL_TOKENS


def parse_choice(text: str) -> Optional[int]:
    """1-based option number typed by the patient, if any."""
    match = _CHOICE.fullmatch(text.strip().lower())
    return int(match.group(1)) if match else None


def option_numbers_prompt(count: int) -> str:
    numbers = ", ".join(str(i) for i in range(1, count + 1))
    return f'Please reply with one of the option numbers: {numbers}, or type "none".'


class SlotNegotiationEngine:
    """Drives scheduling once follow-up questioning is over."""

    def __init__(
        self,
        calendar,
        patients,
        notifier,
        nlp,
        *,
        max_offered_slots: int = 8,
        duration_minutes: int = 30,
        step_minutes: int = 15,
        timezone_name: Optional[str] = None,
    ):
        self.calendar = calendar
        self.patients = patients
        self.notifier = notifier
        self.nlp = nlp
        self.max_offered_slots = max_offered_slots
        self.duration_minutes = duration_minutes
        self.step_minutes = step_minutes
        self.timezone_name = timezone_name

    # ── Availability ─────────────────────────────────────────────────────

    async def find_slots(
        self, severity: Severity, limit: int, exclude: Sequence[datetime] = ()
    ) -> List[datetime]:
        """Candidate slots from the calendar; empty on any failure."""
        outcome: Outcome[List[datetime]] = await attempt(
            self.calendar.next_available_slots(
                severity,
                duration_minutes=self.duration_minutes,
                step_minutes=self.step_minutes,
                limit=limit + len(exclude),
            ),
            "availability lookup",
        )
        slots = [slot for slot in outcome.unwrap_or([]) if slot not in exclude]
        return slots[:limit]

    def render(self, slot: datetime) -> str:
        return format_slot(slot, self.timezone_name)

    def proposal_prompt(self, slot: datetime, severity: Severity) -> str:
        text = (
            "Based on your answers, we'd like to see you as soon as possible. "
            f"The earliest available appointment is {self.render(slot)}. "
            "Shall I book it for you? (yes/no)"
        )
        if severity is Severity.CRITICAL:
            text += (
                "\n\n⚠️ If your symptoms get worse before then, please call "
                "emergency services immediately."
            )
        return text

    def offer_prompt(self, slots: Sequence[datetime], intro: Optional[str] = None) -> str:
        options = "\n".join(f"{i}. {self.render(slot)}" for i, slot in enumerate(slots, start=1))
        intro = intro or "Here are the next available appointment times:"
        return (
            f"{intro}\n\n{options}\n\n"
            'Reply with the option number to book it, or type "none" if none of these work.'
        )

    # ── Negotiation entry point ──────────────────────────────────────────

    async def negotiate(
        self,
        session: CompletedSession,
        symptom: Symptom,
        responses: Dict[str, List[str]],
        severity: Severity,
    ) -> NegotiationResult:
        """
        Decide how to schedule a patient whose questioning is complete.

        Args:
            session: The consultation, already marked completed
            symptom: Chief complaint
            responses: Follow-up answers by category
            severity: Classified urgency tier

        Returns:
            Proposal (CONFIRMING_SLOT), offer (SELECTING_SLOT), or a completed
            session after the no-negotiation fallback.
        """
        case = dict(symptom=symptom, responses=responses, severity=severity)

        if severity.is_urgent:
            slots = await self.find_slots(severity, limit=1)
            if slots:
                logger.info(f"Proposing {slots[0].isoformat()} to {severity.value} patient")
                return NegotiationResult(
                    session.transition(ConfirmingSlotSession, proposed_slot=slots[0], **case),
                    self.proposal_prompt(slots[0], severity),
                )

        slots = await self.find_slots(severity, limit=self.max_offered_slots)
        if slots:
            logger.info(f"Offering {len(slots)} slot(s) to {severity.value} patient")
            return NegotiationResult(
                session.transition(SelectingSlotSession, offered_slots=slots, **case),
                self.offer_prompt(slots),
            )

        logger.warning("No slots to negotiate - falling back to next available booking")
        receipt = await self.book_next_available(session.patient, symptom, responses, severity)
        if receipt.patient:
            session.patient = receipt.patient
        return NegotiationResult(session, await self.closing_message(session.patient, receipt))

    # ── Protocol steps ───────────────────────────────────────────────────

    async def handle_confirmation(self, session: ConfirmingSlotSession, text: str) -> NegotiationResult:
        """Yes/no answer to a single proposed slot."""
        if session.proposed_slot is None:
            logger.warning(f"Session {session.session_id} lost its proposed slot, re-offering")
            return await self._reoffer(session, intro=None)

        if is_affirmative_reply(text):
            return await self._book_and_close(session, session.proposed_slot)

        if is_negative_reply(text):
            return await self._reoffer(
                session,
                intro="No problem. Here are some other available times:",
                exclude=[session.proposed_slot],
            )

        return NegotiationResult(
            session,
            f"Would you like me to book {self.render(session.proposed_slot)}? "
            'Please reply "yes" to confirm or "no" to see other times.',
        )

    async def handle_selection(self, session: SelectingSlotSession, text: str) -> NegotiationResult:
        """Numeric choice among offered slots, or "none"."""
        if is_decline_all(text):
            logger.info(f"Patient declined all offered slots (session {session.session_id})")
            return await self._close_without_booking(session, DECLINED_ALL)

        choice = parse_choice(text)
        if choice is None or not 1 <= choice <= len(session.offered_slots):
            return NegotiationResult(session, option_numbers_prompt(len(session.offered_slots)))

        return await self._book_and_close(session, session.offered_slots[choice - 1])

    async def _reoffer(
        self,
        session: NegotiatingSession,
        intro: Optional[str],
        exclude: Sequence[datetime] = (),
    ) -> NegotiationResult:
        slots = await self.find_slots(session.severity, self.max_offered_slots, exclude=exclude)
        if not slots:
            return await self._close_without_booking(session, NO_ALTERNATIVES)
        return NegotiationResult(
            session.transition(
                SelectingSlotSession,
                symptom=session.symptom,
                responses=session.responses,
                severity=session.severity,
                offered_slots=slots,
            ),
            self.offer_prompt(slots, intro=intro),
        )

    async def _book_and_close(self, session: NegotiatingSession, slot: datetime) -> NegotiationResult:
        receipt = await self.book(
            session.patient, session.symptom, session.responses, session.severity, slot
        )

        if not receipt.booked:
            intro = "I'm sorry, I couldn't book that time. Please pick a different time:"
            if isinstance(session, SelectingSlotSession):
                remaining = [s for s in session.offered_slots if s != slot]
                if remaining:
                    session.offered_slots = remaining
                    return NegotiationResult(session, self.offer_prompt(remaining, intro=intro))
            return await self._reoffer(session, intro=intro, exclude=[slot])

        completed = session.transition(CompletedSession)
        if receipt.patient:
            completed.patient = receipt.patient
        return NegotiationResult(completed, await self.closing_message(completed.patient, receipt))

    async def _close_without_booking(self, session: NegotiatingSession, note: str) -> NegotiationResult:
        """Complete with no appointment; staff still get the case."""
        case = CaseData(
            symptom=session.symptom.name, responses=session.responses, severity=session.severity
        )
        receipt = BookingReceipt(booked=False)
        await self._snapshot_and_notify(session.patient, case, None, receipt)

        completed = session.transition(CompletedSession)
        if receipt.patient:
            completed.patient = receipt.patient
        return NegotiationResult(
            completed, await self.closing_message(completed.patient, receipt, note=note)
        )

    # ── Booking ──────────────────────────────────────────────────────────

    async def book(
        self,
        patient: Patient,
        symptom: Symptom,
        responses: Dict[str, List[str]],
        severity: Severity,
        slot: datetime,
    ) -> BookingReceipt:
        """
        Book exactly ``slot``.

        Order: calendar event, appointment record, case snapshot, doctor
        notification. Without a calendar event nothing else is attempted.
        """
        case = CaseData(symptom=symptom.name, responses=responses, severity=severity)
        outcome: Outcome[BookingResult] = await attempt(
            self.calendar.book(patient, case, slot), "calendar booking"
        )
        result = outcome.value
        if not outcome.ok or result is None or not result.success:
            error = outcome.error or (result.error if result else None)
            logger.warning(f"⚠️ Booking failed for {slot.isoformat()}: {error}")
            return BookingReceipt(booked=False, error=error)

        return await self._record_booking(patient, case, slot, result.event_id)

    async def book_next_available(
        self,
        patient: Patient,
        symptom: Symptom,
        responses: Dict[str, List[str]],
        severity: Severity,
    ) -> BookingReceipt:
        """Book without negotiation; on failure still record and notify."""
        case = CaseData(symptom=symptom.name, responses=responses, severity=severity)
        outcome: Outcome[BookingResult] = await attempt(
            self.calendar.book_next_available(patient, case), "next available booking"
        )
        result = outcome.value
        if outcome.ok and result is not None and result.success and result.scheduled_time:
            return await self._record_booking(patient, case, result.scheduled_time, result.event_id)

        logger.warning("No appointment created - staff will follow up manually")
        receipt = BookingReceipt(booked=False, error=outcome.error or (result and result.error))
        await self._snapshot_and_notify(patient, case, None, receipt)
        return receipt

    async def _record_booking(
        self, patient: Patient, case: CaseData, slot: datetime, event_id: Optional[str]
    ) -> BookingReceipt:
        receipt = BookingReceipt(booked=True, scheduled_time=slot, event_id=event_id)

        saved = await attempt(
            self.patients.save_appointment(
                Appointment(
                    patient_id=patient.id,
                    external_event_id=event_id or "",
                    scheduled_time=slot,
                )
            ),
            "appointment persistence",
        )
        if saved.ok:
            logger.info(f"✅ Appointment recorded for {slot.isoformat()}")

        await self._snapshot_and_notify(patient, case, slot, receipt)
        return receipt

    async def _snapshot_and_notify(
        self,
        patient: Patient,
        case: CaseData,
        slot: Optional[datetime],
        receipt: BookingReceipt,
    ) -> None:
        if patient.id:
            snapshot = await attempt(
                self.patients.update_case_snapshot(patient.id, case, slot),
                "case snapshot",
            )
            if snapshot.ok and snapshot.value is not None:
                receipt.patient = snapshot.value
                patient = snapshot.value

        notified = await attempt(
            self.notifier.notify_provider(patient, case, slot), "provider notification"
        )
        if notified.ok and notified.value is not None and notified.value.success:
            receipt.notified = True
            logger.info(f"✅ Provider notified (message ID: {notified.value.message_id})")
        elif notified.ok and notified.value is not None:
            logger.warning(f"⚠️ Provider notification failed: {notified.value.error}")

    async def completion_text(self, name: Optional[str]) -> str:
        outcome = await attempt(self.nlp.completion_message(name), "completion message")
        return outcome.unwrap_or(None) or COMPLETION_FALLBACK

    async def closing_message(self, patient: Patient, receipt: BookingReceipt, note: str = "") -> str:
        """Completion text reflecting what actually worked."""
        message = await self.completion_text(patient.name)

        if receipt.booked and receipt.scheduled_time:
            message += (
                f"\n\n📅 Your appointment is scheduled for: {self.render(receipt.scheduled_time)}"
                "\n📋 The appointment has been created in our system."
                "\n📞 Our staff will contact you with meeting details and any additional instructions."
            )
        else:
            message += f"\n\n{note}{MANUAL_FOLLOW_UP}"

        message += f"\n{NOTIFIED if receipt.notified else NOT_NOTIFIED}"
        logger.info(
            f"✅ Consultation completed for {patient.name or 'anonymous'} "
            f"(Calendar: {'Yes' if receipt.booked else 'No'}, "
            f"Telegram: {'Yes' if receipt.notified else 'No'})"
        )
        return message
