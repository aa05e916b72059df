"""
Consultation orchestrator.

Owns the per-channel session and routes every inbound message to the
handler registered for the session's current state. Handlers return the
next session plus the reply text; the orchestrator stores the session and
records the transcript.
"""

from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from cardio_intake.config.settings import settings
from cardio_intake.consultation.negotiation import SlotNegotiationEngine
from cardio_intake.consultation.outcome import attempt
from cardio_intake.consultation.retry import RetryPolicy, email_policy, name_policy
from cardio_intake.models.patient import Patient
from cardio_intake.models.session import (
    INITIAL_SESSIONS,
    AskingFollowUpSession,
    CollectingEmailSession,
    CollectingNameSession,
    CollectingSymptomsSession,
    CompletedSession,
    ConfirmingSlotSession,
    SelectingSlotSession,
    SessionBase,
    WelcomeSession,
)
from cardio_intake.models.symptom import Symptom
from cardio_intake.models.triage import ConsultationState
from cardio_intake.services.nlp_service import INVALID, NO_SYMPTOM_FOUND
from cardio_intake.services.session_service import SessionStore
from cardio_intake.utils.severity import (
    CRITICAL_PATTERNS,
    RISK_FACTOR_PATTERNS,
    classify,
    detect_indicators,
    flatten_responses,
)
import logging

logger = logging.getLogger(__name__)

Turn = Tuple[SessionBase, str]
Handler = Callable[[SessionBase, str], Awaitable[Turn]]

ASSISTANT = "Hello! I'm your cardiology intake assistant."
SYMPTOM_PROMPT = (
    "Please describe what you're experiencing (e.g., chest pain, shortness of breath)."
)
GREETINGS = {
    ConsultationState.WELCOME: "Welcome! Please type any message to get started.",
    ConsultationState.COLLECTING_NAME: (
        f"{ASSISTANT} To get started, could you please tell me your full name?"
    ),
    ConsultationState.COLLECTING_SYMPTOMS: (
        f"{ASSISTANT} Let's proceed with your symptoms. {SYMPTOM_PROMPT}"
    ),
}
WELCOME_BACK = "Welcome back! Let's continue where we left off."
ASK_EMAIL = "could you please provide your email address so we can send you appointment details?"
ASK_SYMPTOMS = (
    "Thank you! Now, could you please describe what symptoms you're experiencing? "
    "For example, chest pain, shortness of breath, palpitations, etc."
)
COMPLETED_NOTICE = (
    "Your consultation has been completed. "
    "If you have additional symptoms or concerns, please start a new consultation. Thank you!"
)
ATTACH_FAILED = (
    "We couldn't attach your details, but you can continue and we'll save your info later."
)
GENERIC_APOLOGY = (
    "I apologize, but I encountered a technical issue. "
    "Could you please repeat your last message?"
)
CATALOG_UNAVAILABLE = (
    "I'm having trouble looking up symptoms right now. "
    "Could you please describe your symptoms again in a moment?"
)


class ConsultationOrchestrator:
    """State machine driving one consultation per connected channel."""

    def __init__(
        self,
        store: SessionStore,
        nlp,
        patients,
        calendar,
        notifier,
        *,
        negotiation: Optional[SlotNegotiationEngine] = None,
        initial_state: Optional[str] = None,
        name_retry: Optional[RetryPolicy] = None,
        email_retry: Optional[RetryPolicy] = None,
        symptom_hint_count: Optional[int] = None,
    ):
        self.store = store
        self.nlp = nlp
        self.patients = patients
        self.negotiation = negotiation or SlotNegotiationEngine(
            calendar,
            patients,
            notifier,
            nlp,
            max_offered_slots=settings.max_offered_slots,
            duration_minutes=settings.appointment_duration_minutes,
            step_minutes=settings.slot_step_minutes,
            timezone_name=settings.clinic_timezone,
        )
        self.initial_state = ConsultationState(initial_state or settings.initial_state)
        if self.initial_state not in INITIAL_SESSIONS:
            raise ValueError(f"Unsupported initial state: {self.initial_state.value}")
        self.name_retry = name_retry or name_policy(settings.name_max_attempts)
        self.email_retry = email_retry or email_policy(settings.email_max_attempts)
        self.symptom_hint_count = symptom_hint_count or settings.symptom_hint_count

        self._handlers: Dict[ConsultationState, Handler] = {
            ConsultationState.WELCOME: self._handle_welcome,
            ConsultationState.COLLECTING_NAME: self._handle_name,
            ConsultationState.COLLECTING_EMAIL: self._handle_email,
            ConsultationState.COLLECTING_SYMPTOMS: self._handle_symptoms,
            ConsultationState.ASKING_FOLLOW_UP: self._handle_follow_up,
            ConsultationState.CONFIRMING_SLOT: self._handle_confirmation,
            ConsultationState.SELECTING_SLOT: self._handle_selection,
            ConsultationState.COMPLETED: self._handle_completed,
        }

    # ── Channel lifecycle ────────────────────────────────────────────────

    def _new_session(self, channel_id: str) -> SessionBase:
        return INITIAL_SESSIONS[self.initial_state](channel_id=channel_id)

    async def on_session_start(self, channel_id: str) -> str:
        """Create the channel's session and return the greeting."""
        async with self.store.lock(channel_id):
            existing = await self.store.get(channel_id)
            if existing is not None:
                logger.info(f"Using existing session for {channel_id}, state: {existing.state.value}")
                return WELCOME_BACK

            session = self._new_session(channel_id)
            await self.store.set(channel_id, session)
            logger.info(f"Session initialized for {channel_id} in {session.state.value}")
            return GREETINGS[session.state]

    async def on_session_end(self, channel_id: str) -> None:
        await self.store.delete(channel_id)

    async def on_message(self, channel_id: str, text: Optional[str]) -> Optional[str]:
        """
        Process one patient message.

        Args:
            channel_id: Channel the message arrived on
            text: Raw message text

        Returns:
            Reply text, or None when the message was blank
        """
        text = (text or "").strip()
        if not text:
            return None

        async with self.store.lock(channel_id):
            session = await self.store.get(channel_id)
            if session is None:
                logger.info(f"No session for {channel_id}, creating one")
                session = self._new_session(channel_id)

            await self._record(session.patient, text, "user")
            handler = self._handlers[session.state]

            try:
                session, reply = await handler(session, text)
            except Exception as e:
                logger.error(
                    f"❌ Error handling message in {session.state.value} for {channel_id}: {e}",
                    exc_info=True,
                )
                reply = await self._say(self.nlp.generic_error_message(), GENERIC_APOLOGY)

            await self.store.set(channel_id, session)
            await self._record(session.patient, reply, "bot")
            return reply

    async def on_attach_patient(
        self,
        channel_id: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Optional[str]:
        """Attach pre-submitted patient details to the channel's session."""
        if not email and not full_name:
            return None

        async with self.store.lock(channel_id):
            session = await self.store.get(channel_id) or self._new_session(channel_id)

            if email:
                call = self.patients.upsert_patient_by_email(email, full_name, phone, channel_id)
            else:
                call = self.patients.upsert_patient(
                    channel_id, Patient(name=full_name, phone=phone)
                )
            outcome = await attempt(call, "patient attach")
            if not outcome.ok:
                await self.store.set(channel_id, session)
                return ATTACH_FAILED

            patient: Patient = outcome.value
            session.patient = patient
            reply = None
            if (
                session.state in (ConsultationState.COLLECTING_NAME, ConsultationState.COLLECTING_EMAIL)
                and patient.name
                and patient.email
            ):
                session = session.transition(CollectingSymptomsSession)
                reply = f"Thank you, {patient.name}! I've got your details. {SYMPTOM_PROMPT}"

            await self.store.set(channel_id, session)
            logger.info(f"Attached patient {patient.id} to {channel_id}")
            return reply

    async def _record(self, patient: Patient, message: str, sender: str) -> None:
        if patient.id:
            await attempt(
                self.patients.save_chat_message(patient.id, message, sender),
                "chat history",
            )

    # ── NLP wrappers ─────────────────────────────────────────────────────

    async def _say(self, call: Awaitable[str], fallback: str) -> str:
        return (await attempt(call, "text generation")).unwrap_or(fallback) or fallback

    # ── State handlers ───────────────────────────────────────────────────

    async def _handle_welcome(self, session: WelcomeSession, text: str) -> Turn:
        return (
            session.transition(CollectingSymptomsSession),
            GREETINGS[ConsultationState.COLLECTING_SYMPTOMS],
        )

    async def _handle_name(self, session: CollectingNameSession, text: str) -> Turn:
        attempts = session.attempts + 1
        candidate = (await attempt(self.nlp.extract_field(text, "name"), "name extraction")).unwrap_or(INVALID)

        if candidate != INVALID and self.nlp.is_valid_name(candidate):
            name = candidate.strip()
            greeting = f"Nice to meet you, {name}!"
        else:
            name = self.name_retry.recover(attempts, text)
            if name is None:
                return (
                    session.model_copy(update={"attempts": attempts}),
                    "I didn't catch your name properly. Could you please tell me your full name? "
                    '(Just type your name, like "John Smith")',
                )
            logger.info(f"Using fallback name after {attempts} attempts: {name}")
            greeting = f"Thank you, {name}!"

        patient = session.patient.model_copy(update={"name": name})
        return (
            session.transition(CollectingEmailSession, patient=patient),
            f"{greeting} Now, {ASK_EMAIL}",
        )

    async def _handle_email(self, session: CollectingEmailSession, text: str) -> Turn:
        attempts = session.attempts + 1
        candidate = (await attempt(self.nlp.extract_field(text, "email"), "email extraction")).unwrap_or(INVALID)

        if candidate != INVALID and self.nlp.is_valid_email(candidate):
            email = candidate.strip()
        else:
            email = self.email_retry.recover(attempts, text)
            if email is None:
                hint = " Just type your email address directly." if attempts >= 2 else ""
                return (
                    session.model_copy(update={"attempts": attempts}),
                    f"Please provide a valid email address (like john@example.com).{hint}",
                )
            logger.info(f"Using fallback email after {attempts} attempts")

        patient = session.patient.model_copy(update={"email": email})
        saved = await attempt(
            self.patients.upsert_patient(session.channel_id, patient), "patient upsert"
        )
        if saved.ok and saved.value is not None:
            patient = saved.value

        return session.transition(CollectingSymptomsSession, patient=patient), ASK_SYMPTOMS

    async def _handle_symptoms(self, session: CollectingSymptomsSession, text: str) -> Turn:
        catalog: List[Symptom] = (
            await attempt(self.patients.list_symptom_catalog(), "symptom catalog lookup")
        ).unwrap_or([])
        if not catalog:
            return session, CATALOG_UNAVAILABLE

        matched = (
            await attempt(self.nlp.match_symptom(text, catalog), "symptom matching")
        ).unwrap_or(NO_SYMPTOM_FOUND)
        symptom = next((s for s in catalog if s.name == matched), None)

        if symptom is None:
            names = ", ".join(s.name for s in catalog[: self.symptom_hint_count])
            return (
                session,
                f"I didn't recognize that symptom. Here are some common symptoms I can help "
                f"with: {names}. Could you please describe your symptoms using these terms?",
            )

        questions = symptom.flatten_questions()
        logger.info(f"Matched symptom {symptom.name} ({len(questions)} follow-up question(s))")
        follow_up = session.transition(AskingFollowUpSession, symptom=symptom, questions=questions)
        acknowledgment = await self._say(
            self.nlp.acknowledge_symptom(symptom.name, bool(questions)),
            f"Thank you for letting me know about {symptom.name.lower()}.",
        )

        if not questions:
            completed, reply = await self._complete(follow_up)
            return completed, f"{acknowledgment}\n\n{reply}"

        first = await self._say(self.nlp.rephrase_question(questions[0].question), questions[0].question)
        return follow_up, f"{acknowledgment}\n\n{first}"

    async def _handle_follow_up(self, session: AskingFollowUpSession, text: str) -> Turn:
        question = session.current_question
        if question is None:
            return await self._complete(session)

        responses = {category: list(answers) for category, answers in session.responses.items()}
        responses.setdefault(question.category, []).append(text)
        session = session.model_copy(
            update={"responses": responses, "question_index": session.question_index + 1}
        )

        if session.exhausted:
            return await self._complete(session)

        upcoming = session.current_question
        transition = await self._say(
            self.nlp.transition_phrase(session.question_index, len(session.questions)), "Noted."
        )
        phrased = await self._say(self.nlp.rephrase_question(upcoming.question), upcoming.question)
        return session, f"{transition}\n{phrased}"

    async def _handle_confirmation(self, session: ConfirmingSlotSession, text: str) -> Turn:
        result = await self.negotiation.handle_confirmation(session, text)
        return result.session, result.reply

    async def _handle_selection(self, session: SelectingSlotSession, text: str) -> Turn:
        result = await self.negotiation.handle_selection(session, text)
        return result.session, result.reply

    async def _handle_completed(self, session: CompletedSession, text: str) -> Turn:
        return session, COMPLETED_NOTICE

    # ── Completion ───────────────────────────────────────────────────────

    async def _complete(self, session: AskingFollowUpSession) -> Turn:
        """Persist, classify and hand over to slot negotiation."""
        completed = session.transition(CompletedSession)
        try:
            return await self._finish(completed, session.symptom, session.responses)
        except Exception as e:
            logger.error(f"❌ Error completing consultation {session.session_id}: {e}", exc_info=True)
            name = completed.patient.name
            return (
                completed,
                f"Thank you{', ' + name if name else ''}! Your symptom details have been "
                "recorded. Our medical team will review your case and contact you soon. "
                "If this is urgent, please call our emergency line.",
            )

    async def _finish(
        self, completed: CompletedSession, symptom: Symptom, responses: Dict[str, List[str]]
    ) -> Turn:
        if not completed.patient.id:
            upserted = await attempt(
                self.patients.upsert_patient(completed.channel_id, completed.patient),
                "patient upsert",
            )
            if upserted.ok and upserted.value is not None:
                completed.patient = upserted.value

        saved = await attempt(
            self.patients.save_chief_complaint(completed.patient.id, symptom.name, responses),
            "chief complaint persistence",
        )
        if not saved.ok:
            return completed, await self._say(self.nlp.generic_error_message(), GENERIC_APOLOGY)

        severity = classify(symptom.name, responses)
        corpus = "\n".join(flatten_responses(responses))
        logger.info(
            f"🚦 {symptom.name} classified as {severity.value} "
            f"(critical: {detect_indicators(corpus, CRITICAL_PATTERNS)}, "
            f"risk factors: {detect_indicators(corpus, RISK_FACTOR_PATTERNS)})"
        )

        completed.patient = completed.patient.model_copy(update={"severity": severity})
        if completed.patient.id:
            await attempt(
                self.patients.update_severity(completed.patient.id, severity),
                "severity update",
            )

        result = await self.negotiation.negotiate(completed, symptom, responses, severity)
        logger.info(
            f"✅ Consultation {completed.session_id} for {completed.patient.name or 'anonymous'} "
            f"moved to {result.session.state.value}"
        )
        return result.session, result.reply
