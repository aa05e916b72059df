"""Slot negotiation engine against in-memory collaborators."""

import pytest

from cardio_intake.consultation.negotiation import (
    COMPLETION_FALLBACK,
    MANUAL_FOLLOW_UP,
    NO_ALTERNATIVES,
    NOT_NOTIFIED,
    is_affirmative_reply,
    is_decline_all,
    is_negative_reply,
    option_numbers_prompt,
    parse_choice,
)
from cardio_intake.models.patient import Patient
from cardio_intake.models.session import (
    CompletedSession,
    ConfirmingSlotSession,
    SelectingSlotSession,
)
from cardio_intake.models.triage import ConsultationState, Severity
from conftest import FIRST_SLOT, slot_series


@pytest.fixture
def symptom(catalog):
    return catalog[0]


@pytest.fixture
def completed():
    return CompletedSession(channel_id="c1", patient=Patient(id="patient-1", name="Jane Doe"))


@pytest.fixture
def responses():
    return {"onset": ["this morning"], "red_flags": ["yes"]}


class TestReplyParsing:
    def test_affirmative_and_negative(self):
        assert is_affirmative_reply("Yes please")
        assert is_affirmative_reply("ok, book it")
        assert is_negative_reply("No, later")
        assert not is_affirmative_reply("yes... no")
        assert not is_negative_reply("maybe")

    def test_decline_all(self):
        assert is_decline_all("None")
        assert is_decline_all("no.")
        assert not is_decline_all("none of the mornings, maybe 3")

    def test_choice(self):
        assert parse_choice("2") == 2
        assert parse_choice(" option 3 ") == 3
        assert parse_choice("#4.") == 4
        assert parse_choice("the second one") is None

    def test_option_prompt(self):
        assert option_numbers_prompt(3) == (
            'Please reply with one of the option numbers: 1, 2, 3, or type "none".'
        )


class TestNegotiate:
    async def test_low_severity_gets_enumerated_offer(
        self, engine, calendar, completed, symptom, responses
    ):
        result = await engine.negotiate(completed, symptom, responses, Severity.LOW)

        assert isinstance(result.session, SelectingSlotSession)
        assert result.session.offered_slots == slot_series(8)
        assert calendar.requests == [8]
        assert result.reply.count("\n1. ") == 1

    async def test_medium_severity_gets_single_proposal(
        self, engine, calendar, completed, symptom, responses
    ):
        result = await engine.negotiate(completed, symptom, responses, Severity.MEDIUM)

        assert isinstance(result.session, ConfirmingSlotSession)
        assert result.session.proposed_slot == FIRST_SLOT
        assert calendar.requests == [1]
        assert "(yes/no)" in result.reply
        assert "emergency services" not in result.reply

    async def test_critical_proposal_warns_about_worsening(
        self, engine, completed, symptom, responses
    ):
        result = await engine.negotiate(completed, symptom, responses, Severity.CRITICAL)

        assert "emergency services" in result.reply

    async def test_shared_fields_survive_transition(self, engine, completed, symptom, responses):
        result = await engine.negotiate(completed, symptom, responses, Severity.CRITICAL)

        assert result.session.session_id == completed.session_id
        assert result.session.patient.id == "patient-1"
        assert result.session.responses == responses


class TestBooking:
    def confirming(self, completed, symptom, responses, slot=FIRST_SLOT):
        return completed.transition(
            ConfirmingSlotSession,
            symptom=symptom,
            responses=responses,
            severity=Severity.CRITICAL,
            proposed_slot=slot,
        )

    async def test_booking_order(self, engine, patients, notifier, completed, symptom, responses):
        patients.patients["patient-1"] = completed.patient

        result = await engine.handle_confirmation(
            self.confirming(completed, symptom, responses), "yes"
        )

        assert result.session.state == ConsultationState.COMPLETED
        assert patients.appointments[0].external_event_id == "evt-1"
        assert patients.snapshots == [{"patient_id": "patient-1", "appointment_time": FIRST_SLOT}]
        assert result.session.patient.appointment_time == FIRST_SLOT
        assert notifier.sent[0]["case"].severity == Severity.CRITICAL

    async def test_event_failure_skips_later_steps(
        self, engine, calendar, patients, notifier, completed, symptom, responses
    ):
        calendar.rejected.add(FIRST_SLOT)

        result = await engine.handle_confirmation(
            self.confirming(completed, symptom, responses), "yes"
        )

        assert isinstance(result.session, SelectingSlotSession)
        assert FIRST_SLOT not in result.session.offered_slots
        assert "pick a different time" in result.reply
        assert patients.appointments == []
        assert notifier.sent == []

    async def test_selection_failure_keeps_remaining_options(
        self, engine, calendar, completed, symptom, responses
    ):
        offered = slot_series(3)
        session = completed.transition(
            SelectingSlotSession,
            symptom=symptom,
            responses=responses,
            severity=Severity.LOW,
            offered_slots=offered,
        )
        calendar.rejected.add(offered[1])

        result = await engine.handle_selection(session, "2")

        assert isinstance(result.session, SelectingSlotSession)
        assert result.session.offered_slots == [offered[0], offered[2]]

    async def test_persistence_failure_does_not_block_notification(
        self, engine, patients, notifier, completed, symptom, responses
    ):
        patients.failing.update({"save_appointment", "update_case_snapshot"})

        result = await engine.handle_confirmation(
            self.confirming(completed, symptom, responses), "yes"
        )

        assert result.session.state == ConsultationState.COMPLETED
        assert len(notifier.sent) == 1
        assert "The cardiologist has been notified" in result.reply

    async def test_declined_proposal_without_alternatives(
        self, engine, calendar, patients, notifier, completed, symptom, responses
    ):
        calendar.slots = [FIRST_SLOT]

        result = await engine.handle_confirmation(
            self.confirming(completed, symptom, responses), "no"
        )

        assert result.session.state == ConsultationState.COMPLETED
        assert NO_ALTERNATIVES + MANUAL_FOLLOW_UP in result.reply
        assert patients.snapshots == [{"patient_id": "patient-1", "appointment_time": None}]
        assert notifier.sent[0]["scheduled_time"] is None
        assert notifier.sent[0]["case"].severity == Severity.CRITICAL

    async def test_missing_proposal_reoffers(self, engine, completed, symptom, responses):
        session = self.confirming(completed, symptom, responses, slot=None)

        result = await engine.handle_confirmation(session, "yes")

        assert isinstance(result.session, SelectingSlotSession)
        assert result.session.offered_slots == slot_series(8)

    async def test_declining_every_offer_reaches_staff(
        self, engine, patients, notifier, completed, symptom, responses
    ):
        patients.patients["patient-1"] = completed.patient
        session = completed.transition(
            SelectingSlotSession,
            symptom=symptom,
            responses=responses,
            severity=Severity.LOW,
            offered_slots=slot_series(3),
        )

        result = await engine.handle_selection(session, "none")

        assert result.session.state == ConsultationState.COMPLETED
        assert result.session.patient.symptom == symptom.name
        assert patients.snapshots == [{"patient_id": "patient-1", "appointment_time": None}]
        assert len(notifier.sent) == 1

    async def test_unreachable_staff_is_reported_honestly(
        self, engine, notifier, completed, symptom, responses
    ):
        notifier.error = RuntimeError("telegram down")
        session = completed.transition(
            SelectingSlotSession,
            symptom=symptom,
            responses=responses,
            severity=Severity.LOW,
            offered_slots=slot_series(3),
        )

        result = await engine.handle_selection(session, "none")

        assert result.session.state == ConsultationState.COMPLETED
        assert result.reply.endswith(NOT_NOTIFIED)


class TestCompletionText:
    async def test_failing_model_falls_back_to_literal(self, engine, nlp, monkeypatch):
        async def unavailable(patient_name):
            raise RuntimeError("model unavailable")

        monkeypatch.setattr(nlp, "completion_message", unavailable)

        assert await engine.completion_text("Jane Doe") == COMPLETION_FALLBACK
