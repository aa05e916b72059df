"""Slot grid generation and rendering."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from cardio_intake.utils.scheduling import (
    format_category_name,
    format_slot,
    generate_candidate_slots,
    parse_instant,
    round_up_to_step,
    within_business_hours,
)

UTC = ZoneInfo("UTC")


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 6, day, hour, minute, tzinfo=timezone.utc)


class TestGrid:
    def test_round_up(self):
        assert round_up_to_step(at(2, 9, 1), 15) == at(2, 9, 15)
        assert round_up_to_step(at(2, 9, 30), 15) == at(2, 9, 30)

    def test_business_hours_include_slot_ending_at_close(self):
        assert within_business_hours(at(2, 16, 30), 30, UTC, 9, 17)
        assert not within_business_hours(at(2, 16, 45), 30, UTC, 9, 17)
        assert not within_business_hours(at(2, 8, 45), 30, UTC, 9, 17)

    def test_slots_skip_busy_periods(self):
        busy = [(at(2, 9, 0), at(2, 10, 0))]
        slots = generate_candidate_slots(
            at(2, 9, 0), at(2, 17, 0), busy, tz=UTC, limit=3
        )
        assert slots == [at(2, 10, 0), at(2, 10, 15), at(2, 10, 30)]

    def test_slots_roll_over_to_next_day(self):
        slots = generate_candidate_slots(at(2, 16, 20), at(4, 0, 0), [], tz=UTC, limit=3)
        assert slots == [at(2, 16, 30), at(3, 9, 0), at(3, 9, 15)]

    def test_business_hours_follow_clinic_timezone(self):
        kolkata = ZoneInfo("Asia/Kolkata")
        slots = generate_candidate_slots(at(2, 0, 0), at(3, 0, 0), [], tz=kolkata, limit=1)
        # 09:00 IST is 03:30 UTC
        assert slots == [at(2, 3, 30)]

    def test_window_end_is_exclusive(self):
        assert generate_candidate_slots(at(2, 9, 0), at(2, 9, 0), [], tz=UTC) == []


class TestFormatting:
    def test_format_slot(self):
        assert format_slot(at(1, 10, 0), "UTC") == "Sunday, June 1, 2025 at 10:00 AM UTC"

    def test_parse_instant(self):
        assert parse_instant("2025-06-01T10:00:00Z") == at(1, 10, 0)

    def test_category_name(self):
        assert format_category_name("red_flags") == "Red Flags"
