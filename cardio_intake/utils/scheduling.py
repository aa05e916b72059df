"""Slot grid helpers shared by the calendar service and the negotiation engine."""

from datetime import datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

BusyInterval = Tuple[datetime, datetime]


def round_up_to_step(moment: datetime, step_minutes: int) -> datetime:
    """Round up to the next ``step_minutes`` boundary, dropping seconds."""
    moment = moment.replace(second=0, microsecond=0)
    remainder = moment.minute % step_minutes
    if remainder:
        moment += timedelta(minutes=step_minutes - remainder)
    return moment


def within_business_hours(
    start: datetime,
    duration_minutes: int,
    tz: ZoneInfo,
    opens_at: int,
    closes_at: int,
) -> bool:
    """The whole appointment must fit between opening and closing time."""
    local_start = start.astimezone(tz)
    local_end = (start + timedelta(minutes=duration_minutes)).astimezone(tz)
    if local_start.date() != local_end.date():
        return False
    return local_start.time() >= time(opens_at) and local_end.time() <= time(closes_at)


def overlaps(start: datetime, end: datetime, busy: Iterable[BusyInterval]) -> bool:
    return any(start < busy_end and busy_start < end for busy_start, busy_end in busy)


def generate_candidate_slots(
    window_start: datetime,
    window_end: datetime,
    busy: Sequence[BusyInterval],
    *,
    tz: ZoneInfo,
    duration_minutes: int = 30,
    step_minutes: int = 15,
    opens_at: int = 9,
    closes_at: int = 17,
    limit: int = 8,
) -> List[datetime]:
    """
    Walk the slot grid from ``window_start`` and collect free slots.

    Args:
        window_start: Earliest acceptable start (rounded up to the grid)
        window_end: No slot may start at or after this instant
        busy: Existing calendar events as (start, end) pairs
        tz: Clinic timezone used for business hours
        duration_minutes: Appointment length
        step_minutes: Grid step between candidate starts
        opens_at: Opening hour (local)
        closes_at: Closing hour (local)
        limit: Maximum number of slots returned

    Returns:
        Ascending UTC start instants, soonest first.
    """
    slots: List[datetime] = []
    cursor = round_up_to_step(window_start, step_minutes)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    while cursor < window_end and len(slots) < limit:
        if within_business_hours(cursor, duration_minutes, tz, opens_at, closes_at):
            if not overlaps(cursor, cursor + duration, busy):
                slots.append(cursor.astimezone(timezone.utc))
        cursor += step

    return slots


def parse_instant(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned by Google APIs."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_slot(slot: datetime, tz_name: Optional[str] = None) -> str:
    """Patient-facing rendering, e.g. ``Sunday, June 1, 2025 at 10:00 AM UTC``."""
    local = slot.astimezone(ZoneInfo(tz_name)) if tz_name else slot
    hour = local.strftime("%I").lstrip("0")
    return (
        f"{local.strftime('%A, %B')} {local.day}, {local.year} "
        f"at {hour}:{local.strftime('%M %p')} {local.tzname() or ''}"
    ).rstrip()


def format_category_name(category: str) -> str:
    """``red_flags`` -> ``Red Flags``."""
    return " ".join(word[:1].upper() + word[1:] for word in category.split("_"))
