import logging
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.appointment import Appointment, Booking
from app.models.professional import ProfessionalProfile, WorkingHoursEntry
from app.services.slot_engine import SLOT_INTERVAL_MINUTES, format_time_label, parse_time_label

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def professional_zone(professional: ProfessionalProfile) -> ZoneInfo:
    try:
        return ZoneInfo(professional.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for professional %s, using UTC", professional.timezone, professional.id)
        return ZoneInfo("UTC")


def local_to_utc_naive(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    """Naive UTC datetime for `minutes` past local midnight of `day` in `tz`."""
    local = datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(minutes=minutes)
    return local.astimezone(UTC).replace(tzinfo=None)


def _utc_naive_to_local_minutes(dt: datetime, day: date, tz: ZoneInfo) -> int:
    midnight = datetime.combine(day, time(0, 0), tzinfo=tz)
    return int((dt.replace(tzinfo=UTC) - midnight).total_seconds() // 60)


def working_hours_for_day(professional: ProfessionalProfile, day: date) -> WorkingHoursEntry | None:
    name = DAY_NAMES[day.weekday()]
    for entry in professional.parsed_working_hours():
        if entry.day.lower() == name and entry.enabled:
            return entry
    return None


def get_available_days(professional: ProfessionalProfile) -> list[str]:
    """Enabled weekday names, in week order."""
    enabled = {
        h.day.lower()
        for h in professional.parsed_working_hours()
        if h.enabled and h.start_time and h.end_time
    }
    return [d.capitalize() for d in DAY_NAMES if d in enabled]


def _overlaps_busy(start_minutes: int, length_minutes: int, busy: list[tuple[int, int]]) -> bool:
    end_minutes = start_minutes + length_minutes
    return any(start_minutes < b_end and end_minutes > b_start for b_start, b_end in busy)


def generate_slot_labels(
    start_minutes: int,
    end_minutes: int,
    required_minutes: int,
    busy: list[tuple[int, int]] | None = None,
) -> list[str]:
    """Grid starts from `start_minutes` where the whole service fits before `end_minutes`
    and does not overlap any busy (start, end) interval."""
    labels: list[str] = []
    busy = busy or []
    minutes = start_minutes
    while minutes + required_minutes <= end_minutes:
        if not _overlaps_busy(minutes, required_minutes, busy):
            labels.append(format_time_label(minutes))
        minutes += SLOT_INTERVAL_MINUTES
    return labels


async def get_busy_intervals(
    session: AsyncSession, professional: ProfessionalProfile, day: date
) -> list[tuple[int, int]]:
    """Non-cancelled appointments overlapping `day`, as local minute offsets."""
    tz = professional_zone(professional)
    day_start = local_to_utc_naive(day, 0, tz)
    day_end = local_to_utc_naive(day, 24 * 60, tz)
    result = await session.execute(
        select(Appointment.start_time, Appointment.end_time)
        .join(Booking, Booking.id == Appointment.booking_id)
        .where(
            Booking.professional_profile_id == professional.id,
            Booking.status != "cancelled",
            Appointment.start_time < day_end,
            Appointment.end_time > day_start,
        )
    )
    return [
        (_utc_naive_to_local_minutes(start, day, tz), _utc_naive_to_local_minutes(end, day, tz))
        for start, end in result.all()
    ]


async def get_available_slot_labels(
    session: AsyncSession,
    professional: ProfessionalProfile,
    day: date,
) -> list[str]:
    """Free grid slots on `day` as start-time labels in the professional's local time.

    Each label only promises its own interval is free; whether a longer service
    fits is decided by the slot engine from the contiguity of the labels.
    """
    hours = working_hours_for_day(professional, day)
    if hours is None:
        return []
    if not hours.start_time or not hours.end_time:
        busy = await get_busy_intervals(session, professional, day)
        return [
            label
            for label in settings.default_slot_labels_list
            if not _overlaps_busy(parse_time_label(label), SLOT_INTERVAL_MINUTES, busy)
        ]
    start_minutes = parse_time_label(hours.start_time)
    end_minutes = parse_time_label(hours.end_time)
    if end_minutes <= start_minutes:
        logger.warning(
            "Working hours for professional %s on %s end before they start (%s-%s)",
            professional.id,
            day,
            hours.start_time,
            hours.end_time,
        )
        return []
    busy = await get_busy_intervals(session, professional, day)
    return generate_slot_labels(start_minutes, end_minutes, SLOT_INTERVAL_MINUTES, busy)


def utc_naive_to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    return dt.replace(tzinfo=UTC).astimezone(tz)
