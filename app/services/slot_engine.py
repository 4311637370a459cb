"""Time-slot selection rules for the booking form.

Given the start-time labels a professional has free on a day, the label the
client picked and how many 30-minute units the service needs, work out which
starts are selectable, which slots the booking would cover and what to tell
the client. Everything here is pure: same inputs, same outputs, no I/O, and no
exceptions for bad input (problems come back as a ValidationStatus).
"""
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

SLOT_INTERVAL_MINUTES = 30

StatusType = Literal["info", "warning", "error", "success"]

_TIME_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])?\s*$")


@dataclass
class TimeSlot:
    id: str
    time: str
    minutes: int
    is_selected: bool = False
    is_disabled: bool = False
    is_highlighted: bool = False


@dataclass(frozen=True)
class ValidationStatus:
    is_valid: bool
    message: str | None = None
    type: StatusType | None = None


@dataclass
class ProcessedTimeSlots:
    time_slots: list[TimeSlot] = field(default_factory=list)
    validation_status: ValidationStatus = field(default_factory=lambda: NEUTRAL_STATUS)


NEUTRAL_STATUS = ValidationStatus(is_valid=True, message=None, type=None)


def parse_time_label(label: str) -> int:
    """Minutes since midnight for "9:00 AM" or "14:30".

    Malformed labels come back as 0 rather than raising; callers sort them to
    the top of the day.
    """
    match = _TIME_LABEL_RE.match(label or "")
    if not match:
        return 0
    hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3)
    if minute > 59:
        return 0
    if period:
        if not 1 <= hour <= 12:
            return 0
        hour = hour % 12 + (12 if period.upper() == "PM" else 0)
    elif hour > 23:
        return 0
    return hour * 60 + minute


def format_time_label(minutes: int) -> str:
    hours24 = (minutes // 60) % 24
    mins = minutes % 60
    period = "PM" if hours24 >= 12 else "AM"
    display_hour = hours24 % 12 or 12
    return f"{display_hour}:{mins:02d} {period}"


def format_duration(minutes: int) -> str:
    hours, mins = divmod(max(minutes, 0), 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour" + ("s" if hours != 1 else ""))
    if mins or not hours:
        parts.append(f"{mins} minute" + ("s" if mins != 1 else ""))
    return " ".join(parts)


def total_duration_minutes(service_minutes: int, extra_minutes: list[int] | None = None) -> int:
    return service_minutes + sum(extra_minutes or [])


def required_slots_for(duration_minutes: int) -> int:
    """Number of grid slots a service occupies, always rounded up."""
    return max(1, math.ceil(duration_minutes / SLOT_INTERVAL_MINUTES))


def build_time_slots(labels: list[str], selected_time_slot: str | None = None) -> list[TimeSlot]:
    seen: set[str] = set()
    slots: list[TimeSlot] = []
    for label in labels:
        if label in seen:
            continue
        seen.add(label)
        slots.append(
            TimeSlot(
                id=label,
                time=label,
                minutes=parse_time_label(label),
                is_selected=selected_time_slot is not None and label == selected_time_slot,
            )
        )
    slots.sort(key=lambda s: s.minutes)
    return slots


def _contiguous_run(time_slots: list[TimeSlot], start: int, limit: int) -> tuple[list[int], bool]:
    """Indices of up to `limit` gap-free slots from `start`, and whether a gap stopped the walk."""
    run = [start]
    j = start + 1
    while len(run) < limit and j < len(time_slots):
        if time_slots[j].minutes - time_slots[run[-1]].minutes > SLOT_INTERVAL_MINUTES:
            return run, True
        run.append(j)
        j += 1
    return run, False


def disable_invalid_time_slots(time_slots: list[TimeSlot], required_slots: int) -> list[TimeSlot]:
    """Disable every start that lacks `required_slots` contiguous slots after it."""
    for i, slot in enumerate(time_slots):
        run, _ = _contiguous_run(time_slots, i, required_slots)
        slot.is_disabled = len(run) < required_slots
    return time_slots


def highlight_selected_time_slots(
    time_slots: list[TimeSlot], selected_index: int, required_slots: int
) -> list[TimeSlot]:
    if not 0 <= selected_index < len(time_slots):
        return time_slots
    run, _ = _contiguous_run(time_slots, selected_index, required_slots)
    for i in run:
        time_slots[i].is_highlighted = True
    return time_slots


def validate_time_slot_selection(
    time_slots: list[TimeSlot], selected_index: int, required_slots: int
) -> ValidationStatus:
    if selected_index == -1:
        return NEUTRAL_STATUS
    if not time_slots:
        return ValidationStatus(False, "No time slots available for this date.", "warning")
    if not 0 <= selected_index < len(time_slots):
        return ValidationStatus(False, "Selected time slot is no longer available.", "error")

    duration = format_duration(required_slots * SLOT_INTERVAL_MINUTES)
    run, hit_gap = _contiguous_run(time_slots, selected_index, required_slots)
    if len(run) < required_slots:
        if hit_gap:
            message = f"This service requires {duration} and can't be scheduled due to a gap in availability."
        else:
            message = f"This service requires {duration} but there's not enough time available at the end of the day."
        return ValidationStatus(False, message, "error")

    end_label = time_slots[run[-1]].time
    return ValidationStatus(True, f"This service will take {duration}, ending at {end_label}.", "info")


def process_time_slots(
    available_time_slots: list[str] | None,
    selected_date: date | None,
    selected_time_slot: str | None,
    required_slots: int,
) -> ProcessedTimeSlots:
    """Annotate a day's slots and validate the current selection."""
    if not available_time_slots or selected_date is None:
        return ProcessedTimeSlots([], NEUTRAL_STATUS)

    if required_slots > len(available_time_slots):
        duration = format_duration(required_slots * SLOT_INTERVAL_MINUTES)
        return ProcessedTimeSlots(
            [],
            ValidationStatus(
                False,
                f"This service requires {duration}, but the professional doesn't have enough available time slots.",
                "error",
            ),
        )

    time_slots = build_time_slots(available_time_slots, selected_time_slot)
    selected_index = next((i for i, s in enumerate(time_slots) if s.is_selected), -1)
    if selected_time_slot and selected_index == -1:
        # stale selection: the label the client picked is gone from the day
        selected_index = len(time_slots)

    disable_invalid_time_slots(time_slots, required_slots)
    highlight_selected_time_slots(time_slots, selected_index, required_slots)
    status = validate_time_slot_selection(time_slots, selected_index, required_slots)
    return ProcessedTimeSlots(time_slots, status)
