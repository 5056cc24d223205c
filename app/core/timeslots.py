"""Clinic time helpers: 12-hour slot strings, slot generation and cutoffs."""

import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

TIME_12H_PATTERN = re.compile(r"^(0?[1-9]|1[0-2]):([0-5][0-9])\s?(AM|PM)$", re.IGNORECASE)
TIME_24H_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_time_12h(value: str) -> time:
    """Parse "9:00 AM" / "09:00 pm" into a time. Raises ValueError otherwise."""
    match = TIME_12H_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected format like '09:00 AM'")

    hour = int(match.group(1)) % 12
    if match.group(3).upper() == "PM":
        hour += 12
    return time(hour, int(match.group(2)))


def parse_time_24h(value: str) -> time:
    """Parse "HH:MM" as used in the clinic hours document."""
    match = TIME_24H_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def format_time_12h(value: time) -> str:
    """Render the canonical slot label, e.g. "01:30 PM"."""
    return value.strftime("%I:%M %p")


def normalize_time(value: str) -> str:
    """Canonicalize any accepted 12-hour string."""
    return format_time_12h(parse_time_12h(value))


def add_minutes(value: str, minutes: int) -> str:
    """Shift a slot label by a number of minutes."""
    shifted = datetime.combine(date.min, parse_time_12h(value)) + timedelta(minutes=minutes)
    return format_time_12h(shifted.time())


def weekday_name(day: date) -> str:
    """Lower-case English weekday used as the hours key."""
    return WEEKDAYS[day.weekday()]


def generate_slots(start: str, end: str, step_minutes: int) -> list[str]:
    """
    Expand an opening window into slot labels.

    Slots start at ``start`` and advance by ``step_minutes`` while strictly
    before ``end``.

    Args:
        start: Opening time, HH:MM
        end: Closing time, HH:MM
        step_minutes: Slot length

    Returns:
        Ordered 12-hour slot labels
    """
    current = datetime.combine(date.min, parse_time_24h(start))
    closing = datetime.combine(date.min, parse_time_24h(end))
    step = timedelta(minutes=step_minutes)

    slots = []
    while current < closing:
        slots.append(format_time_12h(current.time()))
        current += step
    return slots


def slots_for_day(weekly_hours: dict, day: date, step_minutes: int) -> list[str]:
    """Slot labels a doctor offers on a given date, empty when not working."""
    hours = weekly_hours.get(weekday_name(day))
    if not hours or not hours.get("enabled"):
        return []
    return generate_slots(hours["start"], hours["end"], step_minutes)


def appointment_start(day: date, slot: str, tz: ZoneInfo) -> datetime:
    """Combine a date and slot label into an aware instant in the clinic timezone."""
    return datetime.combine(day, parse_time_12h(slot), tzinfo=tz)


def within_cutoff(day: date, slot: str, now: datetime, cutoff: timedelta, tz: ZoneInfo) -> bool:
    """True when fewer than ``cutoff`` remains before the appointment starts."""
    return appointment_start(day, slot, tz) - now < cutoff
