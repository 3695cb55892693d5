"""
Availability slot calculation

Pure functions: callers load settings, the professional and busy intervals,
and pass local wall-clock values in. Nothing here touches the database.
"""

from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

DEFAULT_START_HOUR = 8
DEFAULT_END_HOUR = 19
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]
SLOT_STEP_MINUTES = 30
DEFAULT_DURATION_MINUTES = 60


def weekday_number(day: date) -> int:
    """Day of week with 0 = Sunday"""
    return (day.weekday() + 1) % 7


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    """'09:30' -> 570 minutes after midnight; None for empty or malformed values"""
    if not value or not isinstance(value, str):
        return None
    try:
        hours, minutes = value.strip().split(":")[:2]
        return int(hours) * 60 + int(minutes)
    except ValueError:
        return None


def resolve_working_window(settings: Any = None, professional: Any = None) -> dict:
    """
    Merge tenant scheduling settings with a professional's own schedule.

    Returns:
        Dict with start/end (minutes after midnight), break_start/break_end and work_days
    """
    start = DEFAULT_START_HOUR * 60
    end = DEFAULT_END_HOUR * 60
    work_days = list(ALL_DAYS)

    if settings is not None:
        if settings.start_hour is not None:
            start = settings.start_hour * 60
        if settings.end_hour is not None:
            end = settings.end_hour * 60
        if settings.work_days is not None:
            work_days = list(settings.work_days)

    break_start = break_end = None

    if professional is not None:
        if professional.work_days:
            work_days = list(professional.work_days)

        hours = professional.work_hours or {}
        custom_start = parse_hhmm(hours.get("start"))
        custom_end = parse_hhmm(hours.get("end"))
        if custom_start is not None and custom_end is not None:
            start, end = custom_start, custom_end

        break_start = parse_hhmm(hours.get("break_start"))
        break_end = parse_hhmm(hours.get("break_end"))
        if break_start is None or break_end is None or break_end <= break_start:
            break_start = break_end = None

    return {
        "start": start,
        "end": end,
        "break_start": break_start,
        "break_end": break_end,
        "work_days": [int(d) for d in work_days],
    }


def calculate_slots(
    day: date,
    duration_minutes: int,
    window: dict,
    busy: Iterable[tuple[datetime, datetime]] = (),
) -> dict:
    """
    Slot grid for one day.

    Candidates start every 30 minutes from the window start and must end by the
    window end. A candidate is unavailable when it overlaps a busy interval
    (local naive datetimes) or the professional's break.

    Returns:
        {"available": [...], "unavailable": [...], "day_off": bool} with HH:MM strings
    """
    if weekday_number(day) not in window["work_days"]:
        return {"available": [], "unavailable": [], "day_off": True}

    minutes = int(duration_minutes or DEFAULT_DURATION_MINUTES)
    if minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    duration = timedelta(minutes=minutes)
    midnight = datetime.combine(day, datetime.min.time())
    window_start = midnight + timedelta(minutes=window["start"])
    window_end = midnight + timedelta(minutes=window["end"])

    blocked = list(busy)
    if window["break_start"] is not None:
        blocked.append(
            (
                midnight + timedelta(minutes=window["break_start"]),
                midnight + timedelta(minutes=window["break_end"]),
            )
        )

    available, unavailable = [], []
    slot_start = window_start
    while slot_start + duration <= window_end:
        slot_end = slot_start + duration
        overlaps = any(slot_start < b_end and b_start < slot_end for b_start, b_end in blocked)
        (unavailable if overlaps else available).append(slot_start.strftime("%H:%M"))
        slot_start += timedelta(minutes=SLOT_STEP_MINUTES)

    return {"available": available, "unavailable": unavailable, "day_off": False}
