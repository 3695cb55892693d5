from datetime import date, datetime
from types import SimpleNamespace

import pytest

from clinvia.domain.scheduling.slots import (
    ALL_DAYS,
    calculate_slots,
    parse_hhmm,
    resolve_working_window,
    weekday_number,
)

MONDAY = date(2024, 6, 3)
SUNDAY = date(2024, 6, 2)


def window(start, end, break_start=None, break_end=None, work_days=ALL_DAYS):
    return {
        "start": start * 60,
        "end": end * 60,
        "break_start": break_start,
        "break_end": break_end,
        "work_days": list(work_days),
    }


def test_weekday_number_starts_on_sunday():
    assert weekday_number(SUNDAY) == 0
    assert weekday_number(MONDAY) == 1
    assert weekday_number(date(2024, 6, 8)) == 6


def test_parse_hhmm():
    assert parse_hhmm("09:30") == 570
    assert parse_hhmm("18:00:00") == 1080
    assert parse_hhmm("bad") is None
    assert parse_hhmm("") is None
    assert parse_hhmm(None) is None


def test_working_window_defaults():
    result = resolve_working_window()
    assert result["start"] == 8 * 60
    assert result["end"] == 19 * 60
    assert result["work_days"] == ALL_DAYS
    assert result["break_start"] is None


def test_working_window_uses_tenant_settings():
    settings = SimpleNamespace(start_hour=9, end_hour=12, work_days=[1, 2])
    result = resolve_working_window(settings)
    assert (result["start"], result["end"]) == (540, 720)
    assert result["work_days"] == [1, 2]


def test_professional_schedule_overrides_settings():
    settings = SimpleNamespace(start_hour=8, end_hour=19, work_days=[1, 2, 3, 4, 5])
    professional = SimpleNamespace(
        work_days=[3],
        work_hours={"start": "10:00", "end": "14:00", "break_start": "12:00", "break_end": "13:00"},
    )
    result = resolve_working_window(settings, professional)
    assert (result["start"], result["end"]) == (600, 840)
    assert (result["break_start"], result["break_end"]) == (720, 780)
    assert result["work_days"] == [3]


def test_inverted_break_is_ignored():
    professional = SimpleNamespace(work_days=None, work_hours={"break_start": "13:00", "break_end": "12:00"})
    result = resolve_working_window(None, professional)
    assert result["break_start"] is None
    assert result["break_end"] is None


def test_slots_must_end_within_window():
    slots = calculate_slots(MONDAY, 60, window(9, 12))
    assert slots["available"] == ["09:00", "09:30", "10:00", "10:30", "11:00"]
    assert slots["unavailable"] == []
    assert slots["day_off"] is False


def test_busy_interval_blocks_overlapping_slots_only():
    busy = [(datetime(2024, 6, 3, 10, 0), datetime(2024, 6, 3, 11, 0))]
    slots = calculate_slots(MONDAY, 60, window(9, 12), busy)
    assert slots["available"] == ["09:00", "11:00"]
    assert slots["unavailable"] == ["09:30", "10:00", "10:30"]


def test_break_counts_as_busy():
    slots = calculate_slots(MONDAY, 30, window(10, 14, break_start=720, break_end=780))
    assert slots["unavailable"] == ["12:00", "12:30"]
    assert "11:30" in slots["available"]
    assert "13:00" in slots["available"]
    assert slots["available"][-1] == "13:30"


def test_day_off():
    slots = calculate_slots(SUNDAY, 60, window(9, 12, work_days=[1, 2, 3, 4, 5]))
    assert slots == {"available": [], "unavailable": [], "day_off": True}


def test_missing_duration_uses_default_hour():
    slots = calculate_slots(MONDAY, None, window(9, 11))
    assert slots["available"] == ["09:00", "09:30", "10:00"]


def test_negative_duration_is_rejected():
    with pytest.raises(ValueError):
        calculate_slots(MONDAY, -30, window(9, 12))
