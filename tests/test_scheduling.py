"""Tests for the availability engine."""
from __future__ import annotations

from datetime import date

import pytest

from eclat.errors import InvalidDuration, InvalidSchedule
from eclat.scheduling import (DaySchedule, TimeOfDay, Weekday, WeeklySchedule, available_slots,
                              is_available_at)


def _schedule(*entries: dict[str, object]) -> WeeklySchedule:
    return WeeklySchedule.from_list(list(entries))


@pytest.fixture
def monday_with_break() -> WeeklySchedule:
    return _schedule({
        "day": "Monday",
        "startTime": "09:00",
        "endTime": "13:00",
        "breakStart": "11:00",
        "breakEnd": "11:30",
    })


@pytest.fixture
def full_week() -> WeeklySchedule:
    return _schedule(
        {"day": "Monday", "startTime": "09:00", "endTime": "17:00", "breakStart": "12:00", "breakEnd": "13:00"},
        {"day": "Tuesday", "startTime": "09:00", "endTime": "17:00"},
        {"day": "Wednesday", "isAvailable": False},
    )


def test_time_of_day_parses_and_formats() -> None:
    assert TimeOfDay.parse("9:05") == TimeOfDay(545)
    assert str(TimeOfDay.parse("09:05")) == "09:05"
    assert str(TimeOfDay(0)) == "00:00"
    assert TimeOfDay.parse("23:59").minutes == 1439


@pytest.mark.parametrize("value", ["24:00", "9", "09:60", "", "ab:cd", None])
def test_time_of_day_rejects_malformed(value) -> None:
    with pytest.raises(ValueError):
        TimeOfDay.parse(value)


def test_time_of_day_rejects_out_of_range_minutes() -> None:
    with pytest.raises(ValueError):
        TimeOfDay(24 * 60)
    with pytest.raises(TypeError):
        TimeOfDay("540")


def test_weekday_parse_and_from_date() -> None:
    assert Weekday.parse("monday") is Weekday.MONDAY
    assert Weekday.parse("SUNDAY") is Weekday.SUNDAY
    assert Weekday.from_date(date(2024, 1, 1)) is Weekday.MONDAY
    with pytest.raises(ValueError):
        Weekday.parse("Funday")


def test_slots_skip_the_break(monday_with_break) -> None:
    slots = available_slots(monday_with_break, "Monday", 60)

    assert slots.as_strings() == ["09:00", "10:00", "11:30"]


def test_slots_without_break_fill_the_day(full_week) -> None:
    slots = list(available_slots(full_week, Weekday.TUESDAY, 60))

    assert len(slots) == 8
    assert slots[0] == TimeOfDay.parse("09:00")
    assert slots[-1] == TimeOfDay.parse("16:00")


@pytest.mark.parametrize("duration", [15, 25, 45, 60, 90, 120, 480])
def test_slot_count_without_break_is_floor_of_window(full_week, duration) -> None:
    slots = list(available_slots(full_week, "Tuesday", duration))

    assert len(slots) == (17 * 60 - 9 * 60) // duration


@pytest.mark.parametrize("duration", [15, 30, 45, 50, 60, 90])
def test_slots_fit_inside_working_hours_and_avoid_break(full_week, duration) -> None:
    day = full_week.for_day("Monday")
    slots = list(available_slots(full_week, "Monday", duration))

    assert slots == sorted(set(slots))
    for slot in slots:
        assert slot >= day.start_time
        assert slot.minutes + duration <= day.end_time.minutes
        assert not (slot.minutes < day.break_end.minutes and slot.minutes + duration > day.break_start.minutes)


def test_slot_sequence_is_restartable(full_week) -> None:
    slots = available_slots(full_week, "Monday", 45)

    assert list(slots) == list(slots)


def test_duration_longer_than_day_yields_nothing(full_week) -> None:
    assert list(available_slots(full_week, "Tuesday", 9 * 60)) == []


def test_unavailable_or_missing_day_has_no_slots(full_week) -> None:
    assert list(available_slots(full_week, "Wednesday", 30)) == []
    assert list(available_slots(full_week, "Friday", 30)) == []


@pytest.mark.parametrize("duration", [0, -15, True, 1.5, "60", None])
def test_invalid_duration(full_week, duration) -> None:
    with pytest.raises(InvalidDuration) as excinfo:
        available_slots(full_week, "Monday", duration)

    assert excinfo.value.to_dict()["error"] == "invalid_duration"


@pytest.mark.parametrize(
    ("moment", "expected"),
    [
        ("08:59", False),
        ("09:00", True),
        ("11:59", True),
        ("12:00", False),
        ("12:59", False),
        ("13:00", True),
        ("17:00", True),
        ("17:01", False),
    ],
)
def test_is_available_at_with_break(full_week, moment, expected) -> None:
    assert is_available_at(full_week, "Monday", moment) is expected


def test_is_available_at_without_break_includes_end(full_week) -> None:
    assert is_available_at(full_week, "Tuesday", "17:00") is True
    assert is_available_at(full_week, "Tuesday", TimeOfDay.parse("08:30")) is False


def test_is_available_at_unavailable_or_missing_day(full_week) -> None:
    assert is_available_at(full_week, "Wednesday", "10:00") is False
    assert is_available_at(full_week, "Saturday", "10:00") is False


def test_day_schedule_defaults() -> None:
    day = DaySchedule.from_dict({"day": "friday"})

    assert day.day is Weekday.FRIDAY
    assert str(day.start_time) == "09:00"
    assert str(day.end_time) == "18:00"
    assert day.has_break is False


def test_day_schedule_keeps_explicit_day_off() -> None:
    day = DaySchedule.from_dict({"day": "Sunday", "isAvailable": False})

    assert day.is_available is False


@pytest.mark.parametrize(
    "entry",
    [
        {"day": "Monday", "startTime": "17:00", "endTime": "09:00"},
        {"day": "Monday", "startTime": "09:00", "endTime": "09:00"},
        {"day": "Monday", "breakStart": "12:00"},
        {"day": "Monday", "breakStart": "13:00", "breakEnd": "12:00"},
        {"day": "Monday", "startTime": "09:00", "endTime": "17:00", "breakStart": "08:00", "breakEnd": "09:30"},
        {"day": "Monday", "startTime": "25:00"},
        {"day": "Someday"},
        {"startTime": "09:00"},
        {"day": "Monday", "isAvailable": "false"},
        {"day": "Monday", "is_available": 0},
    ],
)
def test_invalid_schedule_entries(entry) -> None:
    with pytest.raises(InvalidSchedule):
        WeeklySchedule.from_list([entry])


def test_weekly_schedule_rejects_duplicate_days() -> None:
    with pytest.raises(InvalidSchedule):
        _schedule({"day": "Monday"}, {"day": "monday"})


def test_weekly_schedule_round_trips_to_camel_case(monday_with_break) -> None:
    assert monday_with_break.to_list() == [{
        "day": "Monday",
        "isAvailable": True,
        "startTime": "09:00",
        "endTime": "13:00",
        "breakStart": "11:00",
        "breakEnd": "11:30",
    }]


def test_weekly_schedule_iterates_in_week_order() -> None:
    schedule = _schedule({"day": "Friday"}, {"day": "Monday"}, {"day": "Wednesday"})

    assert [entry.day for entry in schedule] == [Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY]
    assert len(schedule) == 3
