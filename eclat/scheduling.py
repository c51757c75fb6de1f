"""Weekly staff schedules and the slot availability engine.

All time arithmetic is done on integer minutes since midnight. A schedule is
validated once, when a :class:`DaySchedule` is built; the query functions
trust their input and never re-validate it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Iterable, Iterator

from .errors import InvalidDuration, InvalidSchedule

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """A wall-clock time on a 24-hour scale with minute resolution."""

    minutes: int

    def __post_init__(self) -> None:
        if isinstance(self.minutes, bool) or not isinstance(self.minutes, int):
            raise TypeError("minutes must be an integer")
        if not 0 <= self.minutes < MINUTES_PER_DAY:
            raise ValueError(f"{self.minutes} is outside 00:00-23:59")

    @classmethod
    def parse(cls, value: str) -> "TimeOfDay":
        if not isinstance(value, str):
            raise ValueError(f"invalid time of day: {value!r}")
        match = TIME_PATTERN.match(value.strip())
        if not match:
            raise ValueError(f"invalid time of day: {value!r}")
        return cls(int(match.group(1)) * 60 + int(match.group(2)))

    @classmethod
    def from_time(cls, value: time) -> "TimeOfDay":
        return cls(value.hour * 60 + value.minute)

    @classmethod
    def coerce(cls, value: "TimeOfDay | str | time | int") -> "TimeOfDay":
        if isinstance(value, TimeOfDay):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, time):
            return cls.from_time(value)
        return cls(value)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def plus(self, minutes: int) -> "TimeOfDay":
        return TimeOfDay(self.minutes + minutes)

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_date(cls, value: date) -> "Weekday":
        return list(cls)[value.weekday()]

    @classmethod
    def parse(cls, value: "Weekday | str") -> "Weekday":
        if isinstance(value, Weekday):
            return value
        if not isinstance(value, str):
            raise ValueError(f"invalid weekday: {value!r}")
        normalized = value.strip().capitalize()
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"invalid weekday: {value!r}") from None


DEFAULT_START = TimeOfDay(9 * 60)
DEFAULT_END = TimeOfDay(18 * 60)


@dataclass(frozen=True)
class DaySchedule:
    """Working hours for one weekday, with an optional break window."""

    day: Weekday
    is_available: bool = True
    start_time: TimeOfDay = DEFAULT_START
    end_time: TimeOfDay = DEFAULT_END
    break_start: TimeOfDay | None = None
    break_end: TimeOfDay | None = None

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise InvalidSchedule(
                f"{self.day.value}: start time {self.start_time} must be before end time {self.end_time}"
            )
        if (self.break_start is None) != (self.break_end is None):
            raise InvalidSchedule(f"{self.day.value}: break start and break end must be given together")
        if self.break_start is not None:
            if self.break_start >= self.break_end:
                raise InvalidSchedule(
                    f"{self.day.value}: break start {self.break_start} must be before break end {self.break_end}"
                )
            if self.break_start < self.start_time or self.break_end > self.end_time:
                raise InvalidSchedule(f"{self.day.value}: break must fall within working hours")

    @property
    def has_break(self) -> bool:
        return self.break_start is not None

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DaySchedule":
        """Build an entry from its JSON form (camelCase or snake_case keys)."""

        def pick(*keys: str) -> object:
            for key in keys:
                if data.get(key) not in (None, ""):
                    return data[key]
            return None

        try:
            day = Weekday.parse(pick("day"))
            start = pick("startTime", "start_time")
            end = pick("endTime", "end_time")
            break_start = pick("breakStart", "break_start")
            break_end = pick("breakEnd", "break_end")
            is_available = pick("isAvailable", "is_available")
            if is_available is not None and not isinstance(is_available, bool):
                raise TypeError(f"isAvailable must be true or false, not {is_available!r}")
            return cls(
                day=day,
                is_available=True if is_available is None else is_available,
                start_time=TimeOfDay.coerce(start) if start is not None else DEFAULT_START,
                end_time=TimeOfDay.coerce(end) if end is not None else DEFAULT_END,
                break_start=TimeOfDay.coerce(break_start) if break_start is not None else None,
                break_end=TimeOfDay.coerce(break_end) if break_end is not None else None,
            )
        except (TypeError, ValueError) as exc:
            raise InvalidSchedule(str(exc)) from exc

    def to_dict(self) -> dict[str, object]:
        return {
            "day": self.day.value,
            "isAvailable": self.is_available,
            "startTime": str(self.start_time),
            "endTime": str(self.end_time),
            "breakStart": str(self.break_start) if self.break_start else None,
            "breakEnd": str(self.break_end) if self.break_end else None,
        }


class WeeklySchedule:
    """A staff member's schedule: at most one :class:`DaySchedule` per weekday."""

    def __init__(self, days: Iterable[DaySchedule] = ()) -> None:
        self._days: dict[Weekday, DaySchedule] = {}
        for entry in days:
            if entry.day in self._days:
                raise InvalidSchedule(f"{entry.day.value} appears more than once")
            self._days[entry.day] = entry

    @classmethod
    def from_list(cls, items: Iterable[dict[str, object]]) -> "WeeklySchedule":
        if isinstance(items, (str, bytes, dict)):
            raise InvalidSchedule("schedule must be a list of day entries")
        entries = []
        for item in items:
            if not isinstance(item, dict):
                raise InvalidSchedule("each schedule entry must be an object")
            try:
                entries.append(DaySchedule.from_dict(item))
            except InvalidSchedule as exc:
                logger.debug("Rejected schedule entry %r: %s", item, exc)
                raise
        return cls(entries)

    def for_day(self, weekday: Weekday | str) -> DaySchedule | None:
        return self._days.get(Weekday.parse(weekday))

    def to_list(self) -> list[dict[str, object]]:
        return [entry.to_dict() for entry in self]

    def __iter__(self) -> Iterator[DaySchedule]:
        return (self._days[day] for day in Weekday if day in self._days)

    def __len__(self) -> int:
        return len(self._days)

    def __repr__(self) -> str:
        return f"WeeklySchedule({[entry.day.value for entry in self]})"


def is_available_at(schedule: WeeklySchedule, weekday: Weekday | str, at: TimeOfDay | str) -> bool:
    """Return True when the staff member works at ``at`` on ``weekday``.

    Before a break the window is half-open, ``[start, break_start)``; after a
    break (or on a day without one) the closing bound is inclusive.
    """
    day = schedule.for_day(weekday)
    if day is None or not day.is_available:
        return False

    moment = TimeOfDay.coerce(at)
    if day.has_break:
        return (day.start_time <= moment < day.break_start) or (day.break_end <= moment <= day.end_time)
    return day.start_time <= moment <= day.end_time


class SlotSequence:
    """Restartable, lazily generated slot start times for one working day."""

    def __init__(self, day: DaySchedule | None, duration_minutes: int) -> None:
        self._day = day
        self._duration = duration_minutes

    def __iter__(self) -> Iterator[TimeOfDay]:
        day = self._day
        if day is None or not day.is_available:
            return

        duration = self._duration
        cursor = day.start_time.minutes
        end = day.end_time.minutes
        while cursor + duration <= end:
            if day.has_break and cursor < day.break_end.minutes and cursor + duration > day.break_start.minutes:
                # the break consumes no partial slot
                cursor = day.break_end.minutes
                continue
            yield TimeOfDay(cursor)
            cursor += duration

    def as_strings(self) -> list[str]:
        return [str(slot) for slot in self]

    def __repr__(self) -> str:
        return f"SlotSequence({self.as_strings()})"


def available_slots(
    schedule: WeeklySchedule, weekday: Weekday | str, duration_minutes: int
) -> SlotSequence:
    """Bookable start times for ``weekday`` given a service duration.

    Booked appointments are not consulted; callers subtract those themselves.
    """
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise InvalidDuration(f"duration must be a positive number of minutes, got {duration_minutes!r}")
    return SlotSequence(schedule.for_day(weekday), duration_minutes)
