from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable

from humanize import ordinal

from ..dates import weekday_position
from ..models import PATTERN_UNITS, Pattern, Weekday


def join_names(names: Iterable[str], conjunction: str = "and") -> str:
    items = list(names)
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} {conjunction} {items[-1]}"


def month_name(month: int) -> str:
    return calendar.month_name[month]


def position_label(position: int) -> str:
    if position == -1:
        return "last"
    if position < 0:
        return f"{ordinal(-position)} to last"
    return ordinal(position)


def interval_phrase(pattern: Pattern, every: int) -> str:
    singular, plural = PATTERN_UNITS[pattern]
    if every == 1:
        return f"every {singular}"
    return f"every {every} {plural}"


def weekday_phrase(position: int, weekday: Weekday) -> str:
    return f"the {position_label(position)} {weekday.full_name}"


def month_day_phrase(day: int) -> str:
    if day == -1:
        return "the last day"
    if day < 0:
        return f"the {ordinal(-day)} to last day"
    return f"the {ordinal(day)}"


def month_day_label(start: date) -> str:
    return f"On day {start.day}"


def monthly_weekday_label(start: date) -> str:
    return f"On {weekday_phrase(weekday_position(start), Weekday.from_index(start.weekday()))}"


def yearly_date_label(start: date) -> str:
    return f"On {month_name(start.month)} {start.day}"


def yearly_weekday_label(start: date) -> str:
    weekday = Weekday.from_index(start.weekday())
    return f"On {weekday_phrase(weekday_position(start), weekday)} of {month_name(start.month)}"
