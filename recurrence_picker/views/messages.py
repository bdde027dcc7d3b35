from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from ..dates import weekday_position
from ..models import MonthlyOption, Pattern, Weekday, YearlyOption, sort_weekdays
from .formatting import interval_phrase, join_names, month_name, weekday_phrase

NO_RULE_MESSAGE = "No recurrence rule"
INVALID_RULE_MESSAGE = "Invalid recurrence rule"

INVALID_START_MESSAGE = "Enter a valid start date."
START_IN_PAST_MESSAGE = "Start date cannot be in the past."
INVALID_END_MESSAGE = "Enter a valid end date."
END_BEFORE_START_MESSAGE = "End date must be after the start date."


def _with_until(text: str, has_end_date: bool) -> str:
    return f"{text} until" if has_end_date else text


def recurrence_summary(
    pattern: Pattern,
    every: int,
    start: Optional[date],
    selected_days: Iterable[Weekday] = (),
    monthly_option: MonthlyOption = MonthlyOption.DAY,
    yearly_option: YearlyOption = YearlyOption.DATE,
    has_end_date: bool = False,
) -> str:
    """Sentence shown in front of the end date picker, e.g. "Occurs every Monday and Friday until"."""
    if start is None:
        return _with_until("Occurs", has_end_date)

    if pattern == Pattern.DAY:
        return _with_until(f"Occurs {interval_phrase(pattern, every)}", has_end_date)

    if pattern == Pattern.WEEK:
        days = sort_weekdays(selected_days)
        if not days:
            return _with_until(f"Occurs {interval_phrase(pattern, every)}", has_end_date)
        names = join_names(day.full_name for day in days)
        if every == 1:
            return _with_until(f"Occurs every {names}", has_end_date)
        return _with_until(f"Occurs {interval_phrase(pattern, every)} on {names}", has_end_date)

    weekday = Weekday.from_index(start.weekday())
    suffix = "" if every == 1 else f" {interval_phrase(pattern, every)}"
    if pattern == Pattern.MONTH:
        if monthly_option == MonthlyOption.DAY:
            return _with_until(f"Occurs on day {start.day}{suffix}", has_end_date)
        return _with_until(f"Occurs on {weekday_phrase(weekday_position(start), weekday)}{suffix}", has_end_date)

    if yearly_option == YearlyOption.DATE:
        if every == 1:
            return _with_until(f"Occurs every {month_name(start.month)} {start.day}", has_end_date)
        return _with_until(f"Occurs on {month_name(start.month)} {start.day}{suffix}", has_end_date)
    phrase = f"{weekday_phrase(weekday_position(start), weekday)} of {month_name(start.month)}"
    return _with_until(f"Occurs on {phrase}{suffix}", has_end_date)
