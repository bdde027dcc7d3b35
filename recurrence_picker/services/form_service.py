from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

from .. import dates
from ..models import MonthlyOption, Pattern, Weekday, YearlyOption, sort_weekdays
from ..recurrence import RuleConstructionError, anchor_rule_text, describe, from_rule_text, occurrences, to_rule_text
from ..schemas import RecurrenceDescription
from ..settings import Settings
from ..views.formatting import month_day_label, monthly_weekday_label, yearly_date_label, yearly_weekday_label
from ..views.messages import (
    END_BEFORE_START_MESSAGE,
    INVALID_END_MESSAGE,
    INVALID_START_MESSAGE,
    NO_RULE_MESSAGE,
    START_IN_PAST_MESSAGE,
    recurrence_summary,
)

log = logging.getLogger(__name__)


@dataclass
class FormValues:
    start_date: str
    end_date: Optional[str]
    pattern: Pattern = Pattern.DAY
    every: int = 1
    selected_days: List[Weekday] = field(default_factory=list)
    monthly_option: MonthlyOption = MonthlyOption.DAY
    yearly_option: YearlyOption = YearlyOption.DATE
    has_end_date: bool = True


@dataclass
class Preview:
    rule_text: Optional[str] = None
    description: str = NO_RULE_MESSAGE
    occurrences: List[datetime] = field(default_factory=list)
    summary: str = ""


class RecurrenceForm:
    """Edit state of one recurrence, with a preview kept in step with every edit.

    Dates are held as the text the user typed, formatted for ``locale``.
    ``save`` only hands out a description once ``errors`` is empty.
    """

    def __init__(
        self,
        locale: str,
        initial: Optional[RecurrenceDescription] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.locale = locale
        self.settings = settings or Settings(locale=locale)
        self.values = self._values_from(initial) if initial else self._default_values()
        self._session_start = copy.deepcopy(self.values)
        self.saved: Optional[RecurrenceDescription] = None
        self.preview = Preview()
        self._refresh()

    def _default_values(self) -> FormValues:
        start = dates.start_of_day(dates.today())
        end = dates.add_months(start, self.settings.default_end_months)
        return FormValues(start_date=self._format(start), end_date=self._format(end))

    def _values_from(self, desc: RecurrenceDescription) -> FormValues:
        return FormValues(
            start_date=self._format(desc.start_date),
            end_date=self._format(desc.end_date) if desc.end_date else None,
            pattern=desc.pattern,
            every=desc.every,
            selected_days=sort_weekdays(desc.selected_days),
            monthly_option=desc.monthly_option,
            yearly_option=desc.yearly_option,
            has_end_date=desc.has_end_date,
        )

    def _format(self, value: datetime) -> str:
        mode = dates.DATETIME_MODE if (value.hour, value.minute, value.second) != (0, 0, 0) else dates.DATE_MODE
        return dates.format_date(value, self.locale, mode=mode)

    def _parse(self, text: Optional[str]) -> Optional[datetime]:
        if not text:
            return None
        try:
            return dates.parse_date(text, self.locale)
        except dates.DateError:
            return None

    @property
    def start(self) -> Optional[datetime]:
        return self._parse(self.values.start_date)

    @property
    def end(self) -> Optional[datetime]:
        return self._parse(self.values.end_date)

    @property
    def errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        start = self.start
        if start is None:
            errors["start_date"] = INVALID_START_MESSAGE
        elif start.date() < dates.today():
            errors["start_date"] = START_IN_PAST_MESSAGE
        if self.values.has_end_date:
            end = self.end
            if end is None:
                errors["end_date"] = INVALID_END_MESSAGE
            elif start is not None and end <= start:
                errors["end_date"] = END_BEFORE_START_MESSAGE
        return errors

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def monthly_labels(self) -> Dict[MonthlyOption, str]:
        start = self.start or dates.start_of_day(dates.today())
        return {MonthlyOption.DAY: month_day_label(start), MonthlyOption.WEEKDAY: monthly_weekday_label(start)}

    @property
    def yearly_labels(self) -> Dict[YearlyOption, str]:
        start = self.start or dates.start_of_day(dates.today())
        return {YearlyOption.DATE: yearly_date_label(start), YearlyOption.WEEKDAY: yearly_weekday_label(start)}

    def set_start_date(self, text: str) -> None:
        self.values.start_date = text.strip()
        start = self.start
        if start is not None and self.values.has_end_date and self.values.end_date:
            self.values.end_date = self._format(dates.add_years(dates.start_of_day(start), 1))
        self._refresh()

    def set_end_date(self, text: str) -> None:
        self.values.end_date = text.strip()
        self._refresh()

    def choose_end_date(self) -> None:
        self.values.has_end_date = True
        start, end = self.start, self.end
        if start is not None and (end is None or end <= start):
            self.values.end_date = self._format(dates.add_years(dates.start_of_day(start), 1))
        self._refresh()

    def remove_end_date(self) -> None:
        self.values.has_end_date = False
        self._refresh()

    def set_pattern(self, pattern: Union[Pattern, str]) -> None:
        self.values.pattern = Pattern(pattern)
        self._refresh()

    def set_every(self, value: Union[int, str]) -> None:
        try:
            every = int(value)
        except (TypeError, ValueError):
            every = 1
        self.values.every = every if every >= 1 else 1
        self._refresh()

    def toggle_day(self, day: Union[Weekday, str]) -> None:
        weekday = day if isinstance(day, Weekday) else Weekday.from_token(day)
        selected = list(self.values.selected_days)
        if weekday in selected:
            selected.remove(weekday)
        else:
            selected.append(weekday)

        if len(set(selected)) == len(Weekday):
            # every day of the week is a daily recurrence
            self.values.pattern = Pattern.DAY
            self.values.every = 1
            selected = []
        self.values.selected_days = sort_weekdays(selected)
        self._refresh()

    def set_monthly_option(self, option: Union[MonthlyOption, str]) -> None:
        self.values.monthly_option = MonthlyOption(option)
        self._refresh()

    def set_yearly_option(self, option: Union[YearlyOption, str]) -> None:
        self.values.yearly_option = YearlyOption(option)
        self._refresh()

    def import_rule(self, text: str) -> None:
        """Replace the edit state with an existing rule; raises RuleParseError and keeps state on failure."""
        desc = from_rule_text(text, fallback_start=self.start, locale=self.locale)
        self.values = self._values_from(desc)
        self._refresh()

    def to_description(self) -> Optional[RecurrenceDescription]:
        start = self.start
        if start is None:
            return None
        values = self.values
        return RecurrenceDescription(
            start_date=start,
            pattern=values.pattern,
            every=values.every,
            selected_days=sort_weekdays(values.selected_days) if values.pattern == Pattern.WEEK else [],
            monthly_option=values.monthly_option,
            yearly_option=values.yearly_option,
            end_date=self.end if values.has_end_date else None,
            has_end_date=values.has_end_date,
        )

    def _refresh(self) -> None:
        self.preview = self._compute_preview()

    def _compute_preview(self) -> Preview:
        values = self.values
        start = self.start
        summary = recurrence_summary(
            values.pattern,
            values.every,
            start,
            values.selected_days,
            values.monthly_option,
            values.yearly_option,
            values.has_end_date,
        )
        desc = self.to_description()
        if desc is None or (values.has_end_date and self.end is None):
            return Preview(summary=summary)
        try:
            rule_text = to_rule_text(desc, self.locale)
        except RuleConstructionError as exc:
            log.debug("No preview for current form values: %s", exc)
            return Preview(summary=summary)
        return Preview(
            rule_text=rule_text,
            description=describe(rule_text, self.locale),
            occurrences=occurrences(anchor_rule_text(rule_text, start), self.settings.preview_count),
            summary=summary,
        )

    def save(self) -> Optional[RecurrenceDescription]:
        if self.errors or self.preview.rule_text is None:
            return None
        desc = self.to_description()
        desc.rrule = self.preview.rule_text
        desc.description = self.preview.description
        self.saved = desc.snapshot()
        self._session_start = copy.deepcopy(self.values)
        return desc

    def discard(self) -> None:
        self.values = copy.deepcopy(self._session_start)
        self._refresh()

    def remove(self) -> RecurrenceDescription:
        self.values = self._default_values()
        self.values.has_end_date = False
        self._session_start = copy.deepcopy(self.values)
        self.saved = None
        self._refresh()
        cleared = self.to_description()
        cleared.rrule = None
        cleared.description = None
        return cleared
