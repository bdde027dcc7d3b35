from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from .dates import DEFAULT_LOCALE, parse_date, start_of_day, today
from .models import MonthlyOption, Pattern, Weekday, YearlyOption, sort_weekdays


@dataclass
class RecurrenceDescription:
    start_date: datetime
    pattern: Pattern = Pattern.DAY
    every: int = 1
    selected_days: List[Weekday] = field(default_factory=list)
    monthly_option: MonthlyOption = MonthlyOption.DAY
    yearly_option: YearlyOption = YearlyOption.DATE
    end_date: Optional[datetime] = None
    has_end_date: bool = False
    # derived from the fields above; recomputed rather than trusted
    rrule: Optional[str] = None
    description: Optional[str] = None

    def snapshot(self) -> "RecurrenceDescription":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat(),
            "pattern": self.pattern.value,
            "every": self.every,
            "selectedDays": [day.value for day in sort_weekdays(self.selected_days)],
            "monthlyOption": self.monthly_option.value,
            "yearlyOption": self.yearly_option.value,
            "endDate": self.end_date.isoformat() if self.has_end_date and self.end_date else None,
            "hasEndDate": self.has_end_date,
            "rrule": self.rrule,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any], locale: Optional[str] = DEFAULT_LOCALE) -> "RecurrenceDescription":
        """Build a description from the host's JSON shape.

        Dates may be ISO strings or text in the host locale. Unknown enum
        values raise ``ValueError``; bad dates raise the date service errors.
        """
        start_raw = payload.get("startDate")
        start = parse_date(start_raw, locale) if start_raw else start_of_day(today())
        end_raw = payload.get("endDate")
        end = parse_date(end_raw, locale) if end_raw else None
        every = int(payload.get("every") or 1)
        return cls(
            start_date=start,
            pattern=Pattern(payload.get("pattern") or Pattern.DAY.value),
            every=max(1, every),
            selected_days=sort_weekdays(Weekday.from_token(token) for token in payload.get("selectedDays") or []),
            monthly_option=MonthlyOption(payload.get("monthlyOption") or MonthlyOption.DAY.value),
            yearly_option=YearlyOption(payload.get("yearlyOption") or YearlyOption.DATE.value),
            end_date=end,
            has_end_date=bool(payload.get("hasEndDate", end is not None)) and end is not None,
            rrule=payload.get("rrule") or None,
            description=payload.get("description") or None,
        )


def default_description(start: Optional[datetime] = None) -> RecurrenceDescription:
    return RecurrenceDescription(start_date=start or start_of_day(today()))
