from __future__ import annotations

import calendar
import enum


class Pattern(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def frequency(self) -> str:
        return FREQUENCIES[self]

    @classmethod
    def from_frequency(cls, frequency: str) -> "Pattern":
        for pattern, name in FREQUENCIES.items():
            if name == frequency.upper():
                return pattern
        raise ValueError(f"Unsupported frequency: {frequency}")


FREQUENCIES = {
    Pattern.DAY: "DAILY",
    Pattern.WEEK: "WEEKLY",
    Pattern.MONTH: "MONTHLY",
    Pattern.YEAR: "YEARLY",
}

# singular/plural unit used in "every 2 weeks"
PATTERN_UNITS = {
    Pattern.DAY: ("day", "days"),
    Pattern.WEEK: ("week", "weeks"),
    Pattern.MONTH: ("month", "months"),
    Pattern.YEAR: ("year", "years"),
}


class MonthlyOption(str, enum.Enum):
    DAY = "day"
    WEEKDAY = "weekday"


class YearlyOption(str, enum.Enum):
    DATE = "date"
    WEEKDAY = "weekday"


RRULE_SYMBOLS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


class Weekday(str, enum.Enum):
    """Day buttons of the picker.

    Members are declared Monday first; ``index`` follows ``date.weekday()``
    and ``dateutil`` (Monday=0, Sunday=6) everywhere in the package.
    """

    MONDAY = "M"
    TUESDAY = "T"
    WEDNESDAY = "W"
    THURSDAY = "Th"
    FRIDAY = "F"
    SATURDAY = "S"
    SUNDAY = "Su"

    @property
    def index(self) -> int:
        return list(Weekday).index(self)

    @property
    def symbol(self) -> str:
        return RRULE_SYMBOLS[self.index]

    @property
    def full_name(self) -> str:
        return calendar.day_name[self.index]

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        return list(cls)[index]

    @classmethod
    def from_token(cls, token: str) -> "Weekday":
        if not isinstance(token, str):
            raise ValueError(f"Weekday token must be text, got {token!r}")
        cleaned = token.strip()
        for day in cls:
            if cleaned == day.value:
                return day
        lowered = cleaned.lower()
        for day in cls:
            if lowered in (day.symbol.lower(), day.full_name.lower(), day.full_name[:3].lower()):
                return day
        raise ValueError(f"Unknown weekday: {token}")


def sort_weekdays(days) -> list[Weekday]:
    return sorted(set(days), key=lambda day: day.index)
