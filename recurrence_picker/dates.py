"""Locale-aware parsing and formatting of picker dates.

Every function takes the locale explicitly. Timestamps are naive
``datetime`` objects; a value without a time of day means midnight.
"""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

log = logging.getLogger(__name__)

DateOrText = Union[date, datetime, str]

DATE_MODE = "date"
DATETIME_MODE = "datetime"
TWO_DIGIT_YEAR_PIVOT = 50


class DateError(ValueError):
    pass


class InvalidDateError(DateError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid date value: {value!r}")
        self.value = value


class UnparseableDateError(DateError):
    def __init__(self, text: str) -> None:
        super().__init__(f"Unable to parse date: {text!r}")
        self.text = text


@dataclass(frozen=True)
class LocaleFormat:
    order: str
    separator: str
    zero_pad: bool = True

    @property
    def day_first(self) -> bool:
        return self.order.index("D") < self.order.index("M")

    @property
    def year_index(self) -> int:
        return self.order.index("Y")


LOCALE_FORMATS = {
    "en-US": LocaleFormat("MDY", "/", zero_pad=False),
    "en-GB": LocaleFormat("DMY", "/"),
    "en-AU": LocaleFormat("DMY", "/"),
    "en-IE": LocaleFormat("DMY", "/"),
    "en-IN": LocaleFormat("DMY", "/", zero_pad=False),
    "en-NZ": LocaleFormat("DMY", "/"),
    "en-CA": LocaleFormat("YMD", "-"),
    "fr-FR": LocaleFormat("DMY", "/"),
    "fr-CA": LocaleFormat("YMD", "-"),
    "de-DE": LocaleFormat("DMY", "."),
    "de-AT": LocaleFormat("DMY", "."),
    "de-CH": LocaleFormat("DMY", "."),
    "es-ES": LocaleFormat("DMY", "/"),
    "es-MX": LocaleFormat("DMY", "/"),
    "it-IT": LocaleFormat("DMY", "/"),
    "pt-PT": LocaleFormat("DMY", "/"),
    "pt-BR": LocaleFormat("DMY", "/"),
    "nl-NL": LocaleFormat("DMY", "-", zero_pad=False),
    "pl-PL": LocaleFormat("DMY", "."),
    "ru-RU": LocaleFormat("DMY", "."),
    "da-DK": LocaleFormat("DMY", "."),
    "nb-NO": LocaleFormat("DMY", "."),
    "fi-FI": LocaleFormat("DMY", ".", zero_pad=False),
    "sv-SE": LocaleFormat("YMD", "-"),
    "ja-JP": LocaleFormat("YMD", "/"),
    "zh-CN": LocaleFormat("YMD", "/", zero_pad=False),
}
DEFAULT_LOCALE = "en-GB"

_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}(?:T\S+)?$")
_SMART_PATTERN = re.compile(
    r"^(?P<first>\d{1,4})\s*[/.\-]\s*(?P<second>\d{1,4})\s*[/.\-]\s*(?P<third>\d{1,4})"
    r"(?:\s*,?\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second_of_minute>\d{2}))?)?$"
)
_MONTH_NAME = re.compile(
    r"\b(" + "|".join(name.lower() for name in calendar.month_abbr[1:]) + r")[a-z]*\b", re.IGNORECASE
)


def locale_format(locale: Optional[str]) -> LocaleFormat:
    if not locale:
        return LOCALE_FORMATS[DEFAULT_LOCALE]
    tag = locale.replace("_", "-")
    if tag in LOCALE_FORMATS:
        return LOCALE_FORMATS[tag]
    language = tag.split("-", 1)[0].lower()
    for known, fmt in LOCALE_FORMATS.items():
        if known.split("-", 1)[0] == language:
            return fmt
    return LOCALE_FORMATS[DEFAULT_LOCALE]


def parse_date(value: Optional[DateOrText], locale: Optional[str] = DEFAULT_LOCALE) -> datetime:
    """Resolve a structured date or locale text into a timestamp.

    Text is tried as ISO 8601 first, then as three numeric components with
    an optional time, then as a date spelling out the month name.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str):
        raise InvalidDateError(value)

    text = value.strip()
    if not text:
        raise UnparseableDateError(value)
    if _ISO_PATTERN.match(text):
        try:
            return date_parser.isoparse(text).replace(tzinfo=None)
        except (ValueError, OverflowError):
            log.debug("Not a valid ISO date, trying locale patterns: %s", text)

    match = _SMART_PATTERN.match(text)
    if match:
        return _parse_numeric(match, value, locale_format(locale))
    if _MONTH_NAME.search(text):
        return _parse_month_name(text, value, locale_format(locale))
    raise UnparseableDateError(value)


def _parse_numeric(match: re.Match, original: str, fmt: LocaleFormat) -> datetime:
    parts = [match.group("first"), match.group("second"), match.group("third")]
    numbers = [int(part) for part in parts]

    year_positions = [i for i, (raw, number) in enumerate(zip(parts, numbers)) if number > 31 or len(raw) == 4]
    if len(year_positions) > 1:
        raise UnparseableDateError(original)
    year_index = year_positions[0] if year_positions else fmt.year_index
    year = numbers[year_index]
    if len(parts[year_index]) <= 2:
        year += 2000 if year < TWO_DIGIT_YEAR_PIVOT else 1900

    first, second = [number for i, number in enumerate(numbers) if i != year_index]
    if first > 12 and second > 12:
        raise UnparseableDateError(original)
    if first > 12:
        day, month = first, second
    elif second > 12:
        month, day = first, second
    elif fmt.day_first:
        day, month = first, second
    else:
        month, day = first, second

    hour = int(match.group("hour") or 0)
    minute = int(match.group("minute") or 0)
    second_of_minute = int(match.group("second_of_minute") or 0)
    try:
        return datetime(year, month, day, hour, minute, second_of_minute)
    except ValueError as exc:
        raise UnparseableDateError(original) from exc


def _parse_month_name(text: str, original: str, fmt: LocaleFormat) -> datetime:
    # a fixed default keeps missing fields from leaking today's date in
    default = datetime(2000, 1, 1)
    try:
        parsed = date_parser.parse(text, dayfirst=fmt.day_first, default=default)
    except (ValueError, OverflowError) as exc:
        raise UnparseableDateError(original) from exc
    if not re.search(r"\d{4}", text):
        raise UnparseableDateError(original)
    return parsed.replace(tzinfo=None)


def format_date(
    value: datetime | date, locale: Optional[str] = DEFAULT_LOCALE, mode: str = DATE_MODE, style: str = "short"
) -> str:
    if not isinstance(value, (date, datetime)):
        raise InvalidDateError(value)
    fmt = locale_format(locale)
    if style == "short":
        text = _format_numeric(value, fmt)
    elif style in ("medium", "long"):
        text = _format_named(value, fmt, abbreviated=style == "medium")
    else:
        raise ValueError(f"Unknown date style: {style}")

    if mode == DATETIME_MODE:
        stamp = value if isinstance(value, datetime) else datetime.combine(value, time())
        clock = f"{stamp:%H:%M:%S}" if stamp.second else f"{stamp:%H:%M}"
        return f"{text} {clock}"
    if mode != DATE_MODE:
        raise ValueError(f"Unknown format mode: {mode}")
    return text


def _format_numeric(value: date, fmt: LocaleFormat) -> str:
    width = 2 if fmt.zero_pad else 1
    fields = {
        "D": f"{value.day:0{width}d}",
        "M": f"{value.month:0{width}d}",
        "Y": f"{value.year:04d}",
    }
    return fmt.separator.join(fields[key] for key in fmt.order)


def _format_named(value: date, fmt: LocaleFormat, abbreviated: bool) -> str:
    month = calendar.month_abbr[value.month] if abbreviated else calendar.month_name[value.month]
    if fmt.order == "MDY":
        return f"{month} {value.day}, {value.year}"
    if fmt.order == "YMD":
        return f"{value.year} {month} {value.day}"
    return f"{value.day} {month} {value.year}"


def is_valid_date(text: Optional[DateOrText], locale: Optional[str] = DEFAULT_LOCALE) -> bool:
    try:
        parse_date(text, locale)
    except DateError:
        return False
    return True


def is_before(first: DateOrText, second: DateOrText, locale: Optional[str] = DEFAULT_LOCALE) -> bool:
    return parse_date(first, locale) < parse_date(second, locale)


def today() -> date:
    return date.today()


def is_today_or_later(
    text: DateOrText, locale: Optional[str] = DEFAULT_LOCALE, reference: Optional[date] = None
) -> bool:
    reference = reference or today()
    return parse_date(text, locale).date() >= reference


def start_of_day(value: datetime | date) -> datetime:
    stamp = parse_date(value)
    return stamp.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime | date) -> datetime:
    return start_of_day(value) + timedelta(days=1) - timedelta(microseconds=1)


def add_years(value: datetime, years: int) -> datetime:
    # relativedelta clamps Feb 29 to Feb 28 in common years
    return parse_date(value) + relativedelta(years=years)


def add_months(value: datetime, months: int) -> datetime:
    return parse_date(value) + relativedelta(months=months)


def weekday_ordinal_in_month(day: date) -> int:
    """Return N for the Nth occurrence of ``day``'s weekday in its month."""
    return sum(
        1 for number in range(1, day.day + 1) if date(day.year, day.month, number).weekday() == day.weekday()
    )


def is_last_weekday_in_month(day: date) -> bool:
    return (day + timedelta(days=7)).month != day.month


def weekday_position(day: date) -> int:
    """Position used in BYDAY clauses: -1 for the last occurrence, else 1..4."""
    if is_last_weekday_in_month(day):
        return -1
    return weekday_ordinal_in_month(day)
