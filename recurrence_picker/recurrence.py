from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import islice
from typing import Callable, Optional

from dateutil import rrule

from .dates import (
    DEFAULT_LOCALE,
    DateError,
    DateOrText,
    end_of_day,
    format_date,
    parse_date,
    start_of_day,
    today,
    weekday_position,
)
from .models import RRULE_SYMBOLS, MonthlyOption, Pattern, Weekday, YearlyOption, sort_weekdays
from .schemas import RecurrenceDescription, default_description
from .views.formatting import interval_phrase, join_names, month_day_phrase, month_name, weekday_phrase
from .views.messages import INVALID_RULE_MESSAGE, NO_RULE_MESSAGE

log = logging.getLogger(__name__)

RRULE_PREFIX = "RRULE:"
DTSTART_PREFIX = "DTSTART"
ICAL_DATETIME_FORMAT = "%Y%m%dT%H%M%S"

# same order the calendar export serialises parts in
CANONICAL_ORDER = ("FREQ", "UNTIL", "COUNT", "INTERVAL", "BYDAY", "BYMONTHDAY", "BYMONTH")
RFC_KEYS = {
    "FREQ",
    "UNTIL",
    "COUNT",
    "INTERVAL",
    "BYSECOND",
    "BYMINUTE",
    "BYHOUR",
    "BYDAY",
    "BYMONTHDAY",
    "BYYEARDAY",
    "BYWEEKNO",
    "BYMONTH",
    "BYSETPOS",
    "WKST",
}
IMPORTABLE_KEYS = {"FREQ", "UNTIL", "INTERVAL", "BYDAY", "BYMONTHDAY", "BYMONTH", "WKST"}
_BYDAY_TOKEN = re.compile(r"^(?P<position>[+-]?\d{1,2})?(?P<symbol>MO|TU|WE|TH|FR|SA|SU)$")
_SIGNED_INT = re.compile(r"^[+-]?\d{1,3}$")
MAX_BYDAY_POSITION = 53
# occurrences scanned when moving an imported start onto a matching date
ALIGN_SEARCH_LIMIT = 120


class RecurrenceError(ValueError):
    pass


class RuleConstructionError(RecurrenceError):
    pass


class RuleParseError(RecurrenceError):
    def __init__(self, text: object, reason: str) -> None:
        super().__init__(f"Invalid recurrence rule {text!r}: {reason}")
        self.text = text
        self.reason = reason


@dataclass
class ParsedRule:
    parts: dict[str, str]
    dtstart: Optional[datetime] = None

    @property
    def body(self) -> str:
        keys = [key for key in CANONICAL_ORDER if key in self.parts]
        keys += sorted(key for key in self.parts if key not in CANONICAL_ORDER)
        return ";".join(f"{key}={self.parts[key]}" for key in keys)

    @property
    def interval(self) -> int:
        return int(self.parts.get("INTERVAL", "1"))

    def weekdays(self) -> list[tuple[Optional[int], Weekday]]:
        result = []
        for token in filter(None, self.parts.get("BYDAY", "").split(",")):
            match = _BYDAY_TOKEN.match(token)
            position = int(match.group("position")) if match.group("position") else None
            result.append((position, Weekday.from_index(RRULE_SYMBOLS.index(match.group("symbol")))))
        return result

    def integers(self, key: str) -> list[int]:
        return [int(value) for value in filter(None, self.parts.get(key, "").split(","))]


def _parse_ical_datetime(value: str, text: str) -> datetime:
    raw = value.strip().upper().rstrip("Z")
    for fmt in (ICAL_DATETIME_FORMAT, "%Y%m%d"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise RuleParseError(text, f"bad date-time {value!r}")


def parse_rule(text: str) -> ParsedRule:
    if not isinstance(text, str) or not text.strip():
        raise RuleParseError(text, "empty rule")

    body = None
    dtstart = None
    for line in text.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        upper = line.upper()
        if upper.startswith(DTSTART_PREFIX):
            # DTSTART;TZID=...:value keeps the value after the last colon
            dtstart = _parse_ical_datetime(line.rsplit(":", 1)[-1], text)
        elif upper.startswith(RRULE_PREFIX):
            if body is not None:
                raise RuleParseError(text, "more than one RRULE")
            body = line[len(RRULE_PREFIX):]
        elif "=" in line and ":" not in line:
            if body is not None:
                raise RuleParseError(text, "more than one RRULE")
            body = line
        else:
            raise RuleParseError(text, f"unexpected line {line!r}")
    if body is None:
        raise RuleParseError(text, "missing RRULE")

    parts: dict[str, str] = {}
    for chunk in body.split(";"):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition("=")
        key = key.strip().upper()
        value = value.strip().upper()
        if not sep or not value:
            raise RuleParseError(text, f"malformed part {chunk!r}")
        if key not in RFC_KEYS:
            raise RuleParseError(text, f"unknown part {key}")
        if key in parts:
            raise RuleParseError(text, f"duplicate part {key}")
        parts[key] = value

    if "FREQ" not in parts:
        raise RuleParseError(text, "missing FREQ")
    if "INTERVAL" in parts:
        if not parts["INTERVAL"].isdigit() or int(parts["INTERVAL"]) < 1:
            raise RuleParseError(text, "INTERVAL must be a positive integer")
    for token in filter(None, parts.get("BYDAY", "").split(",")):
        match = _BYDAY_TOKEN.match(token)
        if not match:
            raise RuleParseError(text, f"bad BYDAY value {token!r}")
        if match.group("position") and not 1 <= abs(int(match.group("position"))) <= MAX_BYDAY_POSITION:
            raise RuleParseError(text, f"BYDAY position out of range in {token!r}")
    _check_range(parts, "BYMONTH", 12, text, signed=False)
    _check_range(parts, "BYMONTHDAY", 31, text, signed=True)

    parsed = ParsedRule(parts=parts, dtstart=dtstart)
    months, days = parsed.integers("BYMONTH"), parsed.integers("BYMONTHDAY")
    # 2000 is a leap year, so February allows day 29
    if months and days and not any(abs(day) <= calendar.monthrange(2000, month)[1] for month in months for day in days):
        raise RuleParseError(text, "BYMONTHDAY never falls inside BYMONTH")
    return parsed


def _check_range(parts: dict[str, str], key: str, limit: int, text: str, signed: bool) -> None:
    for value in filter(None, parts.get(key, "").split(",")):
        if not _SIGNED_INT.match(value):
            raise RuleParseError(text, f"bad {key} value {value!r}")
        number = int(value)
        if not 1 <= abs(number) <= limit or (number < 0 and not signed):
            raise RuleParseError(text, f"{key} value {value!r} out of range")


def _resolve_anchor(parsed: ParsedRule, dtstart: Optional[DateOrText], locale: Optional[str]) -> datetime:
    if parsed.dtstart is not None:
        return parsed.dtstart
    if dtstart is not None:
        return parse_date(dtstart, locale)
    return start_of_day(today())


def _build_rule(
    parsed: ParsedRule, dtstart: Optional[DateOrText] = None, locale: Optional[str] = DEFAULT_LOCALE
) -> rrule.rrule:
    anchor = _resolve_anchor(parsed, dtstart, locale)
    try:
        return rrule.rrulestr(RRULE_PREFIX + parsed.body, dtstart=anchor, ignoretz=True)
    except (ValueError, TypeError, KeyError) as exc:
        raise RuleParseError(parsed.body, str(exc)) from exc


def build_rule(
    rule_text: str, dtstart: Optional[DateOrText] = None, locale: Optional[str] = DEFAULT_LOCALE
) -> rrule.rrule:
    """Parse rule text into a ``dateutil`` rule anchored at its DTSTART, ``dtstart`` or today."""
    return _build_rule(parse_rule(rule_text), dtstart, locale)


def rule_anchor(
    rule_text: str, dtstart: Optional[DateOrText] = None, locale: Optional[str] = DEFAULT_LOCALE
) -> datetime:
    return _resolve_anchor(parse_rule(rule_text), dtstart, locale)


def anchor_rule_text(rule_text: str, start: DateOrText, locale: Optional[str] = DEFAULT_LOCALE) -> str:
    parsed = parse_rule(rule_text)
    anchor = parse_date(start, locale)
    return f"{DTSTART_PREFIX}:{anchor:{ICAL_DATETIME_FORMAT}}\n{RRULE_PREFIX}{parsed.body}"


def positional_weekday(day: datetime) -> str:
    return f"{weekday_position(day)}{RRULE_SYMBOLS[day.weekday()]}"


def _daily_parts(desc: RecurrenceDescription, start: datetime) -> dict[str, str]:
    return {}


def _weekly_parts(desc: RecurrenceDescription, start: datetime) -> dict[str, str]:
    days = sort_weekdays(desc.selected_days)
    if len(days) == len(Weekday):
        raise RuleConstructionError("All seven weekdays selected; normalise to a daily pattern first")
    if not days:
        return {}
    return {"BYDAY": ",".join(day.symbol for day in days)}


def _monthly_parts(desc: RecurrenceDescription, start: datetime) -> dict[str, str]:
    if desc.monthly_option == MonthlyOption.WEEKDAY:
        return {"BYDAY": positional_weekday(start)}
    return {"BYMONTHDAY": str(start.day)}


def _yearly_parts(desc: RecurrenceDescription, start: datetime) -> dict[str, str]:
    if desc.yearly_option == YearlyOption.WEEKDAY:
        return {"BYDAY": positional_weekday(start), "BYMONTH": str(start.month)}
    return {"BYMONTHDAY": str(start.day), "BYMONTH": str(start.month)}


RULE_BUILDERS: dict[Pattern, Callable[[RecurrenceDescription, datetime], dict[str, str]]] = {
    Pattern.DAY: _daily_parts,
    Pattern.WEEK: _weekly_parts,
    Pattern.MONTH: _monthly_parts,
    Pattern.YEAR: _yearly_parts,
}


def to_rule_text(desc: RecurrenceDescription, locale: Optional[str] = DEFAULT_LOCALE) -> str:
    try:
        start = parse_date(desc.start_date, locale)
    except DateError as exc:
        raise RuleConstructionError(f"Cannot resolve start date {desc.start_date!r}") from exc
    try:
        pattern = Pattern(desc.pattern)
    except ValueError as exc:
        raise RuleConstructionError(f"Unknown pattern {desc.pattern!r}") from exc
    builder = RULE_BUILDERS.get(pattern)
    if builder is None:
        raise RuleConstructionError(f"No rule builder for pattern {pattern.value}")
    if not isinstance(desc.every, int) or desc.every < 1:
        raise RuleConstructionError(f"Interval must be a positive integer, got {desc.every!r}")

    parts = {"FREQ": pattern.frequency, "INTERVAL": str(desc.every)}
    if desc.has_end_date:
        try:
            until = end_of_day(parse_date(desc.end_date, locale)).replace(microsecond=0)
        except DateError as exc:
            raise RuleConstructionError(f"Cannot resolve end date {desc.end_date!r}") from exc
        parts["UNTIL"] = f"{until:{ICAL_DATETIME_FORMAT}}"
    parts.update(builder(desc, start))

    parsed = ParsedRule(parts=parts)
    try:
        _build_rule(parsed, start)
    except RuleParseError as exc:
        raise RuleConstructionError(str(exc)) from exc
    return parsed.body


def from_rule_text(
    text: str, fallback_start: Optional[DateOrText] = None, locale: Optional[str] = DEFAULT_LOCALE
) -> RecurrenceDescription:
    """Rebuild the picker fields from rule text.

    Only the parts the picker can express are accepted. When the text has
    no DTSTART, monthly and yearly rules move the start onto their first
    occurrence at the BYDAY position, so the day/weekday option derives from
    a matching date. Rules the fields cannot reproduce keep their text.
    """
    parsed = parse_rule(text)
    unsupported = sorted(set(parsed.parts) - IMPORTABLE_KEYS)
    if unsupported:
        raise RuleParseError(text, f"unsupported parts {', '.join(unsupported)}")
    try:
        pattern = Pattern.from_frequency(parsed.parts["FREQ"])
    except ValueError as exc:
        raise RuleParseError(text, f"unsupported frequency {parsed.parts['FREQ']}") from exc
    try:
        start = _resolve_anchor(parsed, fallback_start, locale)
    except DateError as exc:
        raise RuleParseError(text, f"bad start date {fallback_start!r}") from exc
    rule = _build_rule(parsed, start)

    if parsed.dtstart is None and pattern in (Pattern.MONTH, Pattern.YEAR):
        start = _aligned_start(rule, parsed) or start

    desc = RecurrenceDescription(start_date=start, pattern=pattern, every=parsed.interval)
    weekdays = parsed.weekdays()
    if pattern == Pattern.WEEK:
        desc.selected_days = sort_weekdays(day for _, day in weekdays)
        if len(desc.selected_days) == len(Weekday) and desc.every == 1:
            desc.pattern, desc.selected_days = Pattern.DAY, []
    elif pattern == Pattern.MONTH and weekdays:
        desc.monthly_option = MonthlyOption.WEEKDAY
    elif pattern == Pattern.YEAR and weekdays:
        desc.yearly_option = YearlyOption.WEEKDAY

    if "UNTIL" in parsed.parts:
        until = _parse_ical_datetime(parsed.parts["UNTIL"], text)
        desc.end_date = start_of_day(until)
        # an UNTIL earlier in the day than the start excludes that last day
        if until.time() < start.time():
            desc.end_date -= timedelta(days=1)
        desc.has_end_date = True

    try:
        rebuilt = to_rule_text(desc)
    except RuleConstructionError:
        rebuilt = None
    if rebuilt is None or (desc.pattern == pattern and not _same_constraints(parsed, parse_rule(rebuilt))):
        log.debug("Keeping imported rule text verbatim: %s", parsed.body)
        desc.rrule = parsed.body
    else:
        desc.rrule = rebuilt
    return desc


def _aligned_start(rule: rrule.rrule, parsed: ParsedRule) -> Optional[datetime]:
    """First occurrence whose weekday position matches the BYDAY ordinals, else the first occurrence."""
    positions = {position for position, _ in parsed.weekdays() if position}
    first = None
    for occurrence in islice(rule, ALIGN_SEARCH_LIMIT):
        if not positions or weekday_position(occurrence) in positions:
            return occurrence
        first = first or occurrence
    return first


def _same_constraints(imported: ParsedRule, rebuilt: ParsedRule) -> bool:
    for key in ("BYMONTHDAY", "BYMONTH"):
        if key in imported.parts and sorted(imported.integers(key)) != sorted(rebuilt.integers(key)):
            return False
    if "BYDAY" in imported.parts:
        return _weekday_keys(imported) == _weekday_keys(rebuilt)
    return True


def _weekday_keys(parsed: ParsedRule) -> list[tuple[int, int]]:
    return sorted((position or 0, day.index) for position, day in parsed.weekdays())


def from_rule_text_or_default(
    text: Optional[str], fallback_start: Optional[DateOrText] = None, locale: Optional[str] = DEFAULT_LOCALE
) -> RecurrenceDescription:
    try:
        return from_rule_text(text, fallback_start, locale)
    except RuleParseError as exc:
        log.warning("Falling back to a daily recurrence: %s", exc)
    try:
        start = parse_date(fallback_start, locale) if fallback_start is not None else None
    except DateError:
        start = None
    return default_description(start)


def validate_rule(text: Optional[str]) -> bool:
    try:
        build_rule(text)
    except RecurrenceError:
        return False
    return True


def describe(rule_text: Optional[str], locale: Optional[str] = DEFAULT_LOCALE) -> str:
    if not rule_text or not rule_text.strip():
        return NO_RULE_MESSAGE
    try:
        parsed = parse_rule(rule_text)
        _build_rule(parsed)
        return _render_description(parsed, locale)
    except (ValueError, KeyError) as exc:
        log.warning("Cannot describe recurrence rule %r: %s", rule_text, exc)
        return INVALID_RULE_MESSAGE


def _render_description(parsed: ParsedRule, locale: Optional[str]) -> str:
    frequency = parsed.parts["FREQ"]
    try:
        pattern = Pattern.from_frequency(frequency)
        words = [interval_phrase(pattern, parsed.interval)]
    except ValueError:
        pattern = None
        words = [f"every {parsed.interval} {frequency.lower()}"]

    weekdays = parsed.weekdays()
    month_days = parsed.integers("BYMONTHDAY")
    months = [month_name(month) for month in parsed.integers("BYMONTH")]

    if weekdays and any(position for position, _ in weekdays) and pattern in (Pattern.MONTH, Pattern.YEAR):
        phrases = [
            weekday_phrase(position, day) if position else day.full_name for position, day in weekdays
        ]
        words.append(f"on {join_names(phrases)}")
        if months:
            words.append(f"of {join_names(months)}")
    elif weekdays:
        words.append(f"on {', '.join(day.full_name for _, day in weekdays)}")
        if months:
            words.append(f"in {join_names(months)}")
    elif month_days and months:
        words.append(f"on {join_names(f'{month} {day}' for month in months for day in month_days)}")
    elif month_days:
        words.append(f"on {join_names(month_day_phrase(day) for day in month_days)}")
    elif months:
        words.append(f"in {join_names(months)}")

    if "COUNT" in parsed.parts:
        count = int(parsed.parts["COUNT"])
        words.append("for 1 time" if count == 1 else f"for {count} times")
    if "UNTIL" in parsed.parts:
        until = _parse_ical_datetime(parsed.parts["UNTIL"], parsed.body)
        words.append(f"until {format_date(until, locale, style='medium')}")
    return " ".join(words)


def occurrences(rule_text: Optional[str], limit: int, dtstart: Optional[DateOrText] = None) -> list[datetime]:
    if limit <= 0:
        return []
    try:
        rule = build_rule(rule_text, dtstart)
        return list(islice(rule, limit))
    except (ValueError, OverflowError) as exc:
        log.warning("Cannot enumerate recurrence rule %r: %s", rule_text, exc)
        return []


def occurrences_between(
    rule_text: Optional[str],
    after: DateOrText,
    before: DateOrText,
    dtstart: Optional[DateOrText] = None,
    locale: Optional[str] = DEFAULT_LOCALE,
) -> list[datetime]:
    """Occurrences in ``[after, before]``, both ends inclusive."""
    try:
        start = parse_date(after, locale)
        end = parse_date(before, locale)
        if end < start:
            return []
        rule = build_rule(rule_text, dtstart, locale)
        return rule.between(start, end, inc=True)
    except (ValueError, OverflowError) as exc:
        log.warning("Cannot enumerate recurrence rule %r: %s", rule_text, exc)
        return []


def occurs_on(
    rule_text: Optional[str],
    day: DateOrText,
    dtstart: Optional[DateOrText] = None,
    locale: Optional[str] = DEFAULT_LOCALE,
) -> bool:
    try:
        reference = parse_date(day, locale)
        rule = build_rule(rule_text, dtstart, locale)
        hit = rule.after(start_of_day(reference), inc=True)
    except (ValueError, OverflowError) as exc:
        log.warning("Cannot evaluate recurrence rule %r: %s", rule_text, exc)
        return False
    return hit is not None and hit <= end_of_day(reference)


def next_occurrence(
    rule_text: Optional[str],
    after: DateOrText,
    dtstart: Optional[DateOrText] = None,
    locale: Optional[str] = DEFAULT_LOCALE,
) -> Optional[datetime]:
    try:
        rule = build_rule(rule_text, dtstart, locale)
        return rule.after(parse_date(after, locale))
    except (ValueError, OverflowError) as exc:
        log.warning("Cannot evaluate recurrence rule %r: %s", rule_text, exc)
        return None
