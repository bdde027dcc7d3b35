from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from icalendar import Calendar, Event, vRecur

from ..dates import DateOrText
from ..recurrence import ParsedRule, build_rule, parse_rule, rule_anchor
from ..settings import Settings

log = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # naive picker timestamps are taken as UTC wall-clock
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _recurrence(parsed: ParsedRule) -> vRecur:
    recur = vRecur.from_ical(parsed.body)
    # UNTIL must be UTC like DTSTART
    if "UNTIL" in recur:
        recur["UNTIL"] = [_as_utc(_as_datetime(value)) for value in recur["UNTIL"]]
    return recur


def _as_datetime(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


def to_calendar_document(
    rule_text: Optional[str],
    title: str,
    dtstart: Optional[DateOrText] = None,
    uid: Optional[str] = None,
    prodid: str = Settings.prodid,
) -> str:
    """Wrap a rule into a single-event VCALENDAR; empty text if it cannot."""
    try:
        parsed = parse_rule(rule_text)
        build_rule(rule_text, dtstart)
        anchor = rule_anchor(rule_text, dtstart)
        cal = Calendar()
        cal.add("prodid", prodid)
        cal.add("version", "2.0")

        event = Event()
        event.add("uid", uid or f"{uuid.uuid4()}@recurrence-picker")
        event.add("dtstamp", datetime.now(timezone.utc))
        event.add("summary", title)
        event.add("dtstart", _as_utc(anchor))
        event.add("rrule", _recurrence(parsed))
        cal.add_component(event)
        return cal.to_ical().decode("utf-8")
    except (ValueError, TypeError) as exc:
        log.warning("Cannot export recurrence rule %r: %s", rule_text, exc)
        return ""
