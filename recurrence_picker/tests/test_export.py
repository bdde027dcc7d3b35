from datetime import datetime, timezone

from dateutil.rrule import rrulestr
from icalendar import Calendar

from recurrence_picker.services.export_service import to_calendar_document


def _event(document):
    calendar = Calendar.from_ical(document)
    return next(iter(calendar.walk("VEVENT")))


def test_document_embeds_rule_verbatim(biweekly_rule):
    document = to_calendar_document(biweekly_rule, "Standup", dtstart=datetime(2025, 1, 6, 9), uid="standup@example")
    assert document.startswith("BEGIN:VCALENDAR")
    assert f"RRULE:{biweekly_rule}" in document
    assert "DTSTART:20250106T090000Z" in document
    assert "SUMMARY:Standup" in document
    assert "UID:standup@example" in document
    assert "VERSION:2.0" in document


def test_document_parses_back(biweekly_rule):
    document = to_calendar_document(f"RRULE:{biweekly_rule}", "Standup", dtstart=datetime(2025, 1, 6, 9))
    event = _event(document)
    assert str(event["summary"]) == "Standup"
    assert event.decoded("dtstart") == datetime(2025, 1, 6, 9, tzinfo=timezone.utc)
    assert event["rrule"]["FREQ"] == ["WEEKLY"]
    assert event["rrule"]["INTERVAL"] == [2]
    assert event["rrule"]["BYDAY"] == ["MO", "WE", "FR"]
    assert str(event["uid"]).endswith("@recurrence-picker")


def test_until_is_written_in_utc():
    rule = "FREQ=DAILY;UNTIL=20250930T235959;INTERVAL=1"
    document = to_calendar_document(rule, "Daily", dtstart=datetime(2025, 9, 1))
    assert "DTSTART:20250901T000000Z" in document
    assert "RRULE:FREQ=DAILY;UNTIL=20250930T235959Z;INTERVAL=1" in document


def test_exported_event_evaluates():
    document = to_calendar_document(
        "FREQ=WEEKLY;UNTIL=20250930T235959;INTERVAL=2;BYDAY=MO", "Review", dtstart=datetime(2025, 9, 1, 9)
    )
    event = _event(document)
    rule = rrulestr(event["rrule"].to_ical().decode(), dtstart=event.decoded("dtstart"))
    assert list(rule) == [
        datetime(2025, 9, 1, 9, tzinfo=timezone.utc),
        datetime(2025, 9, 15, 9, tzinfo=timezone.utc),
        datetime(2025, 9, 29, 9, tzinfo=timezone.utc),
    ]


def test_date_only_until_becomes_utc_midnight():
    document = to_calendar_document("FREQ=DAILY;UNTIL=20250905", "Daily", dtstart=datetime(2025, 9, 1))
    assert "UNTIL=20250905T000000Z" in document


def test_dtstart_in_rule_text_wins():
    document = to_calendar_document("DTSTART:20250623T091500\nRRULE:FREQ=DAILY", "Daily", dtstart=datetime(2030, 1, 1))
    assert "DTSTART:20250623T091500Z" in document


def test_custom_prodid(biweekly_rule):
    document = to_calendar_document(biweekly_rule, "Standup", dtstart=datetime(2025, 1, 6), prodid="-//Acme//Planner//EN")
    assert "PRODID:-//Acme//Planner//EN" in document


def test_invalid_rules_export_nothing():
    assert to_calendar_document("", "Nothing") == ""
    assert to_calendar_document(None, "Nothing") == ""
    assert to_calendar_document("garbage", "Nothing") == ""
    assert to_calendar_document("FREQ=DAILY;INTERVAL=0", "Nothing") == ""
    assert to_calendar_document("FREQ=DAILY", "Nothing", dtstart="not a date") == ""
