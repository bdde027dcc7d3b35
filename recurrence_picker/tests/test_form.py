from datetime import datetime

import pytest
from freezegun import freeze_time

from recurrence_picker.models import MonthlyOption, Pattern, Weekday, YearlyOption
from recurrence_picker.recurrence import RuleParseError
from recurrence_picker.schemas import RecurrenceDescription
from recurrence_picker.services.form_service import RecurrenceForm
from recurrence_picker.views.messages import (
    END_BEFORE_START_MESSAGE,
    INVALID_END_MESSAGE,
    INVALID_START_MESSAGE,
    NO_RULE_MESSAGE,
    START_IN_PAST_MESSAGE,
)


@pytest.fixture(autouse=True)
def frozen_today():
    with freeze_time("2025-01-01 10:00:00"):
        yield


@pytest.fixture
def form(settings):
    return RecurrenceForm("en-GB", settings=settings)


def test_defaults(form):
    assert form.values.start_date == "01/01/2025"
    assert form.values.end_date == "01/04/2025"
    assert form.values.has_end_date
    assert form.values.pattern == Pattern.DAY
    assert form.is_valid
    assert form.preview.rule_text == "FREQ=DAILY;UNTIL=20250401T235959;INTERVAL=1"
    assert form.preview.description == "every day until 1 Apr 2025"
    assert form.preview.occurrences == [datetime(2025, 1, day) for day in range(1, 6)]
    assert form.preview.summary == "Occurs every day until"


def test_initial_description_is_loaded(settings):
    initial = RecurrenceDescription(
        start_date=datetime(2025, 3, 5, 9, 30),
        pattern=Pattern.WEEK,
        selected_days=[Weekday.FRIDAY, Weekday.MONDAY],
    )
    form = RecurrenceForm("en-GB", initial=initial, settings=settings)
    assert form.values.start_date == "05/03/2025 09:30"
    assert form.values.end_date is None
    assert not form.values.has_end_date
    assert form.values.selected_days == [Weekday.MONDAY, Weekday.FRIDAY]
    assert form.preview.rule_text == "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,FR"
    # March 5th 2025 is a Wednesday
    assert form.preview.occurrences[:2] == [datetime(2025, 3, 7, 9, 30), datetime(2025, 3, 10, 9, 30)]


def test_start_change_moves_end_a_year_out(form):
    form.set_start_date("15/01/2025")
    assert form.values.end_date == "15/01/2026"
    form.set_start_date("29/02/2028")
    assert form.values.end_date == "28/02/2029"
    assert form.is_valid


def test_start_change_keeps_missing_end(form):
    form.remove_end_date()
    form.set_start_date("15/01/2025")
    assert form.values.end_date == "01/04/2025"
    assert not form.values.has_end_date


def test_past_start_blocks_save(form):
    form.set_start_date("31/12/2024")
    assert form.errors == {"start_date": START_IN_PAST_MESSAGE}
    assert form.save() is None
    assert form.saved is None


def test_unparseable_start(form):
    form.set_start_date("nonsense")
    assert form.errors["start_date"] == INVALID_START_MESSAGE
    assert form.preview.rule_text is None
    assert form.preview.description == NO_RULE_MESSAGE
    assert form.preview.occurrences == []


def test_end_must_follow_start(form):
    form.set_end_date("01/01/2025")
    assert form.errors == {"end_date": END_BEFORE_START_MESSAGE}
    form.set_end_date("not a date")
    assert form.errors == {"end_date": INVALID_END_MESSAGE}
    form.remove_end_date()
    assert form.is_valid
    assert "UNTIL" not in form.preview.rule_text


def test_choose_end_date_repairs_stale_end(form):
    form.remove_end_date()
    form.set_end_date("01/01/2024")
    form.choose_end_date()
    assert form.values.has_end_date
    assert form.values.end_date == "01/01/2026"


@pytest.mark.parametrize("value, expected", [("4", 4), (3, 3), (0, 1), (-2, 1), ("abc", 1), (None, 1)])
def test_set_every_clamps(form, value, expected):
    form.set_every(value)
    assert form.values.every == expected


def test_toggle_day_adds_and_removes(form):
    form.set_pattern(Pattern.WEEK)
    form.toggle_day("F")
    form.toggle_day(Weekday.MONDAY)
    assert form.values.selected_days == [Weekday.MONDAY, Weekday.FRIDAY]
    form.toggle_day("M")
    assert form.values.selected_days == [Weekday.FRIDAY]


def test_selecting_every_day_switches_to_daily(form):
    form.set_pattern("week")
    form.set_every(3)
    for day in Weekday:
        form.toggle_day(day)
    assert form.values.pattern == Pattern.DAY
    assert form.values.every == 1
    assert form.values.selected_days == []
    assert form.preview.rule_text.startswith("FREQ=DAILY")


def test_weekly_summary(form):
    form.set_pattern(Pattern.WEEK)
    form.toggle_day(Weekday.MONDAY)
    form.toggle_day(Weekday.FRIDAY)
    assert form.preview.summary == "Occurs every Monday and Friday until"
    form.set_every(2)
    form.remove_end_date()
    assert form.preview.summary == "Occurs every 2 weeks on Monday and Friday"


def test_option_labels(form):
    form.set_start_date("23/06/2025")
    assert form.monthly_labels == {MonthlyOption.DAY: "On day 23", MonthlyOption.WEEKDAY: "On the 4th Monday"}
    assert form.yearly_labels == {
        YearlyOption.DATE: "On June 23",
        YearlyOption.WEEKDAY: "On the 4th Monday of June",
    }
    form.set_start_date("30/06/2025")
    assert form.monthly_labels[MonthlyOption.WEEKDAY] == "On the last Monday"


def test_monthly_and_yearly_options(form):
    form.set_start_date("23/06/2025")
    form.remove_end_date()
    form.set_pattern(Pattern.MONTH)
    form.set_monthly_option("weekday")
    assert form.preview.rule_text == "FREQ=MONTHLY;INTERVAL=1;BYDAY=4MO"
    assert form.preview.summary == "Occurs on the 4th Monday"
    form.set_pattern(Pattern.YEAR)
    form.set_yearly_option(YearlyOption.DATE)
    assert form.preview.rule_text == "FREQ=YEARLY;INTERVAL=1;BYMONTHDAY=23;BYMONTH=6"
    assert form.preview.summary == "Occurs every June 23"


def test_save_returns_description_and_snapshot(form):
    form.set_pattern(Pattern.WEEK)
    form.toggle_day("M")
    form.toggle_day("W")
    saved = form.save()
    assert saved.rrule == "FREQ=WEEKLY;UNTIL=20250401T235959;INTERVAL=1;BYDAY=MO,WE"
    assert saved.description == "every week on Monday, Wednesday until 1 Apr 2025"
    assert saved.start_date == datetime(2025, 1, 1)
    assert saved.end_date == datetime(2025, 4, 1)
    assert form.saved == saved
    assert form.saved is not saved


def test_discard_restores_session_start(form):
    form.set_pattern(Pattern.WEEK)
    form.toggle_day("M")
    form.save()
    form.set_pattern(Pattern.MONTH)
    form.set_every(4)
    form.discard()
    assert form.values.pattern == Pattern.WEEK
    assert form.values.every == 1
    assert form.values.selected_days == [Weekday.MONDAY]


def test_discard_without_save_restores_defaults(form):
    form.set_pattern(Pattern.YEAR)
    form.discard()
    assert form.values.pattern == Pattern.DAY


def test_remove_clears_everything(form):
    form.set_pattern(Pattern.WEEK)
    form.save()
    cleared = form.remove()
    assert cleared.rrule is None
    assert cleared.description is None
    assert not cleared.has_end_date
    assert cleared.pattern == Pattern.DAY
    assert form.saved is None


def test_import_rule(form):
    form.import_rule("FREQ=MONTHLY;BYDAY=-1FR")
    assert form.values.pattern == Pattern.MONTH
    assert form.values.monthly_option == MonthlyOption.WEEKDAY
    assert form.values.start_date == "31/01/2025"
    assert not form.values.has_end_date
    assert form.preview.rule_text == "FREQ=MONTHLY;INTERVAL=1;BYDAY=-1FR"


def test_failed_import_keeps_state(form):
    form.set_pattern(Pattern.WEEK)
    with pytest.raises(RuleParseError):
        form.import_rule("FREQ=DAILY;COUNT=3")
    assert form.values.pattern == Pattern.WEEK


def test_import_ordinal_weekday_keeps_ordinal(form):
    form.set_start_date("01/02/2025")
    form.import_rule("FREQ=MONTHLY;BYDAY=4FR")
    assert form.values.start_date == "23/05/2025"
    assert form.preview.rule_text == "FREQ=MONTHLY;INTERVAL=1;BYDAY=4FR"
    assert form.preview.description == "every month on the 4th Friday"
