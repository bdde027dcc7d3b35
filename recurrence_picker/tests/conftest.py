import os

os.environ.setdefault("RECURRENCE_LOCALE", "en-GB")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import datetime

import pytest

from recurrence_picker.settings import Settings


@pytest.fixture
def settings():
    return Settings(locale="en-GB", default_end_months=3, preview_count=5)


@pytest.fixture
def monday():
    return datetime(2025, 1, 6)


@pytest.fixture
def biweekly_rule():
    return "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE,FR"
