from datetime import datetime

import pytest

from eventchat.schemas.dialog_schema import ConversationContext
from eventchat.utils.dates import combine_date_time, parse_date, parse_time
from eventchat.utils.text import clean_value, sanitize, source_key, strip_restricted_fields, title_similarity


@pytest.mark.parametrize("text, expected", [
    ("19:30", (19, 30)),
    ("7 PM", (19, 0)),
    ("12 am", (0, 0)),
    ("13:00 - 21:00", (13, 0)),
    ("25:00", None),
    ("evening", None),
    (None, None),
])
def test_parse_time(text, expected):
    assert parse_time(text) == expected


def test_parse_date_takes_first_day_of_a_range():
    assert parse_date("2025-03-05") == datetime(2025, 3, 5)
    assert parse_date("March 5, 2025 - March 7, 2025") == datetime(2025, 3, 5)
    assert parse_date("2025-03-05 to 2025-03-07") == datetime(2025, 3, 5)
    assert parse_date("sometime soon") is None


@pytest.mark.parametrize("text", ["2025", "March 2025", "March", "the 5th", "Friday"])
def test_parse_date_needs_day_and_month(text):
    assert parse_date(text) is None
    assert combine_date_time(text, "19:00") is None


def test_parse_date_missing_year_is_current():
    assert parse_date("March 5", now=datetime(2031, 6, 1)) == datetime(2031, 3, 5)


def test_time_only_adjusts_a_real_date():
    assert combine_date_time("2025-03-05", "9:00") == datetime(2025, 3, 5, 9, 0)
    assert combine_date_time("2025-03-05", None) == datetime(2025, 3, 5)
    assert combine_date_time(None, "9:00") is None


def test_placeholders_are_cleaned():
    assert clean_value(" TBD ") is None
    assert clean_value("Location TBA.") is None
    assert clean_value(" Berlin ") == "Berlin"
    assert source_key("Jazz Night", "https://Jazz.example/") == "https://jazz.example"
    assert source_key("Jazz  Night", None) == "title:jazz night"


def test_title_similarity_is_case_insensitive():
    assert title_similarity("Tech Summit", "tech summit") == 1.0
    assert title_similarity("Tech Summit 2025", "Tech Summit 2025!") >= 0.9
    assert title_similarity("Rock Night", "Jazz Brunch") < 0.5


def test_restricted_lines_and_inline_dates_are_removed():
    text = "**Date:** 2025-03-05\nLocation: Berlin\nA friendly meetup held on 5th March with talks at 7 pm."
    cleaned = strip_restricted_fields(text)
    assert "Berlin" not in cleaned
    assert "March" not in cleaned
    assert "7 pm" not in cleaned
    assert cleaned.startswith("A friendly meetup")


def test_context_restore_survives_garbage():
    assert ConversationContext.restore({"creation": {"stage": "flying"}}).creation is None
    assert ConversationContext.restore(None).last_event_ids == []

    context = ConversationContext()
    for i in range(7):
        context.remember_event(f"e{i}")
    context.remember_event("e3")
    assert context.last_event_ids == ["e3", "e6", "e5", "e4", "e2"]


def test_sanitize_strips_markup_and_caps_length():
    assert sanitize("<b>Rock & Roll</b> night ") == "Rock & Roll night"
    assert sanitize(None) == ""
    assert len(sanitize("x" * 5000)) == 2000
