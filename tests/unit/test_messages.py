from datetime import datetime

import pytest

from localedge.i18n.messages import (
    MessageBundle,
    console_bundle,
    language_for_voice,
    polly_voice,
    primary_language,
)


@pytest.mark.parametrize(
    ("ai_language", "expected"),
    [
        ("hebrew:hebrew,english:true", "hebrew"),
        ("english,hebrew", "english"),
        ("russian", "russian"),
        (None, "hebrew"),
        ("", "hebrew"),
    ],
)
def test_primary_language(ai_language, expected):
    assert primary_language(ai_language) == expected


def test_missing_keys_fall_back_to_english():
    bundle = MessageBundle("russian")

    assert bundle.get("persistence_failed") == MessageBundle("english").get("persistence_failed")
    assert "Напоминание" in bundle.get("reminder_template")


def test_unknown_language_is_unsupported_but_usable():
    bundle = MessageBundle("klingon")

    assert not bundle.supported
    assert bundle.get("default_service") == "appointment"
    assert bundle.format_date(datetime(2025, 1, 15)) == "Wednesday, January 15"


def test_dates_and_times_are_localized():
    value = datetime(2025, 1, 15, 14, 5)

    assert MessageBundle("english").format_time(value) == "02:05 PM"
    assert MessageBundle("hebrew").format_time(value) == "14:05"
    assert MessageBundle("hebrew").format_date(value) == "יום רביעי, 15 בינואר"


def test_conflict_summary_pluralizes():
    bundle = MessageBundle("english")

    assert bundle.conflict_summary(1) == "This time overlaps with an existing appointment."
    assert bundle.conflict_summary(3) == "This time overlaps with 3 existing appointments."


@pytest.mark.parametrize(
    ("accept_language", "ai_language", "expected"),
    [
        ("he-IL,he;q=0.9", "english", "hebrew"),
        ("iw", "english", "hebrew"),
        ("en-US,en;q=0.9", "hebrew", "english"),
        ("fr-FR", "russian", "russian"),
        (None, "english", "english"),
    ],
)
def test_console_bundle_selection(accept_language, ai_language, expected):
    assert console_bundle(accept_language, ai_language).language == expected


def test_voice_helpers():
    assert language_for_voice("he-IL") == "hebrew"
    assert language_for_voice("en-GB") == "english"
    assert polly_voice("en-US", "male") == "Polly.Matthew"
    assert polly_voice("xx-XX", "female") == "Polly.Joanna"
