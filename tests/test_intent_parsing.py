import pytest
# mypy: ignore-errors

from core.errors import DecodingError
from domain.intent.models import (
    IntentClassification,
    IntentType,
    extract_json,
    parse_intent_content,
    parse_intent_payload,
    resolve_type,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("is_question", IntentType.QUESTION),
        ("is_reminder", IntentType.REMINDER),
        ("is_calendar", IntentType.CALENDAR),
        ("save_info", IntentType.SAVE_INFO),
        ("Save Info", IntentType.SAVE_INFO),
        ("weather", IntentType.UNKNOWN),
        (None, IntentType.UNKNOWN),
    ],
)
def test_resolve_type(raw, expected) -> None:
    assert resolve_type(raw) is expected


def test_only_variant_fields_survive() -> None:
    intent = parse_intent_payload(
        {"type": "is_reminder", "task": "call mom", "datetime": "2026-10-20T09:00:00", "query": "stray", "memory": "x"}
    )
    assert intent == IntentClassification.reminder("call mom", "2026-10-20T09:00:00")
    assert intent.query is None and intent.memory is None
    assert intent.populated() == {"task": "call mom", "datetime": "2026-10-20T09:00:00"}


def test_bad_optional_field_is_dropped() -> None:
    intent = parse_intent_payload({"type": "is_calendar", "title": "Lunch", "datetime": 12, "location": "null"})
    assert intent.type is IntentType.CALENDAR
    assert intent.title == "Lunch"
    assert intent.datetime is None
    assert intent.location is None


def test_missing_primary_field_is_unknown() -> None:
    assert parse_intent_payload({"type": "is_question", "query": "   "}).is_unknown
    assert parse_intent_payload({"type": "save_info"}).is_unknown


def test_fenced_reply_is_accepted() -> None:
    content = 'Sure!\n```json\n{"type": "save_info", "memory": "Wi-Fi password is potato123"}\n```'
    assert parse_intent_content(content) == IntentClassification.save_info("Wi-Fi password is potato123")


def test_reply_without_json_is_a_decoding_error() -> None:
    with pytest.raises(DecodingError):
        extract_json("I could not decide, sorry.")


def test_malformed_json_is_a_decoding_error() -> None:
    with pytest.raises(DecodingError):
        parse_intent_content('{"type": "is_question", "query": }')
