"""Intent classification result and its lenient JSON decoding."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from core.errors import DecodingError


class IntentType(str, Enum):
    QUESTION = "question"
    REMINDER = "reminder"
    CALENDAR = "calendar"
    SAVE_INFO = "save_info"
    UNKNOWN = "unknown"


INTENT_FIELDS: Dict[IntentType, Tuple[str, ...]] = {
    IntentType.QUESTION: ("query",),
    IntentType.REMINDER: ("task", "datetime"),
    IntentType.CALENDAR: ("title", "datetime", "location"),
    IntentType.SAVE_INFO: ("memory",),
    IntentType.UNKNOWN: (),
}

# field a variant cannot do without
_PRIMARY_FIELD = {
    IntentType.QUESTION: "query",
    IntentType.REMINDER: "task",
    IntentType.CALENDAR: "title",
    IntentType.SAVE_INFO: "memory",
}

_TYPE_ALIASES = {
    "is_question": IntentType.QUESTION,
    "question": IntentType.QUESTION,
    "is_reminder": IntentType.REMINDER,
    "reminder": IntentType.REMINDER,
    "is_calendar": IntentType.CALENDAR,
    "calendar": IntentType.CALENDAR,
    "save_info": IntentType.SAVE_INFO,
    "saveinfo": IntentType.SAVE_INFO,
    "save": IntentType.SAVE_INFO,
}

ALL_FIELDS = ("query", "task", "datetime", "title", "location", "memory")


@dataclass(slots=True, frozen=True)
class IntentClassification:
    type: IntentType = IntentType.UNKNOWN
    query: Optional[str] = None
    task: Optional[str] = None
    datetime: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    memory: Optional[str] = None

    @property
    def is_unknown(self) -> bool:
        return self.type is IntentType.UNKNOWN

    def populated(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in ALL_FIELDS if getattr(self, name) is not None}

    @classmethod
    def question(cls, query: str) -> "IntentClassification":
        return cls(IntentType.QUESTION, query=query)

    @classmethod
    def reminder(cls, task: str, datetime: Optional[str] = None) -> "IntentClassification":
        return cls(IntentType.REMINDER, task=task, datetime=datetime)

    @classmethod
    def calendar(cls, title: str, datetime: Optional[str] = None, location: Optional[str] = None) -> "IntentClassification":
        return cls(IntentType.CALENDAR, title=title, datetime=datetime, location=location)

    @classmethod
    def save_info(cls, memory: str) -> "IntentClassification":
        return cls(IntentType.SAVE_INFO, memory=memory)

    @classmethod
    def unknown(cls) -> "IntentClassification":
        return cls()


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() == "null":
        return None
    return value


def resolve_type(value: Any) -> IntentType:
    if not isinstance(value, str):
        return IntentType.UNKNOWN
    key = re.sub(r"[\s\-]+", "_", value.strip().lower())
    return _TYPE_ALIASES.get(key, _TYPE_ALIASES.get(key.replace("_", ""), IntentType.UNKNOWN))


def parse_intent_payload(payload: Mapping[str, Any]) -> IntentClassification:
    """Field-by-field decoding; a bad field is dropped, never fatal."""
    if not isinstance(payload, Mapping):
        return IntentClassification.unknown()
    kind = resolve_type(payload.get("type"))
    if kind is IntentType.UNKNOWN:
        return IntentClassification.unknown()
    values = {name: _text(payload.get(name)) for name in INTENT_FIELDS[kind]}
    if values.get(_PRIMARY_FIELD[kind]) is None:
        return IntentClassification.unknown()
    return IntentClassification(type=kind, **values)


_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def extract_json(content: str) -> str:
    """Pull the JSON object out of a model reply, fenced or not."""
    text = (content or "").strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise DecodingError("No valid JSON found in model response.")
    return text[start:end + 1]


def parse_intent_content(content: str) -> IntentClassification:
    raw = extract_json(content)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodingError(f"Intent JSON is malformed: {exc.msg}", cause=exc) from exc
    return parse_intent_payload(payload)
