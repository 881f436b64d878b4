"""Core data structures shared by services and flows."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional


@dataclass(slots=True)
class Memory:
    id: str
    embedding: List[float] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def description(self) -> str:
        return self.metadata.get("description", "")

    @property
    def timestamp(self) -> str:
        return self.metadata.get("timestamp", "")


@dataclass(slots=True)
class Match:
    id: str
    score: float
    metadata: Optional[Dict[str, str]] = None

    @property
    def description(self) -> str:
        return (self.metadata or {}).get("description", "N/A")

    @property
    def timestamp(self) -> str:
        return (self.metadata or {}).get("timestamp", "N/A")


@dataclass(slots=True)
class Reminder:
    task: str
    due: datetime
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class CalendarDraft:
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def one_hour(cls, title: str, start: datetime, location: Optional[str] = None) -> "CalendarDraft":
        return cls(title=title, start=start, end=start + timedelta(hours=1), location=location)


@dataclass(slots=True)
class TokenUsage:
    openai_tokens: int = 0
    pinecone_read_units: int = 0
    pinecone_write_units: int = 0
