"""Interfaces of the stores the pipeline talks to but does not own."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence

from domain.models import CalendarDraft, Memory, Reminder, TokenUsage


class ReminderStore(Protocol):
    async def create_and_save(self, task: str, due: datetime) -> Reminder:
        """Persist a reminder; raises ``CollaboratorError`` on failure."""


class CalendarEditor(Protocol):
    async def present_draft(self, draft: CalendarDraft) -> CalendarDraft:
        """Hand a draft event to the user for confirmation."""


class LocalMirror(Protocol):
    async def get(self, memory_id: str) -> Optional[Memory]: ...

    async def get_many(self, ids: Sequence[str]) -> List[Memory]: ...

    async def put(self, memory: Memory) -> None: ...

    async def put_many(self, memories: Iterable[Memory]) -> None: ...

    async def delete(self, memory_id: str) -> None: ...

    async def clear(self) -> None: ...

    async def all(self) -> List[Memory]: ...


class UsageLedger(Protocol):
    async def increment(self, provider: str, counter: str, amount: int) -> None: ...

    async def read(self) -> TokenUsage: ...

    async def reset(self) -> None: ...
