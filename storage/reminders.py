"""SQLite-backed stand-ins for the reminder and calendar collaborators."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from core.errors import CollaboratorError
from core.logging import get_logger
from domain.clock import parse_iso8601
from domain.models import CalendarDraft, Reminder
from storage.db import DB

log = get_logger("reminders")


class SqliteReminderStore:
    def __init__(self, db: DB):
        self.db = db

    async def create_and_save(self, task: str, due: datetime) -> Reminder:
        task = (task or "").strip()
        if not task:
            raise CollaboratorError("Reminder needs a title.")
        try:
            conn = self.db.require()
            cur = await conn.execute(
                "INSERT INTO reminders (task, due) VALUES (?, ?)",
                (task, due.isoformat(timespec="seconds")),
            )
            reminder_id = cur.lastrowid
            await cur.close()
            await conn.commit()
        except (sqlite3.Error, RuntimeError) as e:
            raise CollaboratorError(f"Unable to save reminder: {e}", cause=e) from e
        log.info("reminders.saved", reminder_id=reminder_id, due=due.isoformat())
        return Reminder(task=task, due=due, id=reminder_id, created_at=datetime.now(timezone.utc))

    async def pending(self) -> List[Reminder]:
        cur = await self.db.require().execute(
            "SELECT id, task, due, created_at FROM reminders WHERE done=0 ORDER BY due"
        )
        rows = await cur.fetchall()
        await cur.close()
        out: List[Reminder] = []
        for row in rows:
            due = parse_iso8601(row["due"])
            if due is None:
                continue
            out.append(
                Reminder(
                    task=row["task"],
                    due=due,
                    id=row["id"],
                    created_at=datetime.fromtimestamp(row["created_at"], timezone.utc),
                )
            )
        return out

    async def complete(self, reminder_id: int) -> None:
        conn = self.db.require()
        await conn.execute("UPDATE reminders SET done=1 WHERE id=?", (reminder_id,))
        await conn.commit()


class DraftCalendarQueue:
    """Holds drafts until the user confirms or discards them."""

    def __init__(self, db: DB):
        self.db = db

    async def present_draft(self, draft: CalendarDraft) -> CalendarDraft:
        try:
            conn = self.db.require()
            cur = await conn.execute(
                'INSERT INTO calendar_drafts (title, start, "end", location) VALUES (?, ?, ?, ?)',
                (
                    draft.title,
                    draft.start.isoformat(timespec="seconds"),
                    draft.end.isoformat(timespec="seconds"),
                    draft.location,
                ),
            )
            draft_id = cur.lastrowid
            await cur.close()
            await conn.commit()
        except (sqlite3.Error, RuntimeError) as e:
            raise CollaboratorError(f"Unable to prepare calendar event: {e}", cause=e) from e
        draft.id = draft_id
        log.info("calendar.draft_queued", draft_id=draft_id, title=draft.title)
        return draft

    async def pending(self) -> List[CalendarDraft]:
        cur = await self.db.require().execute(
            "SELECT * FROM calendar_drafts WHERE status='pending' ORDER BY id"
        )
        rows = await cur.fetchall()
        await cur.close()
        drafts = []
        for row in rows:
            start, end = parse_iso8601(row["start"]), parse_iso8601(row["end"])
            if start is None or end is None:
                continue
            drafts.append(CalendarDraft(title=row["title"], start=start, end=end, location=row["location"], id=row["id"]))
        return drafts

    async def resolve(self, draft_id: int, *, confirmed: bool) -> Optional[CalendarDraft]:
        status = "confirmed" if confirmed else "discarded"
        conn = self.db.require()
        await conn.execute(
            "UPDATE calendar_drafts SET status=? WHERE id=? AND status='pending'",
            (status, draft_id),
        )
        await conn.commit()
        cur = await conn.execute("SELECT * FROM calendar_drafts WHERE id=?", (draft_id,))
        row = await cur.fetchone()
        await cur.close()
        if row is None:
            return None
        return CalendarDraft(
            title=row["title"],
            start=parse_iso8601(row["start"]),
            end=parse_iso8601(row["end"]),
            location=row["location"],
            id=row["id"],
        )
