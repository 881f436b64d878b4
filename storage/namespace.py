"""Per-installation namespace, generated once and kept forever."""
from __future__ import annotations

import uuid
from typing import Optional

from core.logging import get_logger
from storage.db import DB

log = get_logger("namespace")

_KEY = "namespace"


class NamespaceStore:
    def __init__(self, db: DB):
        self.db = db

    async def get(self) -> Optional[str]:
        cur = await self.db.require().execute("SELECT value FROM installation WHERE key=?", (_KEY,))
        row = await cur.fetchone()
        await cur.close()
        value = (row[0] or "").strip() if row else ""
        return value or None

    async def get_or_create(self) -> str:
        existing = await self.get()
        if existing:
            return existing
        namespace = uuid.uuid4().hex
        conn = self.db.require()
        # INSERT OR IGNORE keeps the first writer's value if two callers race
        await conn.execute(
            "INSERT OR IGNORE INTO installation (key, value) VALUES (?, ?)",
            (_KEY, namespace),
        )
        await conn.execute(
            "UPDATE installation SET value=? WHERE key=? AND trim(value)=''",
            (namespace, _KEY),
        )
        await conn.commit()
        stored = await self.get()
        log.info("namespace.created", namespace=stored)
        return stored or namespace
