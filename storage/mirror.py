"""Local copy of fetched memories, keyed by id."""
from __future__ import annotations

import json
from typing import Iterable, List, Optional, Sequence

from domain.clock import sort_newest_first
from domain.models import Memory
from storage.db import DB


def _loads(raw: Optional[str], default):
    try:
        value = json.loads(raw) if raw else default
    except (TypeError, ValueError):
        return default
    return value if isinstance(value, type(default)) else default


class SqliteMirror:
    def __init__(self, db: DB):
        self.db = db

    @staticmethod
    def _row_to_memory(row) -> Memory:
        metadata = {str(k): str(v) for k, v in _loads(row["metadata"], {}).items()}
        metadata.setdefault("description", row["description"] or "")
        metadata.setdefault("timestamp", row["timestamp"] or "")
        embedding = [float(x) for x in _loads(row["embedding"], []) if isinstance(x, (int, float))]
        return Memory(id=row["id"], embedding=embedding, metadata=metadata)

    async def get(self, memory_id: str) -> Optional[Memory]:
        cur = await self.db.require().execute("SELECT * FROM mirror WHERE id=?", (memory_id,))
        row = await cur.fetchone()
        await cur.close()
        return self._row_to_memory(row) if row else None

    async def get_many(self, ids: Sequence[str]) -> List[Memory]:
        if not ids:
            return []
        found = {}
        # stay under SQLite's bound-parameter limit
        for start in range(0, len(ids), 500):
            chunk = list(ids[start:start + 500])
            marks = ",".join("?" for _ in chunk)
            cur = await self.db.require().execute(f"SELECT * FROM mirror WHERE id IN ({marks})", chunk)
            for row in await cur.fetchall():
                found[row["id"]] = self._row_to_memory(row)
            await cur.close()
        return [found[i] for i in ids if i in found]

    async def put(self, memory: Memory) -> None:
        await self.put_many([memory])

    async def put_many(self, memories: Iterable[Memory]) -> None:
        rows = [
            (
                m.id,
                m.description,
                m.timestamp,
                json.dumps(m.metadata, ensure_ascii=False),
                json.dumps(list(m.embedding)),
            )
            for m in memories
        ]
        if not rows:
            return
        conn = self.db.require()
        await conn.executemany(
            """
            INSERT INTO mirror (id, description, timestamp, metadata, embedding)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                description=excluded.description,
                timestamp=excluded.timestamp,
                metadata=excluded.metadata,
                embedding=excluded.embedding,
                updated_at=strftime('%s','now')
            """,
            rows,
        )
        await conn.commit()

    async def delete(self, memory_id: str) -> None:
        conn = self.db.require()
        await conn.execute("DELETE FROM mirror WHERE id=?", (memory_id,))
        await conn.commit()

    async def clear(self) -> None:
        conn = self.db.require()
        await conn.execute("DELETE FROM mirror")
        await conn.commit()

    async def all(self) -> List[Memory]:
        cur = await self.db.require().execute("SELECT * FROM mirror ORDER BY rowid")
        rows = await cur.fetchall()
        await cur.close()
        return sort_newest_first((self._row_to_memory(r) for r in rows), lambda m: m.timestamp)
