from __future__ import annotations

from pathlib import Path
from typing import Optional

import aiosqlite
from aiosqlite import Connection, Row


class DB:
    """Thin async wrapper around a SQLite database using :mod:`aiosqlite`."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.conn: Optional[Connection] = None
        self._schema_ready = False

    async def connect(self) -> None:
        """Open a connection and initialise the schema if necessary."""
        if self.conn is not None:
            return

        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = await aiosqlite.connect(self.path)
        self.conn.row_factory = Row
        await self.conn.execute("PRAGMA foreign_keys=ON;")
        await self.conn.execute("PRAGMA journal_mode=WAL;")
        await self.conn.execute("PRAGMA synchronous=NORMAL;")
        await self.conn.execute("PRAGMA temp_store=MEMORY;")
        await self._ensure_schema()

    async def close(self) -> None:
        if self.conn is None:
            return
        await self.conn.close()
        self.conn = None
        self._schema_ready = False

    def require(self) -> Connection:
        if self.conn is None:
            raise RuntimeError("Database is not connected")
        return self.conn

    async def _ensure_schema(self) -> None:
        if self.conn is None:
            raise RuntimeError("Database is not connected")
        if self._schema_ready:
            return

        async def _table_columns(table: str) -> set[str]:
            cur = await self.conn.execute(f"PRAGMA table_info('{table}')")
            rows = await cur.fetchall()
            await cur.close()
            return {row["name"] for row in rows}

        # Early mirrors kept only id/description/timestamp.
        mirror_columns = await _table_columns("mirror")
        if mirror_columns:
            if "metadata" not in mirror_columns:
                await self.conn.execute("ALTER TABLE mirror ADD COLUMN metadata TEXT NOT NULL DEFAULT '{}'")
            if "embedding" not in mirror_columns:
                await self.conn.execute("ALTER TABLE mirror ADD COLUMN embedding TEXT NOT NULL DEFAULT '[]'")
            if "updated_at" not in mirror_columns:
                await self.conn.execute("ALTER TABLE mirror ADD COLUMN updated_at REAL")
                await self.conn.execute(
                    "UPDATE mirror SET updated_at = strftime('%s','now') WHERE updated_at IS NULL"
                )

        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS installation (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL DEFAULT (strftime('%s','now'))
            )
            """
        )
        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS token_usage (
                provider TEXT NOT NULL,
                counter TEXT NOT NULL,
                value INTEGER NOT NULL DEFAULT 0,
                updated_at REAL NOT NULL DEFAULT (strftime('%s','now')),
                PRIMARY KEY (provider, counter)
            )
            """
        )
        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS mirror (
                id TEXT PRIMARY KEY,
                description TEXT NOT NULL DEFAULT '',
                timestamp TEXT NOT NULL DEFAULT '',
                metadata TEXT NOT NULL DEFAULT '{}',
                embedding TEXT NOT NULL DEFAULT '[]',
                updated_at REAL DEFAULT (strftime('%s','now'))
            )
            """
        )
        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task TEXT NOT NULL,
                due TEXT NOT NULL,
                done INTEGER NOT NULL DEFAULT 0,
                created_at REAL NOT NULL DEFAULT (strftime('%s','now'))
            )
            """
        )
        await self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(due)"
        )
        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS calendar_drafts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                start TEXT NOT NULL,
                "end" TEXT NOT NULL,
                location TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at REAL NOT NULL DEFAULT (strftime('%s','now'))
            )
            """
        )

        await self.conn.commit()
        self._schema_ready = True


async def ensure_db_ready(db: DB) -> DB:
    await db.connect()
    return db
