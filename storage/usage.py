"""Token and unit counters per provider, persisted in SQLite."""
from __future__ import annotations

from typing import Optional

from core.logging import get_logger
from domain.collaborators import UsageLedger
from domain.models import TokenUsage
from storage.db import DB

log = get_logger("usage")

OPENAI = "openai"
PINECONE = "pinecone"

LLM_TOKENS = "llm_tokens"
READ_UNITS = "read_units"
WRITE_UNITS = "write_units"


class TokenUsageLedger:
    """Append-only counters; the only way down is :meth:`reset`."""

    def __init__(self, db: DB):
        self.db = db

    async def increment(self, provider: str, counter: str, amount: int) -> None:
        amount = int(amount)
        if amount <= 0:
            return
        conn = self.db.require()
        await conn.execute(
            """
            INSERT INTO token_usage (provider, counter, value)
            VALUES (?, ?, ?)
            ON CONFLICT(provider, counter) DO UPDATE SET
                value = value + excluded.value,
                updated_at = strftime('%s','now')
            """,
            (provider, counter, amount),
        )
        await conn.commit()

    async def value(self, provider: str, counter: str) -> int:
        cur = await self.db.require().execute(
            "SELECT value FROM token_usage WHERE provider=? AND counter=?",
            (provider, counter),
        )
        row = await cur.fetchone()
        await cur.close()
        return int(row[0]) if row else 0

    async def read(self) -> TokenUsage:
        return TokenUsage(
            openai_tokens=await self.value(OPENAI, LLM_TOKENS),
            pinecone_read_units=await self.value(PINECONE, READ_UNITS),
            pinecone_write_units=await self.value(PINECONE, WRITE_UNITS),
        )

    async def reset(self) -> None:
        conn = self.db.require()
        await conn.execute("DELETE FROM token_usage")
        await conn.commit()
        log.info("usage.reset")


async def charge(ledger: Optional[UsageLedger], provider: str, counter: str, amount: int) -> None:
    """Best-effort increment: a ledger failure is logged, never raised."""
    if ledger is None:
        return
    try:
        await ledger.increment(provider, counter, amount)
    except Exception as e:
        log.warning("usage.increment_failed", provider=provider, counter=counter, amount=amount, error=repr(e))
