"""Browse, add, edit and delete stored memories."""
from __future__ import annotations

import uuid
from typing import List, Optional

from core.logging import get_logger
from domain.clock import Clock, iso_timestamp, system_clock
from domain.collaborators import LocalMirror
from domain.models import Memory
from orchestrator.events import MEMORY_DELETED, MEMORY_SAVED, EventBus
from services.embeddings import EmbeddingService
from services.vector_store import VectorStoreClient

log = get_logger("vault")


class MemoryVault:
    def __init__(
        self,
        vector_store: VectorStoreClient,
        embeddings: EmbeddingService,
        *,
        mirror: Optional[LocalMirror] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
    ):
        self.vector_store = vector_store
        self.embeddings = embeddings
        self.mirror = mirror if mirror is not None else vector_store.mirror
        self.bus = bus or EventBus()
        self.clock = clock or system_clock()

    async def refresh(self) -> List[Memory]:
        """Pull the remote namespace and drop mirror rows that no longer exist there."""
        memories = await self.vector_store.refresh()
        if self.mirror is not None:
            alive = set(self.vector_store.cached_ids)
            stale = [m.id for m in await self.mirror.all() if m.id not in alive]
            for memory_id in stale:
                await self.mirror.delete(memory_id)
            if stale:
                log.info("vault.pruned", count=len(stale))
        return memories

    async def browse(self) -> List[Memory]:
        if self.mirror is None:
            return []
        return await self.mirror.all()

    async def _store(self, memory_id: str, text: str) -> Memory:
        vector = await self.embeddings.embed(text)
        metadata = {"description": text, "timestamp": iso_timestamp(self.clock())}
        memory = await self.vector_store.upsert(memory_id, vector, metadata)
        await self.bus.publish(MEMORY_SAVED, memory)
        return memory

    async def add(self, text: str) -> Memory:
        return await self._store(str(uuid.uuid4()), text)

    async def edit(self, memory_id: str, text: str) -> Memory:
        log.info("vault.edit", memory_id=memory_id)
        return await self._store(memory_id, text)

    async def delete(self, memory_id: str) -> None:
        await self.vector_store.delete_one(memory_id)
        await self.bus.publish(MEMORY_DELETED, memory_id)

    async def delete_all(self) -> None:
        await self.vector_store.delete_all()
        await self.bus.publish(MEMORY_DELETED, None)
