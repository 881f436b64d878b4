import pytest
import pytest_asyncio
# mypy: ignore-errors

from conftest import NAMESPACE, embedding_reply, fixed_clock
from domain.models import Memory
from orchestrator.events import MEMORY_DELETED, MEMORY_SAVED, EventBus
from orchestrator.vault import MemoryVault


@pytest_asyncio.fixture
async def vault(vector_store, embeddings):
    return MemoryVault(vector_store, embeddings, bus=EventBus(), clock=fixed_clock)


@pytest.mark.asyncio
async def test_add_then_edit_keeps_the_id(vault, openai_server, pinecone_server, mirror) -> None:
    openai_server.queue("/embeddings", embedding_reply([0.1, 0.9]), embedding_reply([0.2, 0.8]))

    added = await vault.add("Dentist is Dr. Weiss")
    edited = await vault.edit(added.id, "Dentist is Dr. Weiss, Tuesdays only")

    assert edited.id == added.id
    assert edited.description == "Dentist is Dr. Weiss, Tuesdays only"
    assert edited.timestamp == "2026-10-19T08:00:00+02:00"
    stored = await vault.browse()
    assert [(m.id, m.description) for m in stored] == [(added.id, "Dentist is Dr. Weiss, Tuesdays only")]
    assert [b["vectors"][0]["id"] for b in pinecone_server.bodies("/vectors/upsert")] == [added.id, added.id]


@pytest.mark.asyncio
async def test_refresh_prunes_stale_mirror_rows(vault, pinecone_server, mirror) -> None:
    await mirror.put(Memory("gone", [], {"description": "deleted elsewhere", "timestamp": "2026-10-01T08:00:00+02:00"}))
    await mirror.put(Memory("kept", [], {"description": "still here", "timestamp": "2026-10-02T08:00:00+02:00"}))
    pinecone_server.queue("/vectors/list", {"vectors": [{"id": "kept"}, {"id": "fresh"}], "namespace": NAMESPACE})
    pinecone_server.queue(
        "/vectors/fetch",
        {
            "vectors": {
                "kept": {"id": "kept", "values": [], "metadata": {"description": "still here", "timestamp": "2026-10-02T08:00:00+02:00"}},
                "fresh": {"id": "fresh", "values": [], "metadata": {"description": "new", "timestamp": "2026-10-10T08:00:00+02:00"}},
            }
        },
    )

    memories = await vault.refresh()

    assert [m.id for m in memories] == ["fresh", "kept"]
    assert [m.id for m in await vault.browse()] == ["fresh", "kept"]
    assert pinecone_server.calls("/vectors/fetch")[0].url.params.get_list("ids") == ["kept", "fresh"]


@pytest.mark.asyncio
async def test_delete_and_delete_all_publish(vault, openai_server, mirror) -> None:
    events = []

    async def record(topic, payload):
        events.append((topic, payload))

    vault.bus.subscribe(MEMORY_DELETED, record)
    vault.bus.subscribe(MEMORY_SAVED, record)
    openai_server.default("/embeddings", embedding_reply([0.5]))

    first = await vault.add("one")
    await vault.add("two")
    await vault.delete(first.id)
    assert [m.description for m in await vault.browse()] == ["two"]

    await vault.delete_all()
    assert await vault.browse() == []
    assert [topic for topic, _ in events] == [MEMORY_SAVED, MEMORY_SAVED, MEMORY_DELETED, MEMORY_DELETED]
    assert events[2][1] == first.id
