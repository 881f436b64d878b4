import asyncio

import httpx
import pytest
# mypy: ignore-errors

from conftest import embedding_reply, fast
from core.errors import DecodingError, EmbeddingsFailed, TransportError
from services.embeddings import EmbeddingService, flatten_embeddings
from storage.usage import LLM_TOKENS, OPENAI


def test_chunks_are_joined_in_index_order() -> None:
    data = {"data": [{"embedding": [3, 4], "index": 1}, {"embedding": [1.0, 2.0], "index": 0}]}
    assert flatten_embeddings(data) == [1.0, 2.0, 3.0, 4.0]


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"data": []},
        {"data": [{"index": 0}]},
        {"data": [{"embedding": ["x"], "index": 0}]},
        {"data": [{"embedding": [], "index": 0}]},
    ],
)
def test_unusable_payloads_are_rejected(data) -> None:
    with pytest.raises(DecodingError):
        flatten_embeddings(data)


@pytest.mark.asyncio
async def test_embed_sends_input_and_model(embeddings, openai_server, ledger) -> None:
    openai_server.queue("/embeddings", embedding_reply([0.1, 0.2, 0.3], tokens=7))

    vector = await embeddings.embed("Wi-Fi password is potato123")

    assert vector == [0.1, 0.2, 0.3]
    assert openai_server.bodies("/embeddings") == [
        {"input": "Wi-Fi password is potato123", "model": "text-embedding-3-large"}
    ]
    assert await ledger.value(OPENAI, LLM_TOKENS) == 7


@pytest.mark.asyncio
async def test_three_attempts_then_embeddings_failed(embeddings, openai_server) -> None:
    openai_server.queue(
        "/embeddings",
        httpx.ConnectError("offline"),
        503,
        {"data": "nope"},
    )
    with pytest.raises(EmbeddingsFailed) as info:
        await embeddings.embed("anything")
    assert isinstance(info.value.cause, DecodingError)
    assert len(openai_server.calls("/embeddings")) == 3


@pytest.mark.asyncio
async def test_transient_error_recovers(embeddings, openai_server) -> None:
    openai_server.queue("/embeddings", 429, embedding_reply([1.0]))
    assert await embeddings.embed("x") == [1.0]


@pytest.mark.asyncio
async def test_slow_attempts_time_out(openai_client, openai_server, monkeypatch) -> None:
    async def stall(*args, **kwargs):
        await asyncio.sleep(1)

    monkeypatch.setattr(openai_client, "embeddings", stall)
    service = EmbeddingService(openai_client, timeout=0.01, policy=fast(2))
    with pytest.raises(EmbeddingsFailed) as info:
        await service.embed("x")
    assert isinstance(info.value.cause, TransportError)
