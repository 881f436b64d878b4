from __future__ import annotations
# mypy: ignore-errors

import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List
from zoneinfo import ZoneInfo

import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest
import pytest_asyncio

from domain.answer.synthesizer import ResponseSynthesizer
from domain.intent.classifier import IntentClassifier
from orchestrator.events import EventBus
from orchestrator.router import IntentRouter
from services.embeddings import EmbeddingService
from services.openai_client import OpenAIClient
from services.retry import NetworkRetryPolicy
from services.transcription import TranscriptionService
from services.vector_store import VectorStoreClient
from storage.db import DB
from storage.mirror import SqliteMirror
from storage.reminders import DraftCalendarQueue, SqliteReminderStore
from storage.usage import TokenUsageLedger

TZ = ZoneInfo("Europe/Berlin")
NOW = datetime(2026, 10, 19, 8, 0, 0, tzinfo=TZ)

OPENAI_BASE = "https://api.test/v1"
PINECONE_HOST = "memories-abc123.svc.pinecone.test"
NAMESPACE = "ns-test"


def fixed_clock() -> datetime:
    return NOW


def fast(attempts: int) -> NetworkRetryPolicy:
    return NetworkRetryPolicy(max_attempts=attempts, delay=0)


def chat_reply(content: str, tokens: int = 10) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}], "usage": {"total_tokens": tokens}}


def intent_reply(tokens: int = 10, **payload: Any) -> Dict[str, Any]:
    return chat_reply(json.dumps(payload), tokens)


def embedding_reply(vector: List[float], tokens: int = 5) -> Dict[str, Any]:
    return {"data": [{"embedding": vector, "index": 0}], "usage": {"prompt_tokens": tokens, "total_tokens": tokens}}


class FakeProvider:
    """Scripted stand-in for a REST provider, served through httpx.MockTransport.

    Responses are queued per path suffix: a dict becomes a 200 JSON body, an
    int a bare status, an exception is raised as a transport failure. Once a
    queue is empty the path's default is used, and 404 when there is none.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._queued: Dict[str, List[Any]] = defaultdict(list)
        self._defaults: Dict[str, Any] = {}

    def queue(self, path: str, *responses: Any) -> None:
        self._queued[path].extend(responses)

    def default(self, path: str, response: Any) -> None:
        self._defaults[path] = response

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path)]

    def bodies(self, path: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls(path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for path in sorted(set(self._queued) | set(self._defaults), key=len, reverse=True):
            if not request.url.path.endswith(path):
                continue
            queued = self._queued.get(path)
            response = queued.pop(0) if queued else self._defaults.get(path)
            if response is None:
                break
            if isinstance(response, Exception):
                raise response
            if isinstance(response, int):
                return httpx.Response(response, json={"error": "scripted"})
            if isinstance(response, httpx.Response):
                return response
            return httpx.Response(200, json=response)
        return httpx.Response(404, json={"error": "not scripted"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest_asyncio.fixture
async def db(tmp_path) -> DB:
    database = DB(tmp_path / "test.db")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def openai_server() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def pinecone_server() -> FakeProvider:
    server = FakeProvider()
    server.default("/vectors/upsert", {"upsertedCount": 1})
    server.default("/vectors/delete", {})
    server.default("/query", {"matches": [], "namespace": NAMESPACE, "usage": {"readUnits": 5}})
    return server


@pytest_asyncio.fixture
async def openai_client(openai_server):
    client = OpenAIClient("sk-test", OPENAI_BASE, client=openai_server.client())
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def ledger(db) -> TokenUsageLedger:
    return TokenUsageLedger(db)


@pytest_asyncio.fixture
async def mirror(db) -> SqliteMirror:
    return SqliteMirror(db)


@pytest_asyncio.fixture
async def vector_store(pinecone_server, mirror, ledger):
    store = VectorStoreClient(
        "pc-test",
        PINECONE_HOST,
        NAMESPACE,
        client=pinecone_server.client(),
        mirror=mirror,
        ledger=ledger,
        policy=fast(2),
    )
    yield store
    await store.aclose()


@pytest_asyncio.fixture
async def embeddings(openai_client, ledger) -> EmbeddingService:
    return EmbeddingService(openai_client, ledger=ledger, policy=fast(3))


@pytest_asyncio.fixture
async def make_router(db, openai_client, embeddings, vector_store, ledger):
    def factory(**overrides: Any) -> IntentRouter:
        parts = dict(
            classifier=IntentClassifier(openai_client, clock=fixed_clock, ledger=ledger, policy=fast(2)),
            embeddings=embeddings,
            vector_store=vector_store,
            synthesizer=ResponseSynthesizer(openai_client, clock=fixed_clock, ledger=ledger, policy=fast(2)),
            reminders=SqliteReminderStore(db),
            calendar=DraftCalendarQueue(db),
        )
        options = dict(
            transcriber=TranscriptionService(openai_client, policy=fast(3)),
            bus=EventBus(),
            clock=fixed_clock,
            tz=TZ,
            top_k=2,
        )
        for key, value in overrides.items():
            if key in parts:
                parts[key] = value
            else:
                options[key] = value
        return IntentRouter(**parts, **options)

    return factory


@pytest_asyncio.fixture
async def router(make_router) -> IntentRouter:
    return make_router()
