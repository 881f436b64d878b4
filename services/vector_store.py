"""Namespaced client for the Pinecone data-plane REST API.

One instance owns the namespace and the local id cache; nothing else writes
them. Every operation runs under its own retry policy and surfaces failures
as :class:`VectorStoreError` tagged with what was being attempted.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

import httpx

from core.errors import ConfigurationError, DecodingError, PipelineError, VectorStoreError
from core.logging import get_logger
from domain.clock import sort_newest_first
from domain.collaborators import LocalMirror, UsageLedger
from domain.models import Match, Memory
from services.http import endpoint, request_json, require_key
from services.retry import VECTOR_STORE_RETRY, NetworkRetryPolicy
from storage.usage import PINECONE, READ_UNITS, WRITE_UNITS, charge

log = get_logger("vector_store")

T = TypeVar("T")

# Pinecone bills roughly these many write units per single-record call.
UPSERT_WRITE_UNITS = 7
DELETE_WRITE_UNITS = 7
DELETE_ALL_WRITE_UNITS = 10
FETCH_BATCH = 100
MAX_LIST_PAGES = 1000


def _str_metadata(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    out = {}
    for key, value in raw.items():
        if value is None:
            continue
        out[str(key)] = value if isinstance(value, str) else str(value)
    return out


def _floats(raw: Any) -> List[float]:
    if not isinstance(raw, list):
        return []
    return [float(v) for v in raw if isinstance(v, (int, float)) and not isinstance(v, bool)]


def _read_units(data: Mapping[str, Any]) -> int:
    usage = data.get("usage")
    if isinstance(usage, dict) and isinstance(usage.get("readUnits"), int):
        return usage["readUnits"]
    return 0


def decode_matches(data: Mapping[str, Any]) -> List[Match]:
    raw = data.get("matches")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DecodingError("Query response 'matches' is not a list.")
    matches = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("id"), str):
            continue
        score = item.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            continue
        metadata = _str_metadata(item.get("metadata")) if item.get("metadata") is not None else None
        matches.append(Match(id=item["id"], score=float(score), metadata=metadata))
    return matches


def decode_fetched(data: Mapping[str, Any]) -> List[Memory]:
    raw = data.get("vectors")
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise DecodingError("Fetch response 'vectors' is not an object.")
    memories = []
    for key, item in raw.items():
        if not isinstance(item, dict):
            continue
        memory_id = item.get("id") if isinstance(item.get("id"), str) else str(key)
        memories.append(
            Memory(id=memory_id, embedding=_floats(item.get("values")), metadata=_str_metadata(item.get("metadata")))
        )
    return memories


def decode_listed(data: Mapping[str, Any]) -> tuple[List[str], Optional[str]]:
    """Ids on one list page plus the token of the next page, if any."""
    # a brand-new or emptied namespace comes back without "vectors"
    raw = data.get("vectors")
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise DecodingError("List response 'vectors' is not a list.")
    ids = [item["id"] for item in raw if isinstance(item, dict) and isinstance(item.get("id"), str)]
    pagination = data.get("pagination")
    token = pagination.get("next") if isinstance(pagination, dict) else None
    return ids, token if isinstance(token, str) and token else None


class VectorStoreClient:
    def __init__(
        self,
        api_key: Optional[str],
        host: Optional[str],
        namespace: str,
        *,
        api_version: str = "2024-07",
        timeout: float = 30,
        client: Optional[httpx.AsyncClient] = None,
        mirror: Optional[LocalMirror] = None,
        ledger: Optional[UsageLedger] = None,
        policy: NetworkRetryPolicy = VECTOR_STORE_RETRY,
    ):
        if not (namespace or "").strip():
            raise ConfigurationError("Unable to retrieve namespace.")
        self.api_key = api_key
        self.host = host
        self.api_version = api_version
        self._namespace = namespace.strip()
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.mirror = mirror
        self.ledger = ledger
        self.policy = policy
        self._ids: List[str] = []

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def cached_ids(self) -> List[str]:
        return list(self._ids)

    def _headers(self, *, json_body: bool = True) -> dict[str, str]:
        headers = {
            "Api-Key": require_key(self.api_key),
            "X-Pinecone-API-Version": self.api_version,
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _charge(self, counter: str, amount: int) -> None:
        await charge(self.ledger, PINECONE, counter, amount)

    async def _sync_mirror(self, label: str, work: Callable[[LocalMirror], Awaitable[Any]]) -> Any:
        """The mirror is a cache: a failure there is logged and the remote result stands."""
        if self.mirror is None:
            return None
        try:
            return await work(self.mirror)
        except Exception as e:
            log.warning("vector_store.mirror_failed", op=label, error=repr(e))
            return None

    async def _guarded(
        self,
        label: str,
        path: str,
        work: Callable[[str], Awaitable[T]],
        wrap: Callable[[BaseException], VectorStoreError],
    ) -> T:
        try:
            require_key(self.api_key)
            url = endpoint(self.host, path)
            return await self.policy.run(lambda: work(url), label=label)
        except PipelineError as e:
            log.error("vector_store.failed", op=label, error=str(e))
            raise wrap(e) from e

    # ---- query -----------------------------------------------------------

    async def query(self, vector: Sequence[float], top_k: int = 1, include_values: bool = False) -> List[Match]:
        body = {
            "vector": list(vector),
            "topK": int(top_k),
            "includeValues": bool(include_values),
            "includeMetadata": True,
            "namespace": self._namespace,
        }

        async def once(url: str) -> tuple[List[Match], int]:
            data = await request_json(self._client, "POST", url, headers=self._headers(), json_body=body)
            return decode_matches(data), _read_units(data)

        matches, units = await self._guarded("query", "query", once, VectorStoreError.query_failed)
        await self._charge(READ_UNITS, units)
        log.info("vector_store.query", top_k=top_k, matches=len(matches))
        return matches

    # ---- writes ----------------------------------------------------------

    async def upsert(self, memory_id: str, vector: Sequence[float], metadata: Mapping[str, str]) -> Memory:
        memory = Memory(id=memory_id, embedding=list(vector), metadata=dict(metadata))
        body = {
            "vectors": [{"id": memory.id, "values": memory.embedding, "metadata": memory.metadata}],
            "namespace": self._namespace,
        }

        async def once(url: str) -> None:
            await request_json(self._client, "POST", url, headers=self._headers(), json_body=body)

        await self._guarded("upsert", "vectors/upsert", once, VectorStoreError.upsert_failed)
        if memory.id not in self._ids:
            self._ids.append(memory.id)
        await self._sync_mirror("upsert", lambda mirror: mirror.put(memory))
        await self._charge(WRITE_UNITS, UPSERT_WRITE_UNITS)
        log.info("vector_store.upsert", memory_id=memory.id)
        return memory

    async def delete_one(self, memory_id: str) -> None:
        body = {"ids": [memory_id], "namespace": self._namespace}

        async def once(url: str) -> None:
            await request_json(self._client, "POST", url, headers=self._headers(), json_body=body)

        await self._guarded("delete", "vectors/delete", once, VectorStoreError.delete_failed)
        self._ids = [i for i in self._ids if i != memory_id]
        await self._sync_mirror("delete", lambda mirror: mirror.delete(memory_id))
        await self._charge(WRITE_UNITS, DELETE_WRITE_UNITS)
        log.info("vector_store.delete", memory_id=memory_id)

    async def delete_all(self) -> None:
        body = {"deleteAll": True, "namespace": self._namespace}

        async def once(url: str) -> None:
            await request_json(self._client, "POST", url, headers=self._headers(), json_body=body)

        await self._guarded("delete_all", "vectors/delete", once, VectorStoreError.delete_failed)
        self._ids = []
        await self._sync_mirror("delete_all", lambda mirror: mirror.clear())
        await self._charge(WRITE_UNITS, DELETE_ALL_WRITE_UNITS)
        log.info("vector_store.delete_all", namespace=self._namespace)

    # ---- reads -----------------------------------------------------------

    async def list_ids(self) -> List[str]:
        ids: List[str] = []
        token: Optional[str] = None
        pages = 0
        while True:
            params: Dict[str, str] = {"namespace": self._namespace}
            if token:
                params["paginationToken"] = token

            async def once(url: str, params=params) -> tuple[List[str], Optional[str]]:
                data = await request_json(
                    self._client, "GET", url, headers=self._headers(json_body=False), params=params
                )
                return decode_listed(data)

            page_ids, token = await self._guarded("list", "vectors/list", once, VectorStoreError.refresh_failed)
            pages += 1
            ids.extend(page_ids)
            if not token or pages >= MAX_LIST_PAGES:
                break
        await self._charge(READ_UNITS, pages)
        self._ids = list(dict.fromkeys(ids))
        return list(self._ids)

    async def fetch_by_ids(self, ids: Sequence[str], *, use_mirror: bool = True) -> List[Memory]:
        wanted = list(dict.fromkeys(ids))
        found: Dict[str, Memory] = {}
        if use_mirror:
            for memory in await self._sync_mirror("read", lambda mirror: mirror.get_many(wanted)) or []:
                found[memory.id] = memory
        missing = [i for i in wanted if i not in found]

        fetched: List[Memory] = []
        for start in range(0, len(missing), FETCH_BATCH):
            batch = missing[start:start + FETCH_BATCH]
            params = [("ids", i) for i in batch] + [("namespace", self._namespace)]

            async def once(url: str, params=params) -> List[Memory]:
                data = await request_json(
                    self._client, "GET", url, headers=self._headers(json_body=False), params=params
                )
                return decode_fetched(data)

            fetched.extend(await self._guarded("fetch", "vectors/fetch", once, VectorStoreError.refresh_failed))

        if fetched:
            await self._sync_mirror("fetch", lambda mirror: mirror.put_many(fetched))
        # one read unit per ten fetched records
        await self._charge(READ_UNITS, len(fetched) // 10)
        for memory in fetched:
            found[memory.id] = memory
        ordered = [found[i] for i in wanted if i in found]
        return sort_newest_first(ordered, lambda m: m.metadata.get("timestamp"))

    async def refresh(self) -> List[Memory]:
        """List every id in the namespace and fetch all of their records remotely."""
        ids = await self.list_ids()
        if not ids:
            return []
        # provider copy wins: records edited elsewhere overwrite the mirror
        return await self.fetch_by_ids(ids, use_mirror=False)

    async def aclose(self) -> None:
        await self._client.aclose()
