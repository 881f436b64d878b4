"""Text to vector through the provider's embedding endpoint."""
from __future__ import annotations

from typing import Any, List, Optional

from core.errors import DecodingError, EmbeddingsFailed, PipelineError
from core.logging import get_logger
from domain.collaborators import UsageLedger
from services.openai_client import OpenAIClient, usage_tokens
from services.retry import EMBEDDING_RETRY, NetworkRetryPolicy
from storage.usage import LLM_TOKENS, OPENAI, charge

log = get_logger("embeddings")


def flatten_embeddings(data: dict[str, Any]) -> List[float]:
    """Concatenate every returned chunk in ``index`` order."""
    items = data.get("data")
    if not isinstance(items, list) or not items:
        raise DecodingError("Embedding response has no data.")
    chunks = []
    for position, item in enumerate(items):
        if not isinstance(item, dict) or not isinstance(item.get("embedding"), list):
            raise DecodingError("Embedding item is malformed.")
        index = item.get("index")
        chunks.append((index if isinstance(index, int) else position, item["embedding"]))
    chunks.sort(key=lambda pair: pair[0])
    vector: List[float] = []
    for _, values in chunks:
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise DecodingError("Embedding contains a non-numeric value.")
            vector.append(float(value))
    if not vector:
        raise DecodingError("Embedding is empty.")
    return vector


class EmbeddingService:
    def __init__(
        self,
        client: OpenAIClient,
        *,
        model: str = "text-embedding-3-large",
        timeout: float = 6.0,
        ledger: Optional[UsageLedger] = None,
        policy: NetworkRetryPolicy = EMBEDDING_RETRY,
    ):
        self.client = client
        self.model = model
        self.ledger = ledger
        self.policy = policy.with_timeout(timeout)

    async def embed(self, text: str) -> List[float]:
        try:
            self.client.check("embeddings")
        except PipelineError as e:
            raise EmbeddingsFailed(cause=e) from e

        async def once() -> tuple[List[float], int]:
            data = await self.client.embeddings(text, model=self.model)
            return flatten_embeddings(data), usage_tokens(data)

        try:
            vector, tokens = await self.policy.run(once, label="embeddings")
        except PipelineError as e:
            log.error("embeddings.failed", error=str(e))
            raise EmbeddingsFailed(cause=e) from e
        await charge(self.ledger, OPENAI, LLM_TOKENS, tokens)
        log.debug("embeddings.done", dims=len(vector), tokens=tokens)
        return vector
