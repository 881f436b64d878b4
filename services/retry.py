"""Bounded retry with a fixed delay for single outbound network calls."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from core.errors import TransportError
from core.logging import get_logger

T = TypeVar("T")

log = get_logger("retry")


@dataclass(frozen=True, slots=True)
class NetworkRetryPolicy:
    """Run one unit of work up to ``max_attempts`` times.

    Every failure is retried the same way: bad status, malformed body,
    transport error or timeout. When attempts run out the last error is
    re-raised unchanged. ``timeout`` bounds each attempt, not the total.
    """

    max_attempts: int
    delay: float = 0.1
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    def with_timeout(self, timeout: Optional[float]) -> "NetworkRetryPolicy":
        return NetworkRetryPolicy(self.max_attempts, self.delay, timeout)

    async def run(self, work: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                if self.timeout is None:
                    return await work()
                try:
                    return await asyncio.wait_for(work(), timeout=self.timeout)
                except asyncio.TimeoutError as exc:
                    raise TransportError(f"{label} timed out after {self.timeout:g}s", cause=exc) from exc
            except Exception as exc:
                last_error = exc
                log.warning(
                    "retry.attempt_failed",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=repr(exc),
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.delay)
        assert last_error is not None
        raise last_error


TRANSCRIPTION_RETRY = NetworkRetryPolicy(max_attempts=3, delay=0.2)
EMBEDDING_RETRY = NetworkRetryPolicy(max_attempts=3, delay=0.1)
GENERATION_RETRY = NetworkRetryPolicy(max_attempts=2, delay=0.1)
CLASSIFICATION_RETRY = NetworkRetryPolicy(max_attempts=2, delay=0.1)
VECTOR_STORE_RETRY = NetworkRetryPolicy(max_attempts=2, delay=0.1)
