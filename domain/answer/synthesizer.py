"""Answer a question from the best retrieved memories."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from core.errors import PipelineError, ResponseFailed
from core.logging import get_logger
from domain.clock import Clock, system_clock
from domain.collaborators import UsageLedger
from domain.models import Match
from domain.prompts.loader import render
from services.openai_client import OpenAIClient
from services.retry import GENERATION_RETRY, NetworkRetryPolicy
from storage.usage import LLM_TOKENS, OPENAI, charge

log = get_logger("answer")

MIN_SCORE = 0.3
MAX_MATCHES = 2


def select_top_matches(matches: Sequence[Match], min_score: float = MIN_SCORE, max_count: int = MAX_MATCHES) -> List[Match]:
    kept = [m for m in matches if m.score >= min_score]
    kept.sort(key=lambda m: m.score, reverse=True)
    return kept[:max(0, max_count)]


def _format_match(match: Match) -> str:
    return render(
        "answer_match",
        description=match.description,
        timestamp=match.timestamp,
        score=f"{match.score:.2f}",
    )


def build_answer_prompt(question: str, matches: Sequence[Match], now: datetime) -> str:
    """``matches`` must already be filtered by :func:`select_top_matches`."""
    retrieved = ""
    if matches:
        count = len(matches)
        retrieved = render(
            "answer_retrieved",
            count=count,
            noun="match" if count == 1 else "matches",
            matches="\n\n".join(_format_match(m) for m in matches),
        )
    return render(
        "answer_system",
        question=question,
        retrieved=retrieved,
        readable_date=f"{now:%A, %B} {now.day}, {now.year}",
        now=now.isoformat(timespec="milliseconds"),
    )


class ResponseSynthesizer:
    def __init__(
        self,
        client: OpenAIClient,
        *,
        model: str = "gpt-4o",
        temperature: float = 0.2,
        min_score: float = MIN_SCORE,
        max_matches: int = MAX_MATCHES,
        clock: Optional[Clock] = None,
        ledger: Optional[UsageLedger] = None,
        policy: NetworkRetryPolicy = GENERATION_RETRY,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.min_score = min_score
        self.max_matches = min(max_matches, MAX_MATCHES)
        self.clock = clock or system_clock()
        self.ledger = ledger
        self.policy = policy

    def context_for(self, matches: Sequence[Match]) -> List[Match]:
        return select_top_matches(matches, self.min_score, self.max_matches)

    async def answer(self, question: str, matches: Sequence[Match]) -> str:
        try:
            self.client.check()
        except PipelineError as e:
            raise ResponseFailed(cause=e) from e

        selected = self.context_for(matches)
        prompt = build_answer_prompt(question, selected, self.clock())
        log.debug("answer.context", candidates=len(matches), used=len(selected))
        messages = [{"role": "system", "content": prompt}]

        async def once():
            return await self.client.chat(messages, model=self.model, temperature=self.temperature)

        try:
            reply = await self.policy.run(once, label="answer")
        except PipelineError as e:
            log.error("answer.failed", error=str(e))
            raise ResponseFailed(cause=e) from e
        await charge(self.ledger, OPENAI, LLM_TOKENS, reply.total_tokens)
        return reply.content.strip()
