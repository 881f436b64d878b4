"""LLM-backed intent classification."""
from __future__ import annotations

from typing import Optional

from core.errors import ClassificationFailed, PipelineError
from core.logging import get_logger
from domain.clock import Clock, iso_timestamp, system_clock
from domain.collaborators import UsageLedger
from domain.intent.models import IntentClassification, parse_intent_content
from domain.prompts.loader import render
from services.openai_client import OpenAIClient
from services.retry import CLASSIFICATION_RETRY, NetworkRetryPolicy
from storage.usage import LLM_TOKENS, OPENAI, charge

log = get_logger("intent")


def build_intent_prompt(now_iso: str, language: Optional[str] = None) -> str:
    hint = render("language_hint", language=language) if language else ""
    return render("intent_system", now=now_iso, language_hint=hint)


class IntentClassifier:
    def __init__(
        self,
        client: OpenAIClient,
        *,
        model: str = "gpt-4o",
        temperature: float = 0.1,
        clock: Optional[Clock] = None,
        ledger: Optional[UsageLedger] = None,
        policy: NetworkRetryPolicy = CLASSIFICATION_RETRY,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.clock = clock or system_clock()
        self.ledger = ledger
        self.policy = policy

    async def classify(self, transcript: str, *, language: Optional[str] = None) -> IntentClassification:
        if not (transcript or "").strip():
            return IntentClassification.unknown()
        try:
            self.client.check()
        except PipelineError as e:
            raise ClassificationFailed(cause=e) from e

        messages = [
            {"role": "system", "content": build_intent_prompt(iso_timestamp(self.clock()), language)},
            {"role": "user", "content": transcript},
        ]

        async def once() -> tuple[IntentClassification, int]:
            reply = await self.client.chat(messages, model=self.model, temperature=self.temperature)
            return parse_intent_content(reply.content), reply.total_tokens

        try:
            intent, tokens = await self.policy.run(once, label="classification")
        except PipelineError as e:
            log.error("intent.failed", error=str(e))
            raise ClassificationFailed(cause=e) from e
        await charge(self.ledger, OPENAI, LLM_TOKENS, tokens)
        log.info("intent.classified", type=intent.type.value, fields=sorted(intent.populated()))
        return intent
