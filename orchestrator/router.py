# orchestrator/router.py
"""Intent router: one state machine run per user utterance.

idle -> awaiting_classification -> {question|reminder|calendar|save_info}_flow
     -> {succeeded | failed}

A run is a plain object returned to the caller. The router itself keeps no
per-run state, so concurrent runs never interfere. A failed run remembers
which step broke and :meth:`IntentRouter.retry` resumes from exactly there.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.errors import CollaboratorError, ConfigurationError, PipelineError, TranscriptionFailed
from core.logging import clear_log_context, enrich_log, get_logger
from domain.answer.synthesizer import ResponseSynthesizer
from domain.clock import Clock, as_local, iso_timestamp, parse_iso8601, system_clock
from domain.collaborators import CalendarEditor, ReminderStore
from domain.intent.classifier import IntentClassifier
from domain.intent.models import IntentClassification, IntentType
from domain.models import CalendarDraft, Match, Memory, Reminder
from orchestrator.events import (
    CALENDAR_DRAFT_READY,
    FLOW_FAILED,
    FLOW_SUCCEEDED,
    MEMORY_SAVED,
    REMINDER_SAVED,
    EventBus,
)
from services.embeddings import EmbeddingService
from services.transcription import AudioSource, TranscriptionService
from services.vector_store import VectorStoreClient

log = get_logger("router")

MISSING_TIME_FALLBACK = timedelta(hours=1)
PAST_TIME_FALLBACK = timedelta(hours=24)


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_CLASSIFICATION = "awaiting_classification"
    QUESTION_FLOW = "question_flow"
    REMINDER_FLOW = "reminder_flow"
    CALENDAR_FLOW = "calendar_flow"
    SAVE_INFO_FLOW = "save_info_flow"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_FLOW_STATE = {
    IntentType.QUESTION: FlowState.QUESTION_FLOW,
    IntentType.REMINDER: FlowState.REMINDER_FLOW,
    IntentType.CALENDAR: FlowState.CALENDAR_FLOW,
    IntentType.SAVE_INFO: FlowState.SAVE_INFO_FLOW,
}

_FLOW_STEPS = {
    IntentType.QUESTION: ["embed", "query", "synthesize"],
    IntentType.SAVE_INFO: ["embed", "upsert"],
    IntentType.REMINDER: ["schedule_reminder"],
    IntentType.CALENDAR: ["draft_event"],
}


@dataclass(slots=True)
class FlowRun:
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    transcript: Optional[str] = None
    language: Optional[str] = None
    audio: Any = field(default=None, repr=False)
    intent: Optional[IntentClassification] = None
    state: FlowState = FlowState.IDLE
    history: List[FlowState] = field(default_factory=lambda: [FlowState.IDLE])
    steps: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    cursor: int = 0

    embedding: List[float] = field(default_factory=list, repr=False)
    matches: List[Match] = field(default_factory=list)
    memory_id: Optional[str] = None
    answer: Optional[str] = None
    memory: Optional[Memory] = None
    reminder: Optional[Reminder] = None
    draft: Optional[CalendarDraft] = None

    error: Optional[PipelineError] = None
    failed_step: Optional[str] = None
    classification_miss: bool = False
    aborted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is FlowState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state is FlowState.FAILED

    @property
    def outcome(self) -> Any:
        return self.answer or self.memory or self.reminder or self.draft

    def move(self, state: FlowState) -> None:
        self.state = state
        self.history.append(state)


class IntentRouter:
    def __init__(
        self,
        classifier: IntentClassifier,
        embeddings: EmbeddingService,
        vector_store: VectorStoreClient,
        synthesizer: ResponseSynthesizer,
        reminders: ReminderStore,
        calendar: CalendarEditor,
        *,
        transcriber: Optional[TranscriptionService] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        tz: Optional[tzinfo] = None,
        top_k: int = 2,
    ):
        self.classifier = classifier
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.synthesizer = synthesizer
        self.reminders = reminders
        self.calendar = calendar
        self.transcriber = transcriber
        self.bus = bus or EventBus()
        self.tz = tz
        self.clock = clock or system_clock(tz)
        self.top_k = top_k
        self._steps: Dict[str, Callable[[FlowRun], Awaitable[None]]] = {
            "transcribe": self._transcribe,
            "classify": self._classify,
            "embed": self._embed,
            "query": self._query,
            "synthesize": self._synthesize,
            "upsert": self._upsert,
            "schedule_reminder": self._schedule_reminder,
            "draft_event": self._draft_event,
        }

    # ---- entry points ----------------------------------------------------

    async def handle_transcript(self, transcript: str, *, language: Optional[str] = None) -> FlowRun:
        run = FlowRun(transcript=transcript, language=language, steps=["classify"])
        run.move(FlowState.AWAITING_CLASSIFICATION)
        return await self._drive(run)

    async def handle_audio(self, audio: AudioSource, *, language: Optional[str] = None) -> FlowRun:
        run = FlowRun(audio=audio, language=language, steps=["transcribe", "classify"])
        run.move(FlowState.AWAITING_CLASSIFICATION)
        return await self._drive(run)

    async def route(self, intent: IntentClassification) -> FlowRun:
        """Run the flow for an intent that was classified elsewhere."""
        run = FlowRun()
        run.move(FlowState.AWAITING_CLASSIFICATION)
        self._enter_flow(run, intent)
        return await self._drive(run)

    async def retry(self, run: FlowRun) -> FlowRun:
        """Re-invoke the failed step and carry on with the rest of the flow."""
        if not run.failed:
            raise ValueError(f"run {run.id} is {run.state.value}, only failed runs can be retried")
        resume_state = run.history[-2] if len(run.history) >= 2 else FlowState.AWAITING_CLASSIFICATION
        log.info("router.retry", flow_id=run.id, step=run.failed_step)
        run.error = None
        run.failed_step = None
        run.move(resume_state)
        return await self._drive(run)

    # ---- state machine ---------------------------------------------------

    def _enter_flow(self, run: FlowRun, intent: IntentClassification) -> None:
        run.intent = intent
        if intent.is_unknown:
            run.classification_miss = True
            return
        run.move(_FLOW_STATE[intent.type])
        run.steps.extend(_FLOW_STEPS[intent.type])

    async def _drive(self, run: FlowRun) -> FlowRun:
        enrich_log(flow_id=run.id)
        try:
            while run.cursor < len(run.steps) and not (run.classification_miss or run.aborted):
                name = run.steps[run.cursor]
                try:
                    await self._steps[name](run)
                except PipelineError as e:
                    run.error = e
                    run.failed_step = name
                    run.move(FlowState.FAILED)
                    log.warning("router.flow_failed", step=name, error=type(e).__name__, detail=e.message)
                    await self.bus.publish(FLOW_FAILED, run)
                    return run
                run.completed.append(name)
                run.cursor += 1

            if run.classification_miss or run.aborted:
                run.move(FlowState.IDLE)
                log.info("router.idle", miss=run.classification_miss, aborted=run.aborted)
                return run

            run.move(FlowState.SUCCEEDED)
            log.info("router.flow_succeeded", intent=run.intent.type.value if run.intent else None)
            await self.bus.publish(FLOW_SUCCEEDED, run)
            return run
        finally:
            clear_log_context("flow_id")

    # ---- steps -----------------------------------------------------------

    async def _transcribe(self, run: FlowRun) -> None:
        if self.transcriber is None:
            raise TranscriptionFailed(cause=ConfigurationError("Transcription is not configured."))
        run.transcript = await self.transcriber.transcribe(run.audio, language=run.language)

    async def _classify(self, run: FlowRun) -> None:
        intent = await self.classifier.classify(run.transcript or "", language=run.language)
        self._enter_flow(run, intent)

    async def _embed(self, run: FlowRun) -> None:
        intent = run.intent
        text = intent.query if intent.type is IntentType.QUESTION else intent.memory
        run.embedding = await self.embeddings.embed(text or "")

    async def _query(self, run: FlowRun) -> None:
        run.matches = await self.vector_store.query(run.embedding, top_k=self.top_k)

    async def _synthesize(self, run: FlowRun) -> None:
        run.answer = await self.synthesizer.answer(run.intent.query or "", run.matches)

    async def _upsert(self, run: FlowRun) -> None:
        # the id is fixed before the first attempt so a retry cannot duplicate
        if run.memory_id is None:
            run.memory_id = str(uuid.uuid4())
        metadata = {
            "description": run.intent.memory or "",
            "timestamp": iso_timestamp(self.clock()),
        }
        run.memory = await self.vector_store.upsert(run.memory_id, run.embedding, metadata)
        await self.bus.publish(MEMORY_SAVED, run.memory)

    def resolve_when(self, raw: Optional[str]) -> Optional[datetime]:
        """Due time for a reminder/event; ``None`` means the value was unreadable."""
        now = self.clock()
        if raw is None:
            return now + MISSING_TIME_FALLBACK
        parsed = parse_iso8601(raw)
        if parsed is None:
            return None
        # the intent prompt asks for local time without "Z", so naive means local, not UTC
        when = as_local(parsed, self.tz or now.tzinfo)
        if when <= now:
            return now + PAST_TIME_FALLBACK
        return when

    async def _schedule_reminder(self, run: FlowRun) -> None:
        intent = run.intent
        due = self.resolve_when(intent.datetime)
        if due is None or not intent.task:
            log.info("router.reminder_dropped", raw_datetime=intent.datetime)
            run.aborted = True
            return
        try:
            run.reminder = await self.reminders.create_and_save(intent.task, due)
        except PipelineError:
            raise
        except Exception as e:
            raise CollaboratorError(f"Reminder store failed: {e}", cause=e) from e
        await self.bus.publish(REMINDER_SAVED, run.reminder)

    async def _draft_event(self, run: FlowRun) -> None:
        intent = run.intent
        start = self.resolve_when(intent.datetime)
        if start is None or not intent.title:
            log.info("router.event_dropped", raw_datetime=intent.datetime)
            run.aborted = True
            return
        draft = CalendarDraft.one_hour(intent.title, start, intent.location)
        try:
            run.draft = await self.calendar.present_draft(draft)
        except PipelineError:
            raise
        except Exception as e:
            raise CollaboratorError(f"Calendar editor failed: {e}", cause=e) from e
        await self.bus.publish(CALENDAR_DRAFT_READY, run.draft)
