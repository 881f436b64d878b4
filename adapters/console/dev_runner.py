"""Development runner that feeds canned utterances through the router."""
from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Optional

from core.logging import get_logger
from orchestrator.router import FlowRun

log = get_logger("dev_runner")

SAMPLES = (
    "Remind me to call mom tomorrow at 9am",
    "Remember that my passport number ends in 4411",
    "What does my passport number end with?",
    "Lunch with Sam on Friday at noon at Café Rio",
    "Hmm",
)


def describe(run: FlowRun) -> str:
    if run.failed:
        return f"{run.error.title}: {run.error.message}"
    if run.classification_miss:
        return "Sorry, I did not catch what you want me to do."
    if run.aborted:
        return "Could not work out when that should happen."
    if run.answer is not None:
        return run.answer
    if run.memory is not None:
        return f"Saved: {run.memory.description}"
    if run.reminder is not None:
        return f"Reminder set for {run.reminder.due:%Y-%m-%d %H:%M}: {run.reminder.task}"
    if run.draft is not None:
        return f"Event draft: {run.draft.title} at {run.draft.start:%Y-%m-%d %H:%M}"
    return ""


class DevConsoleRunner:
    def __init__(self, handler: Callable[[str], Awaitable[FlowRun]], samples: Optional[Iterable[str]] = None):
        self.handler = handler
        self.samples = tuple(samples) if samples is not None else SAMPLES

    async def start(self) -> None:
        log.info("dev_runner.start")
        for sample in self.samples:
            run = await self.handler(sample)
            log.info("dev_runner.dialogue", user=sample, state=run.state.value, reply=describe(run))
        log.info("dev_runner.stop")
