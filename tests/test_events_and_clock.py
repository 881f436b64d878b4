from datetime import datetime, timedelta, timezone

import pytest
# mypy: ignore-errors

from adapters.console.dev_runner import DevConsoleRunner, describe
from conftest import TZ, intent_reply
from domain.clock import as_local, iso_timestamp, parse_iso8601, sort_newest_first
from orchestrator.events import EventBus


@pytest.mark.asyncio
async def test_bus_isolates_broken_handlers() -> None:
    bus = EventBus()
    received = []

    async def broken(topic, payload):
        raise RuntimeError("listener bug")

    async def good(topic, payload):
        received.append((topic, payload))

    bus.subscribe("memory.saved", broken)
    unsubscribe = bus.subscribe("memory.saved", good)
    await bus.publish("memory.saved", "m1")
    unsubscribe()
    await bus.publish("memory.saved", "m2")

    assert received == [("memory.saved", "m1")]


def test_iso_helpers() -> None:
    assert parse_iso8601("2026-10-20T07:00:00Z") == datetime(2026, 10, 20, 7, tzinfo=timezone.utc)
    assert parse_iso8601("2026-10-20T09:00:00").tzinfo is None
    assert parse_iso8601("tomorrow") is None
    assert parse_iso8601(None) is None
    moment = datetime(2026, 10, 19, 8, 0, 0, 123456, tzinfo=TZ)
    assert iso_timestamp(moment) == "2026-10-19T08:00:00+02:00"
    assert as_local(datetime(2026, 10, 19, 8), TZ).utcoffset() == timedelta(hours=2)


def test_sort_newest_first_is_stable_for_undated() -> None:
    items = [("x", ""), ("old", "2026-01-01T00:00:00Z"), ("y", "n/a"), ("new", "2026-06-01T00:00:00Z")]
    assert [name for name, _ in sort_newest_first(items, lambda i: i[1])] == ["new", "old", "x", "y"]


@pytest.mark.asyncio
async def test_dev_runner_drives_router(router, openai_server) -> None:
    openai_server.default("/chat/completions", intent_reply(type="is_reminder", task="stretch"))
    runs = []

    async def handler(text):
        run = await router.handle_transcript(text)
        runs.append(run)
        return run

    await DevConsoleRunner(handler, samples=["Remind me to stretch"]).start()

    assert len(runs) == 1
    assert describe(runs[0]).startswith("Reminder set for 2026-10-19 09:00: stretch")
