import pytest
# mypy: ignore-errors

from conftest import NOW, chat_reply, fast, fixed_clock
from core.errors import ResponseFailed, TransportError
from domain.answer.synthesizer import ResponseSynthesizer, build_answer_prompt, select_top_matches
from domain.models import Match
from storage.usage import LLM_TOKENS, OPENAI


def _match(score, description="note", timestamp="2026-10-18T10:00:00+02:00"):
    return Match(id=f"m-{score}", score=score, metadata={"description": description, "timestamp": timestamp})


def test_threshold_and_cap() -> None:
    matches = [_match(s) for s in (0.1, 0.5, 0.29, 0.9, 0.3)]
    assert [m.score for m in select_top_matches(matches)] == [0.9, 0.5]
    assert [m.score for m in select_top_matches(matches, max_count=5)] == [0.9, 0.5, 0.3]
    assert select_top_matches([_match(0.29)]) == []


def test_prompt_lists_matches_and_dates() -> None:
    prompt = build_answer_prompt("Where did I park?", [_match(0.9, "Parked on level 3")], NOW)
    assert "User's Question: Where did I park?" in prompt
    assert "Retrieved Information (1 match)" in prompt
    assert "- Saved info: Parked on level 3" in prompt
    assert "- Timestamp: 2026-10-18T10:00:00+02:00" in prompt
    assert "- Score: 0.90" in prompt
    assert "Monday, October 19, 2026" in prompt
    assert "2026-10-19T08:00:00.000+02:00" in prompt


def test_prompt_without_matches_has_no_retrieved_block() -> None:
    prompt = build_answer_prompt("What is the capital of France?", [], NOW)
    assert "Retrieved Information" not in prompt
    assert "$" not in prompt


def test_missing_metadata_renders_placeholders() -> None:
    prompt = build_answer_prompt("q", [Match(id="x", score=0.8)], NOW)
    assert "- Saved info: N/A" in prompt
    assert "- Timestamp: N/A" in prompt


@pytest.mark.asyncio
async def test_answer_uses_only_the_top_two(openai_client, openai_server, ledger) -> None:
    openai_server.queue("/chat/completions", chat_reply("  Level 3, near the lift.  ", tokens=120))
    synth = ResponseSynthesizer(openai_client, clock=fixed_clock, ledger=ledger, policy=fast(2))
    matches = [_match(s, f"note {s}") for s in (0.9, 0.5, 0.3, 0.29, 0.1)]

    answer = await synth.answer("Where did I park?", matches)

    assert answer == "Level 3, near the lift."
    body = openai_server.bodies("/chat/completions")[0]
    assert [m["role"] for m in body["messages"]] == ["system"]
    assert body["temperature"] == 0.2
    prompt = body["messages"][0]["content"]
    assert "note 0.9" in prompt and "note 0.5" in prompt
    assert "note 0.3" not in prompt and "note 0.1" not in prompt
    assert await ledger.value(OPENAI, LLM_TOKENS) == 120


@pytest.mark.asyncio
async def test_answer_without_matches_still_calls_the_model(openai_client, openai_server) -> None:
    openai_server.queue("/chat/completions", chat_reply("Paris."))
    synth = ResponseSynthesizer(openai_client, clock=fixed_clock, policy=fast(2))
    assert await synth.answer("What is the capital of France?", []) == "Paris."


@pytest.mark.asyncio
async def test_max_matches_never_exceeds_two(openai_client) -> None:
    synth = ResponseSynthesizer(openai_client, max_matches=5)
    assert synth.max_matches == 2


@pytest.mark.asyncio
async def test_failure_is_response_failed(openai_client, openai_server) -> None:
    openai_server.queue("/chat/completions", 500, {"choices": []})
    synth = ResponseSynthesizer(openai_client, clock=fixed_clock, policy=fast(2))
    with pytest.raises(ResponseFailed) as info:
        await synth.answer("q", [])
    assert info.value.title == "GPT Error"
    assert info.value.message == "No choices found in GPT response."
    assert len(openai_server.calls("/chat/completions")) == 2


@pytest.mark.asyncio
async def test_transport_failure_cause_is_kept(openai_client, openai_server) -> None:
    openai_server.queue("/chat/completions", 401, 401)
    synth = ResponseSynthesizer(openai_client, clock=fixed_clock, policy=fast(2))
    with pytest.raises(ResponseFailed) as info:
        await synth.answer("q", [])
    assert isinstance(info.value.cause, TransportError)
    assert info.value.cause.status_code == 401
