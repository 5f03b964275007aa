from __future__ import annotations

import asyncio
import json

import pytest
from conftest import FIXED_MONTH, INITIAL_STATE, FakeProvider, write_usage

from campaign_keeper.campaign.budget import BudgetOutcome
from campaign_keeper.errors import MalformedOutputError, ProviderError, StorageError


def _read(path):
    return json.loads(path.read_text(encoding="utf-8"))


def _event_types(orchestrator) -> list[str]:
    return [e["event_type"] for e in orchestrator.event_logger.read_recent(100)]


def test_end_to_end_turn_merges_and_persists(make_orchestrator, campaign_paths) -> None:
    provider = FakeProvider.replying("You strike the goblin and loot 10 gold.", {"economy": {"party_gold": 60}}, 40)
    orchestrator = make_orchestrator(provider)

    result = asyncio.run(orchestrator.process_turn("attack the goblin"))

    persisted = _read(campaign_paths["state"])
    assert persisted["economy"]["party_gold"] == 60
    assert persisted["party"] == INITIAL_STATE["party"]
    assert result.state_summary == {"party": INITIAL_STATE["party"], "economy": {"party_gold": 60}}
    assert result.delta == {"economy": {"party_gold": 60}}
    assert result.narration == "You strike the goblin and loot 10 gold."
    assert result.notice is None
    assert result.usage == {"month": FIXED_MONTH, "total_tokens": 40, "limit": 100}
    assert provider.calls == [(INITIAL_STATE, "attack the goblin")]
    assert _read(campaign_paths["usage"]) == {"month": FIXED_MONTH, "total_tokens": 40}
    assert _event_types(orchestrator) == ["turn_completed"]


def test_blocked_turn_makes_no_call_and_no_writes(make_orchestrator, campaign_paths) -> None:
    write_usage(campaign_paths["usage"], FIXED_MONTH, 100)
    state_before = campaign_paths["state"].read_text(encoding="utf-8")
    provider = FakeProvider.replying("never", {"economy": {"party_gold": 0}}, 10)
    orchestrator = make_orchestrator(provider)

    result = asyncio.run(orchestrator.process_turn("look around"))

    assert result.blocked
    assert result.decision is not None and result.decision.outcome is BudgetOutcome.BLOCK
    assert result.narration == ""
    assert result.delta == {}
    assert result.notice and "limit reached" in result.notice
    assert result.state_summary == {"party": INITIAL_STATE["party"], "economy": INITIAL_STATE["economy"]}
    assert provider.calls == []
    assert campaign_paths["state"].read_text(encoding="utf-8") == state_before
    assert _read(campaign_paths["usage"])["total_tokens"] == 100
    assert _event_types(orchestrator) == ["turn_blocked"]


def test_previous_month_overspend_does_not_block(make_orchestrator, campaign_paths) -> None:
    write_usage(campaign_paths["usage"], "2025-1", 5000)
    provider = FakeProvider.replying("A new month dawns.", {}, 7)
    orchestrator = make_orchestrator(provider)

    result = asyncio.run(orchestrator.process_turn("rest"))

    assert not result.blocked
    assert result.usage["total_tokens"] == 7
    assert _read(campaign_paths["usage"]) == {"month": FIXED_MONTH, "total_tokens": 7}


def test_warning_when_crossing_threshold(make_orchestrator, campaign_paths) -> None:
    write_usage(campaign_paths["usage"], FIXED_MONTH, 85)
    orchestrator = make_orchestrator(FakeProvider.replying("The door creaks.", {}, 10))

    result = asyncio.run(orchestrator.process_turn("open the door"))

    assert result.decision is not None and result.decision.outcome is BudgetOutcome.ADMIT_WITH_WARNING
    assert result.notice and "90%" in result.notice
    assert result.narration == "The door creaks."
    assert result.display_text == f"{result.notice}\n\nThe door creaks."
    assert result.to_dict()["dmOutput"] == result.display_text


def test_no_warning_below_threshold(make_orchestrator, campaign_paths) -> None:
    write_usage(campaign_paths["usage"], FIXED_MONTH, 10)
    orchestrator = make_orchestrator(FakeProvider.replying("Quiet.", {}, 40))

    result = asyncio.run(orchestrator.process_turn("listen"))

    assert result.decision is not None and result.decision.outcome is BudgetOutcome.ADMIT
    assert result.notice is None
    assert result.usage["total_tokens"] == 50


def test_turn_that_reaches_limit_completes_then_next_is_blocked(make_orchestrator, campaign_paths) -> None:
    write_usage(campaign_paths["usage"], FIXED_MONTH, 95)
    provider = FakeProvider.replying("The dragon wakes.", {"log": ["dragon woke"]}, 10)
    orchestrator = make_orchestrator(provider)

    first = asyncio.run(orchestrator.process_turn("poke the dragon"))
    assert not first.blocked
    assert first.notice and "has now been reached" in first.notice
    assert _read(campaign_paths["state"])["log"] == ["dragon woke"]

    second = asyncio.run(orchestrator.process_turn("run"))
    assert second.blocked
    assert len(provider.calls) == 1
    assert _read(campaign_paths["usage"])["total_tokens"] == 105


def test_provider_error_leaves_state_and_usage_untouched(make_orchestrator, campaign_paths) -> None:
    state_before = campaign_paths["state"].read_text(encoding="utf-8")
    orchestrator = make_orchestrator(FakeProvider(error=ProviderError("boom", status_code=500)))

    with pytest.raises(ProviderError):
        asyncio.run(orchestrator.process_turn("cast fireball"))

    assert campaign_paths["state"].read_text(encoding="utf-8") == state_before
    assert not campaign_paths["usage"].exists()
    assert orchestrator.stats.failed == 1
    events = orchestrator.event_logger.read_recent(10)
    assert events[-1]["event_type"] == "turn_failed"
    assert events[-1]["error_type"] == "ProviderError"


@pytest.mark.parametrize(
    "content",
    [
        "not json at all",
        json.dumps(["dm_output", "delta"]),
        json.dumps({"dm_output": "ok", "delta": ["not", "a", "mapping"]}),
        json.dumps({"dm_output": 12, "delta": {}}),
    ],
)
def test_malformed_output_is_fatal_without_mutation(make_orchestrator, campaign_paths, content: str) -> None:
    state_before = campaign_paths["state"].read_text(encoding="utf-8")
    orchestrator = make_orchestrator(FakeProvider(content=content, tokens=30))

    with pytest.raises(MalformedOutputError):
        asyncio.run(orchestrator.process_turn("search the room"))

    assert campaign_paths["state"].read_text(encoding="utf-8") == state_before
    assert not campaign_paths["usage"].exists()


def test_missing_state_is_storage_error(make_orchestrator, campaign_paths) -> None:
    campaign_paths["state"].unlink()
    provider = FakeProvider.replying("x", {}, 1)
    orchestrator = make_orchestrator(provider)

    with pytest.raises(StorageError):
        asyncio.run(orchestrator.process_turn("hello"))
    assert provider.calls == []


@pytest.mark.parametrize("player_input", ["", "   ", None, 5])
def test_blank_input_is_rejected(make_orchestrator, player_input) -> None:
    orchestrator = make_orchestrator(FakeProvider.replying("x", {}, 1))
    with pytest.raises(ValueError):
        asyncio.run(orchestrator.process_turn(player_input))


def test_provider_receives_a_copy_of_state(make_orchestrator, campaign_paths) -> None:
    class MutatingProvider(FakeProvider):
        async def complete(self, state, player_input):
            state["party"] = "clobbered"
            return await super().complete(state, player_input)

    orchestrator = make_orchestrator(MutatingProvider.replying("fine", {}, 1))
    result = asyncio.run(orchestrator.process_turn("wait"))
    assert result.state_summary["party"] == INITIAL_STATE["party"]


def test_concurrent_turns_are_serialized(make_orchestrator, campaign_paths) -> None:
    class SlowProvider(FakeProvider):
        def __init__(self) -> None:
            super().__init__(tokens=5)
            self.active = 0
            self.max_active = 0

        async def complete(self, state, player_input):
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1
            gold = state["economy"]["party_gold"] + 1
            self.content = json.dumps({"dm_output": player_input, "delta": {"economy": {"party_gold": gold}}})
            return await super().complete(state, player_input)

    provider = SlowProvider()
    orchestrator = make_orchestrator(provider, limit=1000)

    async def _run_all() -> None:
        await asyncio.gather(*(orchestrator.process_turn(f"turn {i}") for i in range(5)))

    asyncio.run(_run_all())

    assert provider.max_active == 1
    assert _read(campaign_paths["state"])["economy"]["party_gold"] == 55
    assert _read(campaign_paths["usage"])["total_tokens"] == 25


def test_nan_delta_is_rejected_without_mutation(make_orchestrator, campaign_paths) -> None:
    state_before = campaign_paths["state"].read_text(encoding="utf-8")
    content = '{"dm_output": "x", "delta": {"economy": {"party_gold": NaN}}}'
    orchestrator = make_orchestrator(FakeProvider(content=content, tokens=9))

    with pytest.raises(MalformedOutputError):
        asyncio.run(orchestrator.process_turn("count the gold"))

    assert campaign_paths["state"].read_text(encoding="utf-8") == state_before
    assert not campaign_paths["usage"].exists()
    assert orchestrator.event_logger.read_recent(1)[0]["error_type"] == "MalformedOutputError"


def test_deeply_nested_output_fails_turn_cleanly(make_orchestrator, campaign_paths) -> None:
    content = '{"dm_output":"x","delta":' + '{"a":' * 100000 + "1" + "}" * 100000 + "}"
    orchestrator = make_orchestrator(FakeProvider(content=content, tokens=9))

    with pytest.raises(MalformedOutputError):
        asyncio.run(orchestrator.process_turn("descend"))

    assert _event_types(orchestrator) == ["turn_failed"]
    assert not campaign_paths["usage"].exists()
