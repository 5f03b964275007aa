from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import pytest

from campaign_keeper.campaign import BudgetGate, EventLogger, StateStore, TurnOrchestrator, UsageLedgerStore
from campaign_keeper.provider import CompletionResult

FIXED_NOW = datetime(2025, 2, 15, 12, 0, 0)
FIXED_MONTH = "2025-2"

INITIAL_STATE: dict[str, Any] = {
    "party": {"Rowan": {"class": "Fighter", "hp": 20, "ac": 15}},
    "economy": {"party_gold": 50},
}


class FakeProvider:
    """Scripted completion provider recording every call."""

    def __init__(self, content: str | None = None, tokens: int = 0, error: Exception | None = None) -> None:
        self.content = content
        self.tokens = tokens
        self.error = error
        self.calls: list[tuple[dict[str, Any], str]] = []

    @classmethod
    def replying(cls, dm_output: str, delta: dict[str, Any], tokens: int = 0) -> "FakeProvider":
        return cls(json.dumps({"dm_output": dm_output, "delta": delta}), tokens)

    async def complete(self, state: dict[str, Any], player_input: str) -> CompletionResult:
        self.calls.append((state, player_input))
        if self.error is not None:
            raise self.error
        return CompletionResult(content=self.content or "", total_tokens=self.tokens, model="fake")


def write_usage(path, month: str, total: int) -> None:
    path.write_text(json.dumps({"month": month, "total_tokens": total}), encoding="utf-8")


@pytest.fixture
def campaign_paths(tmp_path):
    state_path = tmp_path / "state.json"
    state_path.write_text(json.dumps(INITIAL_STATE), encoding="utf-8")
    return {
        "state": state_path,
        "usage": tmp_path / "usage.json",
        "logs": tmp_path / "logs",
    }


@pytest.fixture
def make_orchestrator(campaign_paths):
    def _make(provider: Any, *, limit: int = 100, warn_threshold: float = 0.9) -> TurnOrchestrator:
        events = EventLogger(logs_dir=campaign_paths["logs"])
        return TurnOrchestrator(
            state_store=StateStore(campaign_paths["state"]),
            usage_store=UsageLedgerStore(campaign_paths["usage"], clock=lambda: FIXED_NOW, event_logger=events),
            provider=provider,
            gate=BudgetGate(limit, warn_threshold),
            event_logger=events,
        )

    return _make

