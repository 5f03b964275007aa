"""Turn orchestration: budget gate, model call, merge, persist, record."""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import dataclass
from typing import Any

from ..config import AppConfig
from ..errors import CampaignError
from ..provider.client import CompletionProvider, OpenAIChatProvider
from ..provider.protocol import parse_dm_output
from .budget import BudgetDecision, BudgetGate
from .logger import EventLogger
from .merge import apply_delta, state_summary
from .store import StateStore
from .usage import UsageLedgerStore


@dataclass
class TurnResult:
    narration: str
    delta: dict[str, Any]
    state_summary: dict[str, Any]
    usage: dict[str, Any]
    notice: str | None = None
    blocked: bool = False
    decision: BudgetDecision | None = None

    @property
    def display_text(self) -> str:
        """Notice and narration joined the way a chat log shows them."""
        if self.notice and self.narration:
            return f"{self.notice}\n\n{self.narration}"
        return self.notice or self.narration

    def to_dict(self) -> dict[str, Any]:
        return {
            "dmOutput": self.display_text,
            "narration": self.narration,
            "notice": self.notice,
            "delta": self.delta,
            "stateSummary": self.state_summary,
            "usage": self.usage,
            "blocked": self.blocked,
        }


@dataclass
class TurnStats:
    completed: int = 0
    blocked: int = 0
    failed: int = 0
    last_error: str | None = None
    last_duration_seconds: float = 0.0


class TurnOrchestrator:
    """Sole writer of the state and usage documents.

    Turns are serialized by an internal lock so the read-merge-write-record
    sequence never interleaves with another turn.
    """

    def __init__(
        self,
        *,
        state_store: StateStore,
        usage_store: UsageLedgerStore,
        provider: CompletionProvider,
        gate: BudgetGate,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.state_store = state_store
        self.usage_store = usage_store
        self.provider = provider
        self.gate = gate
        self.event_logger = event_logger
        self.stats = TurnStats()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        provider: CompletionProvider | None = None,
        event_logger: EventLogger | None = None,
    ) -> "TurnOrchestrator":
        event_logger = event_logger or EventLogger(
            logs_dir=config.logging.logs_dir,
            event_file_name=config.logging.event_file_name,
        )
        return cls(
            state_store=StateStore(config.storage.state_path),
            usage_store=UsageLedgerStore(config.storage.usage_path, event_logger=event_logger),
            provider=provider or OpenAIChatProvider(config.llm),
            gate=BudgetGate(config.budget.monthly_token_limit, config.budget.warn_threshold),
            event_logger=event_logger,
        )

    def usage_payload(self, month: str, total_tokens: int) -> dict[str, Any]:
        return {"month": month, "total_tokens": total_tokens, "limit": self.gate.limit}

    async def process_turn(self, player_input: str) -> TurnResult:
        if not isinstance(player_input, str) or not player_input.strip():
            raise ValueError("playerInput (string) is required")

        async with self._lock:
            started = time.monotonic()
            try:
                result = await self._run_turn(player_input)
            except CampaignError as exc:
                self.stats.failed += 1
                self.stats.last_error = f"{type(exc).__name__}: {exc}"
                self._log(
                    "turn_failed",
                    {
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                        "player_input": player_input,
                    },
                )
                raise
            finally:
                self.stats.last_duration_seconds = time.monotonic() - started
            return result

    async def _run_turn(self, player_input: str) -> TurnResult:
        state = self.state_store.read()
        ledger = self.usage_store.current()

        decision = self.gate.pre_call(ledger)
        if decision.blocked:
            self.stats.blocked += 1
            self._log(
                "turn_blocked",
                {"player_input": player_input, "total_tokens": ledger.total_tokens, "limit": self.gate.limit},
            )
            return TurnResult(
                narration="",
                delta={},
                state_summary=state_summary(state),
                usage=self.usage_payload(ledger.month, ledger.total_tokens),
                notice=decision.notice,
                blocked=True,
                decision=decision,
            )

        # the provider gets a copy; merge mutates only after a clean parse
        completion = await self.provider.complete(copy.deepcopy(state), player_input)
        output = parse_dm_output(completion.content)

        new_state = apply_delta(state, output.delta)
        self.state_store.write(new_state)

        new_total = self.usage_store.record_usage(completion.total_tokens)
        decision = self.gate.post_call(new_total)

        self.stats.completed += 1
        self._log(
            "turn_completed",
            {
                "player_input": player_input,
                "tokens": completion.total_tokens,
                "total_tokens": new_total,
                "budget_outcome": decision.outcome.value,
                "delta_keys": sorted(output.delta.keys()),
            },
        )
        return TurnResult(
            narration=output.narration,
            delta=output.delta,
            state_summary=state_summary(new_state),
            usage=self.usage_payload(self.usage_store.current_month(), new_total),
            notice=decision.notice,
            decision=decision,
        )

    def _log(self, event_type: str, data: dict[str, Any]) -> None:
        if self.event_logger is not None:
            self.event_logger.log(event_type, data)
