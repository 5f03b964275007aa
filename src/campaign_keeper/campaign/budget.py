"""Admit / warn / block decisions against the monthly token limit."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .usage import UsageLedger

LIMIT_BLOCKED_NOTICE = (
    "⚠️ Monthly usage limit reached before this request. "
    "Please increase your budget or wait until next month."
)
LIMIT_REACHED_NOTICE = (
    "⚠️ Monthly usage limit has now been reached. "
    "Future requests may be blocked until next month."
)


class BudgetOutcome(str, Enum):
    ADMIT = "admit"
    ADMIT_WITH_WARNING = "admit_with_warning"
    BLOCK = "block"


@dataclass(frozen=True)
class BudgetDecision:
    outcome: BudgetOutcome
    total_tokens: int
    limit: int
    notice: str | None = None

    @property
    def blocked(self) -> bool:
        return self.outcome is BudgetOutcome.BLOCK

    @property
    def warned(self) -> bool:
        return self.outcome is BudgetOutcome.ADMIT_WITH_WARNING


class BudgetGate:
    """Pure decision function over a ledger and the configured limit.

    ``pre_call`` runs before the provider is invoked and is the only check
    that can stop spending. ``post_call`` runs on the total after the call
    has been recorded and can only warn.
    """

    def __init__(self, limit: int, warn_threshold: float = 0.9) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if not 0 < warn_threshold <= 1:
            raise ValueError("warn_threshold must be in (0, 1]")
        self.limit = int(limit)
        self.warn_threshold = float(warn_threshold)

    @property
    def warn_percent(self) -> int:
        return round(self.warn_threshold * 100)

    def pre_call(self, ledger: UsageLedger) -> BudgetDecision:
        # a fresh ledger (empty month) is never blocked
        if ledger.month and ledger.total_tokens >= self.limit:
            return BudgetDecision(BudgetOutcome.BLOCK, ledger.total_tokens, self.limit, LIMIT_BLOCKED_NOTICE)
        return BudgetDecision(BudgetOutcome.ADMIT, ledger.total_tokens, self.limit)

    def post_call(self, new_total: int) -> BudgetDecision:
        if new_total >= self.limit:
            return BudgetDecision(BudgetOutcome.ADMIT_WITH_WARNING, new_total, self.limit, LIMIT_REACHED_NOTICE)
        if new_total >= self.limit * self.warn_threshold:
            notice = (
                f"⚠️ Warning: You have used more than {self.warn_percent}% "
                "of your monthly token budget."
            )
            return BudgetDecision(BudgetOutcome.ADMIT_WITH_WARNING, new_total, self.limit, notice)
        return BudgetDecision(BudgetOutcome.ADMIT, new_total, self.limit)

    def evaluate(self, ledger: UsageLedger, *, after_call: bool = False) -> BudgetDecision:
        if after_call:
            return self.post_call(ledger.total_tokens)
        return self.pre_call(ledger)


def evaluate(ledger: UsageLedger, limit: int, warn_threshold: float = 0.9) -> BudgetDecision:
    """Pre-call decision for ``ledger`` under ``limit``."""
    return BudgetGate(limit, warn_threshold).pre_call(ledger)
