"""Campaign state reconciliation package exports."""

from .budget import BudgetDecision, BudgetGate, BudgetOutcome
from .logger import EventLogger
from .merge import apply_delta, merge, state_summary
from .store import DEFAULT_CAMPAIGN_STATE, StateStore
from .turn import TurnOrchestrator, TurnResult
from .usage import UsageLedger, UsageLedgerStore, month_key

__all__ = [
    "BudgetDecision",
    "BudgetGate",
    "BudgetOutcome",
    "EventLogger",
    "apply_delta",
    "merge",
    "state_summary",
    "DEFAULT_CAMPAIGN_STATE",
    "StateStore",
    "TurnOrchestrator",
    "TurnResult",
    "UsageLedger",
    "UsageLedgerStore",
    "month_key",
]
