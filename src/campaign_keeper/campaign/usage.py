"""Monthly token usage ledger."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from ..errors import StorageError
from .logger import EventLogger
from .store import write_json_atomic


def month_key(now: datetime) -> str:
    """Calendar month as ``"<year>-<month>"`` with no zero padding."""
    return f"{now.year}-{now.month}"


@dataclass
class UsageLedger:
    month: str = ""
    total_tokens: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"month": self.month, "total_tokens": self.total_tokens}

    @classmethod
    def from_dict(cls, data: Any) -> "UsageLedger":
        if not isinstance(data, dict):
            return cls()
        month = data.get("month")
        total = data.get("total_tokens")
        if not isinstance(month, str):
            month = ""
        if isinstance(total, bool) or not isinstance(total, (int, float)) or not math.isfinite(total) or total < 0:
            total = 0
        return cls(month=month, total_tokens=int(total))


class UsageLedgerStore:
    """Owns the usage document; the single source of monthly token totals."""

    def __init__(
        self,
        path: str | Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.path = Path(path)
        self.clock = clock
        self.event_logger = event_logger

    def current_month(self) -> str:
        return month_key(self.clock())

    def read(self) -> UsageLedger:
        """Load the ledger. Missing or corrupt data reads as a fresh ledger."""
        if not self.path.exists():
            return UsageLedger()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            self._log_recovery(f"{type(exc).__name__}: {exc}")
            return UsageLedger()
        if not isinstance(data, dict):
            self._log_recovery("usage document is not a JSON object")
            return UsageLedger()
        return UsageLedger.from_dict(data)

    def write(self, ledger: UsageLedger) -> None:
        try:
            write_json_atomic(self.path, ledger.to_dict())
        except OSError as exc:
            raise StorageError(f"cannot write usage at {self.path}: {exc}") from exc

    def current(self) -> UsageLedger:
        """Ledger as it applies to this month; a stale month reads as zero."""
        ledger = self.read()
        month = self.current_month()
        if ledger.month != month:
            return UsageLedger(month=month, total_tokens=0)
        return ledger

    def record_usage(self, token_count: int) -> int:
        if token_count < 0:
            raise ValueError("token_count must be >= 0")
        ledger = self.read()
        month = self.current_month()
        if ledger.month != month:
            ledger = UsageLedger(month=month, total_tokens=0)
        ledger.total_tokens += int(token_count)
        self.write(ledger)
        return ledger.total_tokens

    def _log_recovery(self, reason: str) -> None:
        if self.event_logger is None:
            return
        self.event_logger.log(
            "usage_ledger_recovered",
            {"path": str(self.path), "reason": reason},
        )
