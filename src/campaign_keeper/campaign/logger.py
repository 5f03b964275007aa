"""JSONL event logging for campaign turns."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class EventLogger:
    """Append-only JSONL logger shared by the stores and the orchestrator.

    The file persists across restarts; ``sequence`` continues from the number
    of lines already written.
    """

    def __init__(self, *, logs_dir: str | Path, event_file_name: str = "events.jsonl") -> None:
        self.logs_dir = Path(logs_dir)
        self.output_path = self.logs_dir / event_file_name
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.sequence = self._count_existing()

    def _count_existing(self) -> int:
        if not self.output_path.exists():
            return 0
        with self.output_path.open("r", encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def log(self, event_type: str, data: dict[str, Any]) -> None:
        self.sequence += 1
        payload = {
            "timestamp": self._timestamp(),
            "sequence": self.sequence,
            "event_type": event_type,
            **data,
        }
        with self.output_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=True, default=str) + "\n")

    def read_recent(self, n: int = 50) -> list[dict[str, Any]]:
        if n <= 0:
            return []
        if not self.output_path.exists():
            return []
        lines = self.output_path.read_text(encoding="utf-8").splitlines()
        result: list[dict[str, Any]] = []
        for raw in lines[-n:]:
            try:
                result.append(json.loads(raw))
            except json.JSONDecodeError:
                continue
        return result
