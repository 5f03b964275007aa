"""Durable JSON document holding the campaign state."""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from ..errors import StorageError
from .merge import CampaignState

DEFAULT_CAMPAIGN_STATE: CampaignState = {
    "party": {},
    "economy": {"party_gold": 0, "debts": {}},
    "factions": {},
    "log": [],
}


def _reject_constant(token: str) -> Any:
    raise json.JSONDecodeError(f"non-standard JSON constant {token}", token, 0)


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write ``payload`` as indented JSON via a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False, allow_nan=False)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class StateStore:
    """Read/write access to the single campaign state document."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> CampaignState:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"cannot read state at {self.path}: {exc}") from exc
        try:
            state = json.loads(raw, parse_constant=_reject_constant)
        except (json.JSONDecodeError, RecursionError) as exc:
            raise StorageError(f"state at {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(state, dict):
            raise StorageError(f"state at {self.path} must be a JSON object")
        return state

    def write(self, state: CampaignState) -> None:
        try:
            write_json_atomic(self.path, state)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"cannot write state at {self.path}: {exc}") from exc

    def initialize(self, seed: CampaignState | None = None, *, force: bool = False) -> bool:
        """Write the seed document unless a state already exists.

        Returns True when a document was written.
        """
        if self.exists() and not force:
            return False
        self.write(copy.deepcopy(seed if seed is not None else DEFAULT_CAMPAIGN_STATE))
        return True
