"""Dungeon Master response contract: system prompt and output parsing."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from ..errors import MalformedOutputError

DM_PROTOCOL = """
You are an AI Dungeon Master and simulation engine for a persistent tabletop campaign.
You are NOT a generic chatbot. You run the world, adjudicate rules fairly, and advance the story.

You are given:
1) A JSON "state" object representing the current campaign world.
2) A "player_input" string describing what the player does or asks.

Your job:
- Interpret player_input using the context from state.
- Narrate what happens next (succinct but vivid).
- Decide NPC/enemy reactions, checks, and consequences.
- Update the campaign state via a "delta" object:
  - Only include fields that changed.
  - Use the same structure as "state" so it can be merged.
  - Do NOT output the whole state, only changes.

You MUST respond ONLY in strict JSON with two top-level keys:
  {
    "dm_output": "<your narration and mechanical results as plain text>",
    "delta": { ... only changed fields ... }
  }

- No backticks, markdown fences, comments, or text outside the JSON.
- dm_output is what the player sees: description, dice results, clear mechanical outcomes.
- delta should be minimal and machine-mergeable.
- Setting a field to null clears it.

Examples of delta usage:
- Party gold: "economy": { "party_gold": 150 }
- Faction attitude: "factions": { "RedKnives": { "attitude": "More Hostile" } }
- The log is saved as the full array you send:
  "log": ["Older entries (optionally trimmed)...", "Short summary of what just happened."]
""".strip()

# merge and the state writer recurse per level
MAX_DELTA_DEPTH = 64

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass
class DMOutput:
    narration: str
    delta: dict[str, Any] = field(default_factory=dict)


def build_messages(state: dict[str, Any], player_input: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": DM_PROTOCOL},
        {
            "role": "user",
            "content": json.dumps({"state": state, "player_input": player_input}, ensure_ascii=False),
        },
    ]


def _strip_fence(content: str) -> str:
    text = content.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def _reject_constant(token: str) -> Any:
    raise json.JSONDecodeError(f"non-standard JSON constant {token}", token, 0)


def _nesting_depth(value: Any) -> int:
    depth = 0
    stack = [(value, 1)]
    while stack:
        node, level = stack.pop()
        if isinstance(node, dict):
            depth = max(depth, level)
            stack.extend((child, level + 1) for child in node.values())
        elif isinstance(node, list):
            depth = max(depth, level)
            stack.extend((child, level + 1) for child in node)
    return depth


def parse_dm_output(content: str | None) -> DMOutput:
    """Parse the model's reply into narration and delta.

    Raises MalformedOutputError for anything other than a JSON object with an
    optional string ``dm_output`` and an optional object ``delta``.
    """
    if not isinstance(content, str) or not content.strip():
        raise MalformedOutputError("model returned empty content", raw=content)
    try:
        parsed = json.loads(_strip_fence(content), parse_constant=_reject_constant)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise MalformedOutputError(f"model returned invalid JSON: {exc}", raw=content) from exc
    if not isinstance(parsed, dict):
        raise MalformedOutputError("model output must be a JSON object", raw=content)

    narration = parsed.get("dm_output")
    if narration is None:
        narration = ""
    if not isinstance(narration, str):
        raise MalformedOutputError("dm_output must be a string", raw=content)

    delta = parsed.get("delta")
    if delta is None:
        delta = {}
    if not isinstance(delta, dict):
        raise MalformedOutputError("delta must be a JSON object", raw=content)
    if _nesting_depth(delta) > MAX_DELTA_DEPTH:
        raise MalformedOutputError(f"delta nests deeper than {MAX_DELTA_DEPTH} levels", raw=content)

    return DMOutput(narration=narration, delta=delta)
