"""Deep merge of model-authored deltas into campaign state.

Rules, applied per key of the delta only:

* sequences replace the target value wholesale (a log is authored in full),
* mappings merge recursively; a missing or non-mapping target becomes ``{}``,
* everything else, ``None`` included, overwrites.

The merge never raises. Malformed but well-typed JSON degrades through the
coercion rule above.
"""

from __future__ import annotations

from typing import Any, Mapping, Union

JSONValue = Union[dict[str, Any], list[Any], str, int, float, bool, None]
CampaignState = dict[str, JSONValue]
Delta = Mapping[str, JSONValue]

SUMMARY_REGIONS: tuple[str, ...] = ("party", "economy")


def merge(target: CampaignState, delta: Any) -> CampaignState:
    """Merge ``delta`` into ``target`` in place and return ``target``."""
    if not isinstance(delta, Mapping):
        return target

    for key, value in delta.items():
        if isinstance(value, (list, tuple)):
            target[key] = list(value)
        elif isinstance(value, Mapping):
            current = target.get(key)
            if not isinstance(current, dict):
                current = {}
                target[key] = current
            merge(current, value)
        else:
            target[key] = value
    return target


def apply_delta(state: CampaignState, delta: Any) -> CampaignState:
    if not delta:
        return state
    return merge(state, delta)


def state_summary(state: Mapping[str, Any]) -> dict[str, Any]:
    """Caller-facing view of the state: party and economy only."""
    return {region: state.get(region) for region in SUMMARY_REGIONS}
