"""Content-addressed keys for holdings snapshots.

Every engine computation is a pure function of its inputs (holdings, policy,
scenario, cash-flow events and the report options), so a stable hash of those
inputs is a valid cache key for callers that want to skip recomputation.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Mapping

from lp_engine.models import CashFlowEvent, Holding, PolicyConfig


def _canonical(item: Any) -> str:
    return json.dumps(item, sort_keys=True, default=str)


def snapshot_hash(
    holdings: Iterable[Holding],
    policy: PolicyConfig | None = None,
    scenario_id: str | None = None,
    events: Iterable[CashFlowEvent] | None = None,
    context: Mapping[str, Any] | None = None,
) -> str:
    """Compute a stable hash of a holdings snapshot and everything derived from it.

    Holdings are sorted by id and events by their serialised form, so input
    order does not change the key.

    Args:
        holdings: Holdings snapshot
        policy: Policy in force (None hashes as "defaults not resolved")
        scenario_id: Optional scenario identifier
        events: Optional dated cash-flow events
        context: Optional JSON-serialisable options that also shape the
            result (custom scenarios, targets, VaR method, as_of date...)

    Returns:
        Hex string hash (16 characters)
    """
    holding_items = sorted(
        (holding.model_dump(mode="json") for holding in holdings),
        key=lambda item: item["id"],
    )
    event_items = sorted(
        (event.model_dump(mode="json") for event in events or ()),
        key=_canonical,
    )

    payload: dict[str, Any] = {
        "holdings": holding_items,
        "policy": policy.model_dump(mode="json") if policy is not None else None,
        "scenario_id": scenario_id,
        "events": event_items,
        "context": dict(context) if context is not None else None,
    }

    # Create stable string representation
    payload_str = _canonical(payload)

    return hashlib.sha256(payload_str.encode()).hexdigest()[:16]
