"""Allocation snapshot and drift classification."""

from __future__ import annotations

import math
from typing import Iterable

from planner_server.planning.models import (
    AllocationSnapshot,
    DriftStatus,
    Holding,
    HoldingAllocation,
    HoldingDrift,
    ValidationIssue,
)
from planner_server.planning.validation import RecordContractError, ensure_valid_holdings

DEFAULT_REBALANCE_THRESHOLD = 0.05


def _ensure_threshold(threshold: float) -> None:
    if not isinstance(threshold, (int, float)) or not math.isfinite(threshold) or threshold <= 0:
        raise RecordContractError(
            [
                ValidationIssue(
                    field="rebalance_threshold",
                    code="invalid_threshold",
                    message=f"Rebalance threshold must be a positive fraction, received {threshold!r}.",
                )
            ]
        )


def build_snapshot(holdings: Iterable[Holding]) -> AllocationSnapshot:
    """Annotate holdings with their share of the held portfolio value (0-100)."""
    items = list(holdings)
    ensure_valid_holdings(items)
    total = math.fsum(h.current_value for h in items if h.units > 0)
    entries = tuple(
        HoldingAllocation(
            holding=h,
            current_pct=(h.current_value / total) * 100.0 if total > 0 and h.units > 0 else 0.0,
        )
        for h in items
    )
    return AllocationSnapshot(total_value=total, entries=entries)


def classify_entry(entry: HoldingAllocation, threshold: float) -> HoldingDrift | None:
    holding = entry.holding
    target = holding.target_allocation_pct
    if holding.units <= 0:
        if target > 0:
            return HoldingDrift(entry=entry, drift=target, status=DriftStatus.PLANNED)
        return None
    drift = abs(entry.current_pct - target)
    if target == 0:
        status = DriftStatus.EXIT
    elif drift > threshold * 100.0:
        status = DriftStatus.OVERWEIGHT if entry.current_pct > target else DriftStatus.UNDERWEIGHT
    else:
        status = DriftStatus.BALANCED
    return HoldingDrift(entry=entry, drift=drift, status=status)


def detect_drift(snapshot: AllocationSnapshot, threshold: float = DEFAULT_REBALANCE_THRESHOLD) -> list[HoldingDrift]:
    """Classify every held or planned holding against its target.

    ``threshold`` is a fraction: 0.05 flags holdings more than 5 percentage
    points away from target. Holdings with neither units nor a target are
    left out.
    """
    _ensure_threshold(threshold)
    drifts: list[HoldingDrift] = []
    for entry in snapshot.entries:
        classified = classify_entry(entry, threshold)
        if classified is not None:
            drifts.append(classified)
    return drifts


def count_drifted(drifts: Iterable[HoldingDrift]) -> int:
    return sum(1 for d in drifts if d.is_drifted or d.status is DriftStatus.EXIT)
