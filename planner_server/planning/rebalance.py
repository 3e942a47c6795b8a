"""SIP, lumpsum and buy/sell rebalancing planners."""

from __future__ import annotations

import math
from typing import Sequence

from planner_server.planning.allocation import DEFAULT_REBALANCE_THRESHOLD, detect_drift
from planner_server.planning.models import (
    AllocationSnapshot,
    BuySellPlan,
    DriftStatus,
    HoldingAllocation,
    HoldingDrift,
    LumpsumLine,
    LumpsumPlan,
    LumpsumSource,
    NewHoldingEntry,
    RebalanceSuggestion,
    SipPlan,
)

LUMPSUM_PRECEDENCE: tuple[LumpsumSource, ...] = ("explicit", "budget", "suggested")
DEFAULT_NOISE_FLOOR = 500.0
DEFAULT_ROUNDING_STEP = 100.0
DEFAULT_SIP_CHANGE_TOLERANCE = 10.0
_EPSILON = 1e-9


def _held_value(entry: HoldingAllocation) -> float:
    return entry.current_value if entry.holding.units > 0 else 0.0


def _target_value(entry: HoldingAllocation, total: float) -> float:
    return entry.target_pct / 100.0 * total


def _needs_buying(drift: HoldingDrift, threshold: float) -> bool:
    if drift.status is DriftStatus.PLANNED:
        return drift.drift > threshold * 100.0
    return drift.status is DriftStatus.UNDERWEIGHT


# --- SIP ---------------------------------------------------------------------


def plan_sip(
    snapshot: AllocationSnapshot,
    sip_budget: float,
    threshold: float = DEFAULT_REBALANCE_THRESHOLD,
    change_tolerance: float = DEFAULT_SIP_CHANGE_TOLERANCE,
) -> SipPlan | None:
    """Redirect the monthly SIP budget from overweight to underweight holdings.

    Balanced holdings keep their normal ``target% x budget`` share. Drifted
    overweight holdings are paused. The rest of the budget goes to drifted
    underweight (and planned) holdings in proportion to their value gap, or
    at their normal share when no gap exists. Whatever is still unassigned
    (targets summing below 100, or nothing underweight to absorb it) is
    spread over the receiving holdings by target weight, so the suggestions
    always add up to the full budget.

    Returns ``None`` when no SIP budget is set.
    """
    if sip_budget <= 0:
        return None
    drifts = detect_drift(snapshot, threshold)
    total = snapshot.total_value
    funded = [d for d in drifts if d.entry.target_pct > 0]

    gaps = [_target_value(d.entry, total) - _held_value(d.entry) for d in funded]
    normals = [d.entry.target_pct / 100.0 * sip_budget for d in funded]
    redirected = [d.status is not DriftStatus.BALANCED for d in funded]
    receiving = [
        r and (gap > 0 or d.status is DriftStatus.PLANNED) for d, r, gap in zip(funded, redirected, gaps)
    ]

    balanced_total = math.fsum(n for n, r in zip(normals, redirected) if not r)
    pool = max(0.0, sip_budget - balanced_total)
    total_gap = math.fsum(max(0.0, gap) for gap, rec in zip(gaps, receiving) if rec)

    amounts: list[float] = []
    for idx in range(len(funded)):
        if not redirected[idx]:
            amounts.append(normals[idx])
        elif not receiving[idx]:
            amounts.append(0.0)
        elif total_gap > 0:
            amounts.append(max(0.0, gaps[idx]) / total_gap * pool)
        else:
            amounts.append(normals[idx])

    amounts = _preserve_budget(amounts, [d.entry.target_pct for d in funded], sip_budget)

    suggestions: list[RebalanceSuggestion] = []
    for drift, amount, normal in zip(funded, amounts, normals):
        suggestions.append(
            RebalanceSuggestion(
                instrument_code=drift.instrument_code,
                action="buy" if amount > 0 else "hold",
                amount=amount,
                current_pct=drift.entry.current_pct,
                target_pct=drift.entry.target_pct,
                status=drift.status,
                normal_amount=normal,
            )
        )
    for drift in drifts:
        if drift.status is DriftStatus.EXIT:
            suggestions.append(
                RebalanceSuggestion(
                    instrument_code=drift.instrument_code,
                    action="exit",
                    amount=0.0,
                    current_pct=drift.entry.current_pct,
                    target_pct=0.0,
                    status=drift.status,
                    normal_amount=0.0,
                )
            )

    has_changes = any(
        s.normal_amount is not None and abs(s.amount - s.normal_amount) > change_tolerance for s in suggestions
    )
    return SipPlan(sip_budget=sip_budget, suggestions=tuple(suggestions), has_changes=has_changes)


def _preserve_budget(amounts: list[float], targets: list[float], budget: float) -> list[float]:
    if not amounts:
        return amounts
    assigned = math.fsum(amounts)
    if assigned > budget + _EPSILON:
        scale = budget / assigned
        return [a * scale for a in amounts]
    residual = budget - assigned
    if residual <= _EPSILON:
        return amounts
    receivers = [idx for idx, a in enumerate(amounts) if a > 0] or list(range(len(amounts)))
    weight = math.fsum(targets[idx] for idx in receivers)
    adjusted = list(amounts)
    for idx in receivers:
        adjusted[idx] += residual * (targets[idx] / weight if weight > 0 else 1.0 / len(receivers))
    return adjusted


# --- Lumpsum -----------------------------------------------------------------


def suggest_lumpsum(snapshot: AllocationSnapshot, rounding_step: float = DEFAULT_ROUNDING_STEP) -> float:
    """Smallest fresh investment that lifts every underweight holding to target.

    Solves ``sum(cv_i + invest_i) = pUnder% x (total + amount)`` over the
    holdings currently below their target value, funded by the new money
    alone. Returns 0 when nothing is underweight or when the underweight
    targets claim 100% or more (buying alone can never get there).
    """
    total = snapshot.total_value
    under = [
        e for e in snapshot.entries if e.target_pct > 0 and _held_value(e) < _target_value(e, total)
    ]
    if not under:
        return 0.0
    p_under = math.fsum(e.target_pct for e in under) / 100.0
    if p_under >= 1.0:
        return 0.0
    cv_under = math.fsum(_held_value(e) for e in under)
    raw = (p_under * total - cv_under) / (1.0 - p_under)
    if raw <= 0:
        return 0.0
    if rounding_step <= 0:
        return raw
    return math.ceil(raw / rounding_step - _EPSILON) * rounding_step


def resolve_lumpsum_amount(
    explicit_amount: float | None,
    lumpsum_budget: float | None,
    suggested_amount: float,
    precedence: Sequence[LumpsumSource] = LUMPSUM_PRECEDENCE,
) -> tuple[float, LumpsumSource | None]:
    """Pick the lumpsum to distribute: the first positive source in ``precedence``."""
    candidates: dict[str, float | None] = {
        "explicit": explicit_amount,
        "budget": lumpsum_budget,
        "suggested": suggested_amount,
    }
    for source in precedence:
        if source not in candidates:
            raise ValueError(f"Unknown lumpsum source: {source}")
        value = candidates[source]
        if value is not None and value > 0:
            return float(value), source
    return 0.0, None


def plan_lumpsum(
    snapshot: AllocationSnapshot,
    amount: float | None = None,
    lumpsum_budget: float | None = None,
    threshold: float = DEFAULT_REBALANCE_THRESHOLD,
    precedence: Sequence[LumpsumSource] = LUMPSUM_PRECEDENCE,
    rounding_step: float = DEFAULT_ROUNDING_STEP,
) -> LumpsumPlan:
    suggested = suggest_lumpsum(snapshot, rounding_step)
    investable, source = resolve_lumpsum_amount(amount, lumpsum_budget, suggested, precedence)
    total = snapshot.total_value
    if investable <= 0:
        return LumpsumPlan(amount=0.0, source=None, suggested_amount=suggested, new_total=total)

    new_total = total + investable
    overweight = {d.entry for d in detect_drift(snapshot, threshold) if d.status is DriftStatus.OVERWEIGHT}
    candidates: list[tuple[HoldingAllocation, float]] = []
    for entry in snapshot.entries:
        if entry.target_pct <= 0 or entry in overweight:
            continue
        invest = max(0.0, _target_value(entry, new_total) - _held_value(entry))
        if invest > 0:
            candidates.append((entry, invest))

    naive_total = math.fsum(invest for _, invest in candidates)
    scaled = naive_total > investable
    if scaled:
        factor = investable / naive_total
        candidates = [(entry, invest * factor) for entry, invest in candidates]
        head = math.fsum(invest for _, invest in candidates[:-1])
        last_entry, _ = candidates[-1]
        candidates[-1] = (last_entry, investable - head)

    lines = tuple(
        LumpsumLine(
            instrument_code=entry.instrument_code,
            invest=invest,
            current_value=_held_value(entry),
            new_value=_held_value(entry) + invest,
            current_pct=entry.current_pct,
            new_pct=(_held_value(entry) + invest) / new_total * 100.0,
            target_pct=entry.target_pct,
        )
        for entry, invest in candidates
    )
    distributed = math.fsum(line.invest for line in lines)
    return LumpsumPlan(
        amount=investable,
        source=source,
        suggested_amount=suggested,
        new_total=new_total,
        lines=lines,
        scaled=scaled,
        unallocated=max(0.0, investable - distributed),
    )


# --- Buy / sell --------------------------------------------------------------


def plan_buy_sell(
    snapshot: AllocationSnapshot,
    threshold: float = DEFAULT_REBALANCE_THRESHOLD,
    noise_floor: float = DEFAULT_NOISE_FLOOR,
) -> BuySellPlan:
    """One-shot trades that put drifted holdings back on target at today's value."""
    total = snapshot.total_value
    suggestions: list[RebalanceSuggestion] = []
    for drift in detect_drift(snapshot, threshold):
        entry = drift.entry
        if drift.status is DriftStatus.EXIT:
            amount = -entry.current_value
        elif drift.is_drifted or _needs_buying(drift, threshold):
            amount = _target_value(entry, total) - _held_value(entry)
        else:
            continue
        if abs(amount) < noise_floor:
            continue
        if drift.status is DriftStatus.EXIT:
            action = "exit"
        else:
            action = "buy" if amount > 0 else "sell"
        suggestions.append(
            RebalanceSuggestion(
                instrument_code=entry.instrument_code,
                action=action,
                amount=amount,
                current_pct=entry.current_pct,
                target_pct=entry.target_pct,
                status=drift.status,
            )
        )
    return BuySellPlan(total_value=total, suggestions=tuple(suggestions))


# --- New holdings ------------------------------------------------------------


def suggest_new_holding_entry(
    entry: HoldingAllocation, portfolio_total: float, sip_budget: float = 0.0
) -> NewHoldingEntry | None:
    """Entry amounts for a planned holding (no units yet, target set)."""
    if not entry.holding.is_planned:
        return None
    target = entry.target_pct
    lumpsum = target / (100.0 - target) * portfolio_total if target < 100 and portfolio_total > 0 else 0.0
    sip = target / 100.0 * sip_budget if sip_budget > 0 else 0.0
    return NewHoldingEntry(
        instrument_code=entry.instrument_code,
        target_pct=target,
        suggested_lumpsum=lumpsum,
        suggested_sip=sip,
    )


def plan_new_holdings(snapshot: AllocationSnapshot, sip_budget: float = 0.0) -> list[NewHoldingEntry]:
    plans: list[NewHoldingEntry] = []
    for entry in snapshot.entries:
        planned = suggest_new_holding_entry(entry, snapshot.total_value, sip_budget)
        if planned is not None:
            plans.append(planned)
    return plans
