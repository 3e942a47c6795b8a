"""Buy opportunities from the distance to all-time-high prices."""

from __future__ import annotations

from planner_server.planning.models import AllocationSnapshot, BuyOpportunity

DEFAULT_MIN_BELOW_ATH_PCT = 1.0
TIERS = ((20.0, "deep"), (10.0, "strong"), (5.0, "mild"))


def below_ath_pct(current_price: float, ath_price: float | None) -> float:
    if not ath_price or ath_price <= 0:
        return 0.0
    return max(0.0, (ath_price - current_price) / ath_price * 100.0)


def discount_tier(pct: float) -> str:
    for floor, label in TIERS:
        if pct >= floor:
            return label
    return "slight"


def find_buy_opportunities(
    snapshot: AllocationSnapshot, min_below_ath_pct: float = DEFAULT_MIN_BELOW_ATH_PCT
) -> list[BuyOpportunity]:
    """Held instruments trading at least ``min_below_ath_pct`` under their ATH, deepest first."""
    found: list[BuyOpportunity] = []
    for entry in snapshot.entries:
        holding = entry.holding
        if holding.units <= 0 or holding.ath_price is None:
            continue
        pct = below_ath_pct(holding.current_price, holding.ath_price)
        if pct <= 0 or pct < min_below_ath_pct:
            continue
        found.append(
            BuyOpportunity(
                instrument_code=holding.instrument_code,
                portfolio_id=holding.portfolio_id,
                ath_price=holding.ath_price,
                current_price=holding.current_price,
                below_ath_pct=pct,
                tier=discount_tier(pct),
                current_pct=entry.current_pct,
                target_pct=entry.target_pct,
            )
        )
    return sorted(found, key=lambda item: item.below_ath_pct, reverse=True)
