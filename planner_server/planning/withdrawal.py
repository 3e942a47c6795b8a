"""Goal withdrawal planning."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable

from planner_server.planning.models import (
    GoalPortfolioMapping,
    Holding,
    PortfolioWithdrawal,
    WithdrawalLine,
    WithdrawalPlan,
)
from planner_server.planning.validation import ensure_valid_holdings, ensure_valid_mappings


def _withdrawal_line(holding: Holding, portfolio_value: float, linked_value: float) -> WithdrawalLine:
    share = holding.current_value / portfolio_value if portfolio_value > 0 else 0.0
    withdraw_value = linked_value * share
    units = withdraw_value / holding.current_price if holding.current_price > 0 else 0.0
    units = min(units, holding.units)
    return WithdrawalLine(
        instrument_code=holding.instrument_code,
        withdraw_units=units,
        withdraw_value=withdraw_value,
        taxable_gain=withdraw_value - units * holding.average_cost_price,
        available_units=holding.units,
        current_price=holding.current_price,
        name=holding.name,
    )


def build_withdrawal_plan(
    goal_id: str,
    mappings: Iterable[GoalPortfolioMapping],
    holdings: Iterable[Holding],
    target_amount: float | None = None,
) -> WithdrawalPlan | None:
    """Redeem each linked portfolio's share of a goal proportionally across its holdings.

    Returns ``None`` when the goal has no linked portfolios. Portfolios with
    nothing held are skipped. The taxable gain is a simple estimate against
    the average cost of the units redeemed.
    """
    own = [m for m in mappings if m.goal_id == goal_id]
    if not own:
        return None
    ensure_valid_mappings(own)
    held = list(holdings)
    ensure_valid_holdings(held)

    by_portfolio: dict[str, list[Holding]] = defaultdict(list)
    for holding in held:
        if holding.units > 0:
            by_portfolio[holding.portfolio_id].append(holding)

    portfolios: list[PortfolioWithdrawal] = []
    for mapping in own:
        members = by_portfolio.get(mapping.entity_id)
        if not members:
            continue
        portfolio_value = math.fsum(h.current_value for h in members)
        linked_value = portfolio_value * mapping.allocation_pct / 100.0
        lines = [_withdrawal_line(h, portfolio_value, linked_value) for h in members]
        portfolios.append(
            PortfolioWithdrawal(
                portfolio_id=mapping.entity_id,
                allocation_pct=mapping.allocation_pct,
                portfolio_value=portfolio_value,
                linked_value=linked_value,
                lines=tuple(line for line in lines if line.withdraw_value > 0),
            )
        )

    total_linked = math.fsum(p.linked_value for p in portfolios)
    total_gain = math.fsum(line.taxable_gain for p in portfolios for line in p.lines)
    coverage = None
    if target_amount is not None and target_amount > 0:
        coverage = total_linked / target_amount * 100.0
    return WithdrawalPlan(
        goal_id=goal_id,
        portfolios=tuple(portfolios),
        total_linked=total_linked,
        total_taxable_gain=total_gain,
        coverage_pct=coverage,
    )
