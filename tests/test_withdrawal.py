import pytest

from planner_server.planning.models import GoalPortfolioMapping, Holding
from planner_server.planning.withdrawal import build_withdrawal_plan


def _holding(code: str, portfolio: str, units: float, price: float, avg_cost: float) -> Holding:
    return Holding(
        holding_id=code,
        portfolio_id=portfolio,
        instrument_code=code,
        units=units,
        current_value=units * price,
        target_allocation_pct=50,
        current_price=price,
        average_cost_price=avg_cost,
    )


def test_withdrawal_is_proportional_to_holding_value() -> None:
    plan = build_withdrawal_plan(
        "G1",
        [GoalPortfolioMapping("G1", "P1", 50)],
        [_holding("X", "P1", 600, 100.0, 80.0), _holding("Y", "P1", 800, 50.0, 60.0)],
        target_amount=100000.0,
    )
    assert plan is not None
    assert plan.total_linked == pytest.approx(50000.0)
    lines = {line.instrument_code: line for line in plan.portfolios[0].lines}
    assert lines["X"].withdraw_value == pytest.approx(30000.0)
    assert lines["X"].withdraw_units == pytest.approx(300.0)
    assert lines["X"].taxable_gain == pytest.approx(6000.0)
    assert lines["Y"].withdraw_units == pytest.approx(400.0)
    assert lines["Y"].taxable_gain == pytest.approx(-4000.0)
    assert plan.total_taxable_gain == pytest.approx(2000.0)
    assert plan.coverage_pct == pytest.approx(50.0)


def test_withdrawal_units_are_clamped_to_units_held() -> None:
    stale = Holding(
        holding_id="Z",
        portfolio_id="P1",
        instrument_code="Z",
        units=50,
        current_value=10000.0,
        target_allocation_pct=100,
        current_price=100.0,
        average_cost_price=40.0,
    )
    plan = build_withdrawal_plan("G1", [GoalPortfolioMapping("G1", "P1", 100)], [stale])
    line = plan.portfolios[0].lines[0]
    assert line.withdraw_units == 50
    assert line.taxable_gain == pytest.approx(10000.0 - 50 * 40.0)


def test_goal_without_links_has_no_plan() -> None:
    assert build_withdrawal_plan("G1", [GoalPortfolioMapping("G2", "P1", 100)], []) is None


def test_portfolios_without_holdings_are_skipped() -> None:
    plan = build_withdrawal_plan(
        "G1",
        [GoalPortfolioMapping("G1", "P1", 40), GoalPortfolioMapping("G1", "EMPTY", 100)],
        [_holding("X", "P1", 100, 100.0, 90.0), _holding("SOLD", "EMPTY", 0, 10.0, 5.0)],
    )
    assert [p.portfolio_id for p in plan.portfolios] == ["P1"]
    assert plan.total_linked == pytest.approx(4000.0)
    assert plan.coverage_pct is None
