import pytest

from planner_server.planning.allocation import build_snapshot
from planner_server.planning.models import Holding
from planner_server.planning.rebalance import plan_buy_sell, plan_new_holdings, suggest_new_holding_entry


def _holding(code: str, value: float, target: float, units: float = 1.0) -> Holding:
    return Holding(
        holding_id=code,
        portfolio_id="P1",
        instrument_code=code,
        units=units,
        current_value=value,
        target_allocation_pct=target,
    )


def test_two_holding_scenario_buys_and_sells_twenty_thousand() -> None:
    snapshot = build_snapshot([_holding("A", 50000.0, 70), _holding("B", 50000.0, 30)])
    plan = plan_buy_sell(snapshot, threshold=0.05)
    trades = {s.instrument_code: (s.action, s.amount) for s in plan.suggestions}
    assert trades["A"] == ("buy", pytest.approx(20000.0))
    assert trades["B"] == ("sell", pytest.approx(-20000.0))
    assert plan.total_buy == pytest.approx(20000.0)
    assert plan.total_sell == pytest.approx(20000.0)


def test_trades_below_noise_floor_are_suppressed() -> None:
    snapshot = build_snapshot([_holding("A", 50200.0, 50), _holding("B", 49800.0, 50)])
    plan = plan_buy_sell(snapshot, threshold=0.001)
    assert plan.suggestions == ()
    assert plan_buy_sell(snapshot, threshold=0.001, noise_floor=100.0).suggestions != ()


def test_exit_and_planned_holdings() -> None:
    snapshot = build_snapshot(
        [
            _holding("A", 50000.0, 50),
            _holding("B", 40000.0, 40),
            _holding("OLD", 10000.0, 0),
            _holding("NEW", 0.0, 10, units=0),
        ]
    )
    trades = {s.instrument_code: s for s in plan_buy_sell(snapshot).suggestions}
    assert set(trades) == {"OLD", "NEW"}
    assert trades["OLD"].action == "exit"
    assert trades["OLD"].amount == pytest.approx(-10000.0)
    assert trades["NEW"].action == "buy"
    assert trades["NEW"].amount == pytest.approx(10000.0)


def test_balanced_portfolio_needs_no_trades() -> None:
    snapshot = build_snapshot([_holding("A", 52000.0, 50), _holding("B", 48000.0, 50)])
    assert plan_buy_sell(snapshot).suggestions == ()


def test_new_holding_entry_amounts() -> None:
    snapshot = build_snapshot([_holding("A", 80000.0, 80), _holding("NEW", 0.0, 20, units=0)])
    entries = plan_new_holdings(snapshot, sip_budget=10000.0)
    assert len(entries) == 1
    assert entries[0].instrument_code == "NEW"
    assert entries[0].suggested_lumpsum == pytest.approx(20000.0)
    assert entries[0].suggested_sip == pytest.approx(2000.0)


def test_held_instrument_gets_no_entry_suggestion() -> None:
    snapshot = build_snapshot([_holding("A", 80000.0, 100)])
    assert suggest_new_holding_entry(snapshot.entries[0], snapshot.total_value) is None


def test_planned_holding_within_threshold_is_not_bought() -> None:
    snapshot = build_snapshot(
        [_holding("A", 50000.0, 52), _holding("B", 50000.0, 45), _holding("NEW", 0.0, 3, units=0)]
    )
    plan = plan_buy_sell(snapshot, threshold=0.05)
    assert "NEW" not in {s.instrument_code for s in plan.suggestions}
    wider = plan_buy_sell(snapshot, threshold=0.02)
    assert {s.instrument_code: s.action for s in wider.suggestions}["NEW"] == "buy"
