import pytest

from planner_server.planning.allocation import build_snapshot
from planner_server.planning.models import Holding
from planner_server.planning.opportunities import below_ath_pct, discount_tier, find_buy_opportunities


def _holding(code: str, price: float, ath: float | None, units: float = 10.0) -> Holding:
    return Holding(
        holding_id=code,
        portfolio_id="P1",
        instrument_code=code,
        units=units,
        current_value=units * price,
        target_allocation_pct=25,
        current_price=price,
        ath_price=ath,
    )


def test_below_ath_pct() -> None:
    assert below_ath_pct(75.0, 100.0) == pytest.approx(25.0)
    assert below_ath_pct(120.0, 100.0) == 0.0
    assert below_ath_pct(50.0, None) == 0.0


@pytest.mark.parametrize(
    ("pct", "tier"), [(25.0, "deep"), (20.0, "deep"), (12.0, "strong"), (5.0, "mild"), (2.0, "slight")]
)
def test_discount_tier(pct: float, tier: str) -> None:
    assert discount_tier(pct) == tier


def test_opportunities_sorted_deepest_first() -> None:
    snapshot = build_snapshot(
        [
            _holding("A", 95.0, 100.0),
            _holding("B", 70.0, 100.0),
            _holding("C", 99.5, 100.0),
            _holding("D", 50.0, None),
            _holding("E", 80.0, 100.0, units=0),
        ]
    )
    found = find_buy_opportunities(snapshot)
    assert [item.instrument_code for item in found] == ["B", "A"]
    assert [item.tier for item in found] == ["deep", "mild"]
    assert find_buy_opportunities(snapshot, min_below_ath_pct=10.0)[0].instrument_code == "B"
