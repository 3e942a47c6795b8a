import pytest

from planner_server.planning.allocation import build_snapshot, count_drifted, detect_drift
from planner_server.planning.models import DriftStatus, Holding
from planner_server.planning.validation import RecordContractError


def _holding(code: str, units: float, value: float, target: float) -> Holding:
    return Holding(
        holding_id=code,
        portfolio_id="P1",
        instrument_code=code,
        units=units,
        current_value=value,
        target_allocation_pct=target,
    )


def test_snapshot_percentages_cover_held_value_only() -> None:
    snapshot = build_snapshot(
        [
            _holding("A", 10, 60000.0, 50),
            _holding("B", 5, 40000.0, 30),
            _holding("NEW", 0, 0.0, 20),
        ]
    )
    assert snapshot.total_value == pytest.approx(100000.0)
    pcts = {e.instrument_code: e.current_pct for e in snapshot.entries}
    assert pcts == {"A": pytest.approx(60.0), "B": pytest.approx(40.0), "NEW": 0.0}


def test_snapshot_of_empty_portfolio_is_zero() -> None:
    snapshot = build_snapshot([_holding("NEW", 0, 0.0, 100)])
    assert snapshot.total_value == 0.0
    assert snapshot.entries[0].current_pct == 0.0


def test_drift_statuses() -> None:
    snapshot = build_snapshot(
        [
            _holding("UNDER", 1, 40000.0, 55),
            _holding("OVER", 1, 30000.0, 20),
            _holding("OK", 1, 26000.0, 25),
            _holding("EXIT", 1, 4000.0, 0),
            _holding("PLAN", 0, 0.0, 10),
            _holding("GONE", 0, 0.0, 0),
        ]
    )
    drifts = {d.instrument_code: d for d in detect_drift(snapshot, 0.05)}
    assert set(drifts) == {"UNDER", "OVER", "OK", "EXIT", "PLAN"}
    assert drifts["UNDER"].status is DriftStatus.UNDERWEIGHT
    assert drifts["UNDER"].drift == pytest.approx(15.0)
    assert drifts["OVER"].status is DriftStatus.OVERWEIGHT
    assert drifts["OK"].status is DriftStatus.BALANCED
    assert drifts["EXIT"].status is DriftStatus.EXIT
    assert drifts["PLAN"].status is DriftStatus.PLANNED
    assert drifts["PLAN"].drift == pytest.approx(10.0)
    assert count_drifted(drifts.values()) == 3


def test_small_drift_is_balanced() -> None:
    snapshot = build_snapshot([_holding("A", 1, 53000.0, 50), _holding("B", 1, 47000.0, 50)])
    assert all(d.status is DriftStatus.BALANCED for d in detect_drift(snapshot, 0.05))


@pytest.mark.parametrize("threshold", [0, -0.05])
def test_non_positive_threshold_is_rejected(threshold: float) -> None:
    snapshot = build_snapshot([_holding("A", 1, 100.0, 100)])
    with pytest.raises(RecordContractError) as error:
        detect_drift(snapshot, threshold)
    assert error.value.issues[0].code == "invalid_threshold"


def test_negative_units_are_rejected() -> None:
    with pytest.raises(RecordContractError) as error:
        build_snapshot([_holding("A", -1, 100.0, 100)])
    assert [issue.code for issue in error.value.issues] == ["negative_units"]
