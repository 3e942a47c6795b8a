from datetime import date

import pandas as pd
import pytest

from planner_server.planning.allocation import build_snapshot, detect_drift
from planner_server.planning.records import (
    goal_from_record,
    holding_from_record,
    holdings_from_frame,
    holdings_from_records,
    mappings_from_frame,
    portfolio_settings_from_record,
    snapshot_to_frame,
)
from planner_server.planning.validation import RecordContractError


def test_holding_from_record_parses_numbers() -> None:
    holding = holding_from_record(
        {
            "holdingId": "H1",
            "portfolioId": "P1",
            "instrumentCode": "120503",
            "units": "12.5",
            "currentValue": "1,25,000",
            "targetAllocationPct": 40,
            "athPrice": "",
        }
    )
    assert holding.units == 12.5
    assert holding.current_value == 125000.0
    assert holding.target_allocation_pct == 40.0
    assert holding.ath_price is None
    assert holding.average_cost_price == 0.0


def test_bad_rows_are_reported_with_sheet_row_numbers() -> None:
    records = [
        {"portfolioId": "P1", "instrumentCode": "A", "units": 1, "currentValue": 10, "targetAllocationPct": 50},
        {"portfolioId": "P1", "instrumentCode": "B", "units": "lots", "currentValue": 10, "targetAllocationPct": 50},
        {"portfolioId": "", "instrumentCode": "C", "units": 1, "currentValue": 10, "targetAllocationPct": 0},
    ]
    with pytest.raises(RecordContractError) as error:
        holdings_from_records(records)
    assert [(issue.row, issue.code) for issue in error.value.issues] == [(3, "invalid_row"), (4, "invalid_row")]


def test_frame_without_required_column_is_rejected() -> None:
    frame = pd.DataFrame([{"portfolioId": "P1", "instrumentCode": "A", "units": 1}])
    with pytest.raises(RecordContractError) as error:
        holdings_from_frame(frame)
    assert {issue.field for issue in error.value.issues} == {"currentValue", "targetAllocationPct"}
    assert all(issue.code == "missing_column" for issue in error.value.issues)


def test_frame_blank_cells_become_defaults() -> None:
    frame = pd.DataFrame(
        [
            {"portfolioId": "P1", "instrumentCode": "A", "units": 2.0, "currentValue": 200.0, "targetAllocationPct": 60, "athPrice": 120.0},
            {"portfolioId": "P1", "instrumentCode": "B", "units": 1.0, "currentValue": 100.0, "targetAllocationPct": 40, "athPrice": None},
        ]
    )
    holdings = holdings_from_frame(frame)
    assert holdings[0].ath_price == 120.0
    assert holdings[1].ath_price is None


def test_mapping_sheet_fractions_become_percentages() -> None:
    frame = pd.DataFrame([{"goalId": "G1", "investableEntityId": "P1", "allocationPct": 0.25}])
    mappings = mappings_from_frame(frame)
    assert mappings[0].allocation_pct == pytest.approx(25.0)


def test_goal_rates_typed_as_percent() -> None:
    goal = goal_from_record(
        {
            "goalId": "G1",
            "goalType": "Retirement",
            "targetDate": "2046-01-01T00:00:00.000Z",
            "inflationRateFraction": 6,
            "cagrFraction": 12,
            "todaysCostOrMonthlyExpenses": 100000,
            "goalName": "Retire early",
        },
        rates_in_percent=True,
    )
    assert goal.target_date == date(2046, 1, 1)
    assert goal.inflation_rate == pytest.approx(0.06)
    assert goal.cagr == pytest.approx(0.12)
    assert goal.monthly_expenses == 100000.0
    assert goal.todays_cost == 0.0
    assert goal.name == "Retire early"


def test_generic_goal_reads_combined_cost_field() -> None:
    goal = goal_from_record(
        {"goalId": "G2", "goalType": "Car", "targetDate": None, "todaysCostOrMonthlyExpenses": 800000}
    )
    assert goal.todays_cost == 800000.0
    assert goal.target_date is None
    assert goal.emergency_months is None


def test_portfolio_settings_default_threshold() -> None:
    settings = portfolio_settings_from_record({"portfolioId": "P1", "monthlySipBudget": "15000"}, default_threshold=0.1)
    assert settings.rebalance_threshold == 0.1
    assert settings.monthly_sip_budget == 15000.0


def test_snapshot_to_frame() -> None:
    holdings = holdings_from_records(
        [
            {"portfolioId": "P1", "instrumentCode": "A", "units": 1, "currentValue": 50000, "targetAllocationPct": 70},
            {"portfolioId": "P1", "instrumentCode": "B", "units": 1, "currentValue": 50000, "targetAllocationPct": 30},
        ]
    )
    snapshot = build_snapshot(holdings)
    frame = snapshot_to_frame(snapshot, detect_drift(snapshot))
    assert frame["Instrument"].tolist() == ["A", "B"]
    assert frame["Status"].tolist() == ["underweight", "overweight"]
    assert frame["Current_Pct"].sum() == pytest.approx(100.0)


def test_snapshot_to_frame_keeps_repeated_instruments_apart() -> None:
    holdings = holdings_from_records(
        [
            {"portfolioId": "P1", "instrumentCode": "X", "units": 1, "currentValue": 90000, "targetAllocationPct": 50},
            {"portfolioId": "P1", "instrumentCode": "Y", "units": 1, "currentValue": 10000, "targetAllocationPct": 50},
            {"portfolioId": "P2", "instrumentCode": "X", "units": 1, "currentValue": 1000, "targetAllocationPct": 1},
        ]
    )
    snapshot = build_snapshot(holdings)
    frame = snapshot_to_frame(snapshot, detect_drift(snapshot))
    rows = {(row["Portfolio"], row["Instrument"]): row for row in frame.to_dict(orient="records")}
    assert rows[("P1", "X")]["Status"] == "overweight"
    assert rows[("P1", "X")]["Drift"] == pytest.approx(abs(90000 / 101000 * 100 - 50))
    assert rows[("P2", "X")]["Status"] == "balanced"
