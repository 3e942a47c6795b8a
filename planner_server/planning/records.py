"""Conversion between record-store rows and planning models.

Rows arrive as dictionaries (or spreadsheet frames) using the data layer's
camelCase field names. Percent/fraction conversions happen here and nowhere
else: allocation claims are 0-100 inside the planner, rates are fractions.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Iterable, Mapping

import pandas as pd

from planner_server.planning.models import (
    EMERGENCY_FUND,
    RETIREMENT,
    AllocationSnapshot,
    Goal,
    GoalPortfolioMapping,
    Holding,
    HoldingDrift,
    PortfolioSettings,
    ValidationIssue,
)
from planner_server.planning.validation import RecordContractError

HOLDING_COLUMNS = ["portfolioId", "instrumentCode", "units", "currentValue", "targetAllocationPct"]
MAPPING_COLUMNS = ["goalId", "investableEntityId", "allocationPct"]
GOAL_COLUMNS = ["goalId", "goalType", "targetDate"]


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return isinstance(value, float) and math.isnan(value)


def _number(record: Mapping[str, Any], key: str, default: float | None = 0.0) -> float | None:
    value = record.get(key)
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        raise ValueError(f"{key} must be numeric, received {value!r}.")
    try:
        return float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError) as error:
        raise ValueError(f"{key} must be numeric, received {value!r}.") from error


def _text(record: Mapping[str, Any], key: str, default: str = "") -> str:
    value = record.get(key)
    return default if _is_blank(value) else str(value).strip()


def _required_text(record: Mapping[str, Any], key: str) -> str:
    value = _text(record, key)
    if not value:
        raise ValueError(f"{key} is required.")
    return value


def parse_date(value: object) -> date | None:
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    stamp = pd.to_datetime(str(value)[:10], errors="raise")
    if pd.isna(stamp):
        return None
    return stamp.date()


def holding_from_record(record: Mapping[str, Any]) -> Holding:
    code = _required_text(record, "instrumentCode")
    return Holding(
        holding_id=_text(record, "holdingId", code),
        portfolio_id=_required_text(record, "portfolioId"),
        instrument_code=code,
        name=_text(record, "name"),
        units=_number(record, "units"),
        current_price=_number(record, "currentPrice"),
        current_value=_number(record, "currentValue"),
        invested_amount=_number(record, "investedAmount"),
        average_cost_price=_number(record, "averageCostPrice"),
        target_allocation_pct=_number(record, "targetAllocationPct"),
        ath_price=_number(record, "athPrice", default=None),
    )


def portfolio_settings_from_record(record: Mapping[str, Any], default_threshold: float = 0.05) -> PortfolioSettings:
    return PortfolioSettings(
        portfolio_id=_required_text(record, "portfolioId"),
        owner_id=_text(record, "ownerId"),
        name=_text(record, "name"),
        rebalance_threshold=_number(record, "rebalanceThresholdFraction", default=default_threshold),
        monthly_sip_budget=_number(record, "monthlySipBudget"),
        lumpsum_budget=_number(record, "lumpsumBudget"),
    )


def goal_from_record(record: Mapping[str, Any], rates_in_percent: bool = False) -> Goal:
    """Build a goal; ``rates_in_percent`` accepts form-typed rates such as ``6`` for 6%."""
    goal_type = _required_text(record, "goalType")
    scale = 100.0 if rates_in_percent else 1.0
    combined = _number(record, "todaysCostOrMonthlyExpenses", default=None)
    expense_driven = goal_type in (RETIREMENT, EMERGENCY_FUND)
    monthly_expenses = _number(record, "monthlyExpenses", default=None)
    todays_cost = _number(record, "todaysCost", default=None)
    if combined is not None:
        if expense_driven and monthly_expenses is None:
            monthly_expenses = combined
        elif not expense_driven and todays_cost is None:
            todays_cost = combined
    months = _number(record, "emergencyMonths", default=None)
    return Goal(
        goal_id=_required_text(record, "goalId"),
        goal_type=goal_type,
        name=_text(record, "goalName"),
        owner_id=_text(record, "familyMemberId"),
        target_date=parse_date(record.get("targetDate")),
        inflation_rate=_number(record, "inflationRateFraction") / scale,
        cagr=_number(record, "cagrFraction") / scale,
        lumpsum_committed=_number(record, "lumpsumCommitted"),
        monthly_contribution=_number(record, "monthlyContribution"),
        todays_cost=todays_cost or 0.0,
        monthly_expenses=monthly_expenses or 0.0,
        emergency_months=int(months) if months else None,
    )


def mapping_from_record(record: Mapping[str, Any], stored_as_fraction: bool = False) -> GoalPortfolioMapping:
    """Build a mapping; the goal mapping sheet stores claims as 0-1 decimals."""
    pct = _number(record, "allocationPct")
    return GoalPortfolioMapping(
        goal_id=_required_text(record, "goalId"),
        entity_id=_required_text(record, "investableEntityId"),
        allocation_pct=pct * 100.0 if stored_as_fraction else pct,
    )


def _frame_records(frame: pd.DataFrame, required: list[str]) -> list[dict[str, Any]]:
    missing = [col for col in required if col not in frame.columns]
    if missing:
        raise RecordContractError(
            [
                ValidationIssue(field=col, code="missing_column", message=f"Required column is missing: {col}")
                for col in missing
            ]
        )
    cleaned = frame.astype(object).where(pd.notna(frame), None)
    return cleaned.to_dict(orient="records")


def _rows(records: Iterable[Mapping[str, Any]], build, **kwargs) -> list:
    items = []
    issues: list[ValidationIssue] = []
    for idx, record in enumerate(records):
        try:
            items.append(build(record, **kwargs))
        except ValueError as error:
            issues.append(ValidationIssue(field="row", row=idx + 2, code="invalid_row", message=str(error)))
    if issues:
        raise RecordContractError(issues)
    return items


def holdings_from_records(records: Iterable[Mapping[str, Any]]) -> list[Holding]:
    return _rows(records, holding_from_record)


def goals_from_records(records: Iterable[Mapping[str, Any]], rates_in_percent: bool = False) -> list[Goal]:
    return _rows(records, goal_from_record, rates_in_percent=rates_in_percent)


def mappings_from_records(
    records: Iterable[Mapping[str, Any]], stored_as_fraction: bool = False
) -> list[GoalPortfolioMapping]:
    return _rows(records, mapping_from_record, stored_as_fraction=stored_as_fraction)


def holdings_from_frame(frame: pd.DataFrame) -> list[Holding]:
    return holdings_from_records(_frame_records(frame, HOLDING_COLUMNS))


def goals_from_frame(frame: pd.DataFrame, rates_in_percent: bool = False) -> list[Goal]:
    return goals_from_records(_frame_records(frame, GOAL_COLUMNS), rates_in_percent=rates_in_percent)


def mappings_from_frame(frame: pd.DataFrame, stored_as_fraction: bool = True) -> list[GoalPortfolioMapping]:
    return mappings_from_records(_frame_records(frame, MAPPING_COLUMNS), stored_as_fraction=stored_as_fraction)


def snapshot_to_frame(snapshot: AllocationSnapshot, drifts: Iterable[HoldingDrift] | None = None) -> pd.DataFrame:
    """Tabular view of a snapshot, one row per holding."""
    drift_by_entry = {d.entry: d for d in drifts or []}
    rows = []
    for entry in snapshot.entries:
        drift = drift_by_entry.get(entry)
        rows.append(
            {
                "Instrument": entry.instrument_code,
                "Portfolio": entry.holding.portfolio_id,
                "Units": entry.holding.units,
                "Current_Value": entry.current_value,
                "Current_Pct": entry.current_pct,
                "Target_Pct": entry.target_pct,
                "Drift": drift.drift if drift else 0.0,
                "Status": drift.status.value if drift else None,
            }
        )
    columns = ["Instrument", "Portfolio", "Units", "Current_Value", "Current_Pct", "Target_Pct", "Drift", "Status"]
    return pd.DataFrame(rows, columns=columns)
