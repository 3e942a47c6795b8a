"""Goal target derivation, forward projection and required-SIP solve."""

from __future__ import annotations

import math
from datetime import date

import numpy as np
import pandas as pd

from planner_server.planning.models import EMERGENCY_FUND, RETIREMENT, Goal, ProjectionResult

DAYS_PER_YEAR = 365.25
RETIREMENT_CORPUS_MULTIPLE = 25.0
DEFAULT_EMERGENCY_MONTHS = 6
MIN_STATUS_YEARS = 0.08
_ON_TRACK_TOLERANCE = 1e-6

# Per-type (inflation, CAGR) defaults offered when a goal is created.
GOAL_TYPE_DEFAULTS: dict[str, tuple[float, float]] = {
    RETIREMENT: (0.06, 0.12),
    EMERGENCY_FUND: (0.0, 0.07),
    "Child Education": (0.10, 0.12),
    "Home Purchase": (0.08, 0.12),
    "Wedding": (0.06, 0.12),
    "Car": (0.05, 0.10),
    "Travel": (0.06, 0.10),
    "Custom": (0.06, 0.12),
}


def type_defaults(goal_type: str) -> tuple[float, float]:
    return GOAL_TYPE_DEFAULTS.get(goal_type, GOAL_TYPE_DEFAULTS["Custom"])


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def years_until(target_date: date | None, today: date) -> float:
    if target_date is None:
        return 0.0
    return max(0.0, (target_date - today).days / DAYS_PER_YEAR)


def months_for(years: float) -> int:
    return int(math.floor(years * 12 + 0.5))


def derive_todays_cost(
    goal: Goal,
    corpus_multiple: float = RETIREMENT_CORPUS_MULTIPLE,
    default_emergency_months: int = DEFAULT_EMERGENCY_MONTHS,
) -> float:
    if goal.goal_type == RETIREMENT:
        return goal.monthly_expenses * 12 * corpus_multiple
    if goal.goal_type == EMERGENCY_FUND:
        months = goal.emergency_months if goal.emergency_months else default_emergency_months
        return goal.monthly_expenses * months
    return goal.todays_cost


def inflate(amount: float, inflation_rate: float, years: float) -> float:
    if inflation_rate > 0 and years > 0:
        return amount * (1 + inflation_rate) ** years
    return amount


def inflated_target(todays_cost: float, goal_type: str, inflation_rate: float, years: float) -> float:
    """Target amount at the goal date, rounded to whole currency units.

    Emergency funds are held in today's money and are never inflated.
    """
    if goal_type == EMERGENCY_FUND:
        return _round_half_up(todays_cost)
    return _round_half_up(inflate(todays_cost, inflation_rate, years))


def future_value_lumpsum(lumpsum: float, monthly_rate: float, months: int) -> float:
    if months <= 0:
        return lumpsum
    return lumpsum * (1 + monthly_rate) ** months


def annuity_factor(monthly_rate: float, months: int) -> float:
    if monthly_rate > 0:
        return ((1 + monthly_rate) ** months - 1) / monthly_rate
    return float(months)


def future_value_sip(sip: float, monthly_rate: float, months: int) -> float:
    return sip * annuity_factor(monthly_rate, months)


def required_monthly_sip(target: float, fv_lumpsum: float, monthly_rate: float, months: int) -> float:
    """Whole-currency monthly contribution that closes the gap left by the lumpsum."""
    remaining = target - fv_lumpsum
    if remaining <= 0 or months <= 0:
        return 0.0
    return max(0.0, float(math.ceil(remaining / annuity_factor(monthly_rate, months))))


def project_goal(
    goal: Goal,
    today: date | None = None,
    corpus_multiple: float = RETIREMENT_CORPUS_MULTIPLE,
    default_emergency_months: int = DEFAULT_EMERGENCY_MONTHS,
) -> ProjectionResult:
    today = today or date.today()
    years = years_until(goal.target_date, today)
    months = months_for(years)
    monthly_rate = goal.cagr / 12

    todays_cost = derive_todays_cost(goal, corpus_multiple, default_emergency_months)
    target = inflated_target(todays_cost, goal.goal_type, goal.inflation_rate, years)

    fv_lumpsum = future_value_lumpsum(goal.lumpsum_committed, monthly_rate, months)
    fv_sip = future_value_sip(goal.monthly_contribution, monthly_rate, months)
    projected = fv_lumpsum + fv_sip
    invested = goal.lumpsum_committed + goal.monthly_contribution * months

    return ProjectionResult(
        todays_cost=todays_cost,
        inflated_target=target,
        years_to_go=years,
        months=months,
        fv_lumpsum=fv_lumpsum,
        fv_sip=fv_sip,
        projected_value=projected,
        total_invested=invested,
        total_returns=projected - invested,
        required_sip=required_monthly_sip(target, fv_lumpsum, monthly_rate, months),
        is_on_track=target > 0 and projected + _ON_TRACK_TOLERANCE >= target,
        pct_of_target=(projected / target) * 100.0 if target > 0 else 0.0,
    )


def todays_cost_from_target(target_amount: float, inflation_rate: float, years: float, goal_type: str) -> float:
    """Undo inflation on a stored target, e.g. to prefill an edit form."""
    if goal_type == EMERGENCY_FUND or inflation_rate <= 0 or years <= 0:
        return target_amount
    return target_amount / (1 + inflation_rate) ** years


def lumpsum_needed_today(target_amount: float, years: float, cagr: float, current_amount: float = 0.0) -> float:
    if years <= 0:
        return max(0.0, target_amount - current_amount)
    present_value = target_amount / (1 + cagr) ** years
    return max(0.0, _round_half_up(present_value - current_amount))


def goal_status(current_allocated: float, target_amount: float, years: float, cagr: float) -> str | None:
    """Compare what is allocated today with what should be by now.

    The expectation is the present value of the target at the goal's CAGR.
    Returns ``None`` for goals without a target.
    """
    if target_amount <= 0:
        return None
    if current_allocated / target_amount >= 1:
        return "Achieved"
    expected = target_amount / (1 + cagr) ** max(MIN_STATUS_YEARS, years)
    ratio = current_allocated / expected if expected > 0 else 1.0
    if ratio >= 0.9:
        return "On Track"
    if ratio >= 0.7:
        return "Behind"
    return "Critical"


def projection_schedule(
    goal: Goal,
    today: date | None = None,
    corpus_multiple: float = RETIREMENT_CORPUS_MULTIPLE,
    default_emergency_months: int = DEFAULT_EMERGENCY_MONTHS,
) -> pd.DataFrame:
    """Year-end invested amount and projected value up to the goal date."""
    today = today or date.today()
    years = years_until(goal.target_date, today)
    months = months_for(years)
    columns = ["Year", "Months", "Invested", "Projected_Value", "Target"]
    if months <= 0:
        return pd.DataFrame(columns=columns)

    todays_cost = derive_todays_cost(goal, corpus_multiple, default_emergency_months)
    target = inflated_target(todays_cost, goal.goal_type, goal.inflation_rate, years)
    monthly_rate = goal.cagr / 12

    checkpoints = np.arange(12, months, 12)
    elapsed = np.append(checkpoints, months).astype(float)
    growth = np.power(1 + monthly_rate, elapsed)
    if monthly_rate > 0:
        sip_value = goal.monthly_contribution * (growth - 1) / monthly_rate
    else:
        sip_value = goal.monthly_contribution * elapsed
    projected = goal.lumpsum_committed * growth + sip_value
    invested = goal.lumpsum_committed + goal.monthly_contribution * elapsed

    return pd.DataFrame(
        {
            "Year": np.arange(1, len(elapsed) + 1),
            "Months": elapsed.astype(int),
            "Invested": invested,
            "Projected_Value": projected,
            "Target": np.full(len(elapsed), target),
        }
    )
