"""Record contract checks.

Malformed records are a data-layer bug, so they fail fast here instead of
being clamped into range by the planners.
"""

from __future__ import annotations

import math
from typing import Iterable

from planner_server.planning.models import GoalPortfolioMapping, Holding, PortfolioSettings, ValidationIssue


class RecordContractError(ValueError):
    """Raised when input records violate the planning contract."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues[:5])
        super().__init__(f"Invalid planning input ({len(issues)} issue(s)): {summary}")


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(float(value))


def _check_non_negative(
    issues: list[ValidationIssue],
    field: str,
    value: object,
    code: str,
    row: int | None,
    label: str,
) -> None:
    if not _is_number(value) or float(value) < 0:
        issues.append(
            ValidationIssue(field=field, row=row, code=code, message=f"{label} must be a non-negative number, received {value!r}.")
        )


def _check_pct(issues: list[ValidationIssue], field: str, value: object, row: int | None, label: str) -> None:
    if not _is_number(value) or float(value) < 0 or float(value) > 100:
        issues.append(
            ValidationIssue(
                field=field,
                row=row,
                code="invalid_allocation_pct",
                message=f"{label} must be between 0 and 100, received {value!r}.",
            )
        )


def validate_holding(holding: Holding, row: int | None = None) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    code = holding.instrument_code or holding.holding_id
    _check_non_negative(issues, "units", holding.units, "negative_units", row, f"Units of {code}")
    _check_non_negative(issues, "current_price", holding.current_price, "negative_price", row, f"Current price of {code}")
    _check_non_negative(
        issues, "average_cost_price", holding.average_cost_price, "negative_price", row, f"Average cost of {code}"
    )
    if holding.ath_price is not None:
        _check_non_negative(issues, "ath_price", holding.ath_price, "negative_price", row, f"ATH price of {code}")
    _check_non_negative(issues, "current_value", holding.current_value, "negative_value", row, f"Current value of {code}")
    _check_non_negative(
        issues, "invested_amount", holding.invested_amount, "negative_value", row, f"Invested amount of {code}"
    )
    _check_pct(issues, "target_allocation_pct", holding.target_allocation_pct, row, f"Target allocation of {code}")
    return issues


def validate_mapping(mapping: GoalPortfolioMapping, row: int | None = None) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    _check_pct(
        issues,
        "allocation_pct",
        mapping.allocation_pct,
        row,
        f"Allocation of goal {mapping.goal_id} on {mapping.entity_id}",
    )
    return issues


def validate_portfolio_settings(settings: PortfolioSettings) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    threshold = settings.rebalance_threshold
    if not _is_number(threshold) or float(threshold) <= 0:
        issues.append(
            ValidationIssue(
                field="rebalance_threshold",
                code="invalid_threshold",
                message=f"Rebalance threshold must be a positive fraction, received {threshold!r}.",
            )
        )
    _check_non_negative(
        issues, "monthly_sip_budget", settings.monthly_sip_budget, "negative_budget", None, "Monthly SIP budget"
    )
    _check_non_negative(issues, "lumpsum_budget", settings.lumpsum_budget, "negative_budget", None, "Lumpsum budget")
    return issues


def ensure_valid_holdings(holdings: Iterable[Holding]) -> None:
    issues: list[ValidationIssue] = []
    for idx, holding in enumerate(holdings):
        issues.extend(validate_holding(holding, row=idx + 1))
    if issues:
        raise RecordContractError(issues)


def ensure_valid_mappings(mappings: Iterable[GoalPortfolioMapping]) -> None:
    issues: list[ValidationIssue] = []
    for idx, mapping in enumerate(mappings):
        issues.extend(validate_mapping(mapping, row=idx + 1))
    if issues:
        raise RecordContractError(issues)


def ensure_valid_settings(settings: PortfolioSettings) -> None:
    issues = validate_portfolio_settings(settings)
    if issues:
        raise RecordContractError(issues)
