"""Typed planning models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Literal

RETIREMENT = "Retirement"
EMERGENCY_FUND = "Emergency Fund"

Action = Literal["buy", "sell", "hold", "exit"]
LumpsumSource = Literal["explicit", "budget", "suggested"]


class DriftStatus(str, Enum):
    BALANCED = "balanced"
    OVERWEIGHT = "overweight"
    UNDERWEIGHT = "underweight"
    EXIT = "exit"
    PLANNED = "planned"


@dataclass(frozen=True)
class Holding:
    holding_id: str
    portfolio_id: str
    instrument_code: str
    units: float
    current_value: float
    target_allocation_pct: float
    current_price: float = 0.0
    invested_amount: float = 0.0
    average_cost_price: float = 0.0
    name: str = ""
    ath_price: float | None = None

    @property
    def is_planned(self) -> bool:
        return self.units == 0 and self.target_allocation_pct > 0

    @property
    def is_exit_candidate(self) -> bool:
        return self.units > 0 and self.target_allocation_pct == 0


@dataclass(frozen=True)
class PortfolioSettings:
    portfolio_id: str
    rebalance_threshold: float = 0.05
    monthly_sip_budget: float = 0.0
    lumpsum_budget: float = 0.0
    owner_id: str = ""
    name: str = ""


@dataclass(frozen=True)
class Goal:
    goal_id: str
    goal_type: str
    target_date: date | None
    inflation_rate: float = 0.0
    cagr: float = 0.0
    lumpsum_committed: float = 0.0
    monthly_contribution: float = 0.0
    todays_cost: float = 0.0
    monthly_expenses: float = 0.0
    emergency_months: int | None = None
    owner_id: str = ""
    name: str = ""


@dataclass(frozen=True)
class GoalPortfolioMapping:
    goal_id: str
    entity_id: str
    allocation_pct: float


@dataclass
class ValidationIssue:
    field: str
    message: str
    row: int | None = None
    code: str = "invalid_value"


@dataclass(frozen=True)
class HoldingAllocation:
    holding: Holding
    current_pct: float

    @property
    def instrument_code(self) -> str:
        return self.holding.instrument_code

    @property
    def current_value(self) -> float:
        return self.holding.current_value

    @property
    def target_pct(self) -> float:
        return self.holding.target_allocation_pct


@dataclass(frozen=True)
class AllocationSnapshot:
    total_value: float
    entries: tuple[HoldingAllocation, ...] = ()


@dataclass(frozen=True)
class HoldingDrift:
    entry: HoldingAllocation
    drift: float
    status: DriftStatus

    @property
    def instrument_code(self) -> str:
        return self.entry.instrument_code

    @property
    def is_drifted(self) -> bool:
        return self.status in (DriftStatus.OVERWEIGHT, DriftStatus.UNDERWEIGHT)


@dataclass(frozen=True)
class RebalanceSuggestion:
    instrument_code: str
    action: Action
    amount: float
    current_pct: float
    target_pct: float
    status: DriftStatus | None = None
    normal_amount: float | None = None


@dataclass(frozen=True)
class SipPlan:
    sip_budget: float
    suggestions: tuple[RebalanceSuggestion, ...]
    has_changes: bool


@dataclass(frozen=True)
class LumpsumLine:
    instrument_code: str
    invest: float
    current_value: float
    new_value: float
    current_pct: float
    new_pct: float
    target_pct: float


@dataclass(frozen=True)
class LumpsumPlan:
    amount: float
    source: LumpsumSource | None
    suggested_amount: float
    new_total: float
    lines: tuple[LumpsumLine, ...] = ()
    scaled: bool = False
    unallocated: float = 0.0


@dataclass(frozen=True)
class BuySellPlan:
    total_value: float
    suggestions: tuple[RebalanceSuggestion, ...] = ()

    @property
    def total_buy(self) -> float:
        return sum(s.amount for s in self.suggestions if s.amount > 0)

    @property
    def total_sell(self) -> float:
        return -sum(s.amount for s in self.suggestions if s.amount < 0)


@dataclass(frozen=True)
class NewHoldingEntry:
    instrument_code: str
    target_pct: float
    suggested_lumpsum: float
    suggested_sip: float


@dataclass(frozen=True)
class ProjectionResult:
    todays_cost: float
    inflated_target: float
    years_to_go: float
    months: int
    fv_lumpsum: float
    fv_sip: float
    projected_value: float
    total_invested: float
    total_returns: float
    required_sip: float
    is_on_track: bool
    pct_of_target: float


@dataclass(frozen=True)
class ClaimingGoal:
    goal_id: str
    pct: float


@dataclass(frozen=True)
class AllocationConflict:
    entity_id: str
    combined_pct: float
    excess_pct: float
    claiming_goals: tuple[ClaimingGoal, ...] = ()


@dataclass(frozen=True)
class MappingValidation:
    goal_id: str
    own_total_pct: float
    mapping_count: int
    conflicts: tuple[AllocationConflict, ...] = ()

    @property
    def totals_complete(self) -> bool:
        return abs(self.own_total_pct - 100.0) <= 1e-9

    @property
    def is_valid(self) -> bool:
        return not self.conflicts and (self.totals_complete or self.mapping_count == 0)


@dataclass(frozen=True)
class GoalFunding:
    goal_id: str
    target_amount: float
    allocated_value: float
    gap: float
    progress_pct: float


@dataclass(frozen=True)
class WithdrawalLine:
    instrument_code: str
    withdraw_units: float
    withdraw_value: float
    taxable_gain: float
    available_units: float = 0.0
    current_price: float = 0.0
    name: str = ""


@dataclass(frozen=True)
class PortfolioWithdrawal:
    portfolio_id: str
    allocation_pct: float
    portfolio_value: float
    linked_value: float
    lines: tuple[WithdrawalLine, ...] = ()


@dataclass(frozen=True)
class WithdrawalPlan:
    goal_id: str
    portfolios: tuple[PortfolioWithdrawal, ...]
    total_linked: float
    total_taxable_gain: float
    coverage_pct: float | None = None


@dataclass(frozen=True)
class BuyOpportunity:
    instrument_code: str
    portfolio_id: str
    ath_price: float
    current_price: float
    below_ath_pct: float
    tier: str
    current_pct: float = 0.0
    target_pct: float = 0.0
