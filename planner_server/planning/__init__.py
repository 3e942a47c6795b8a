"""Household portfolio and goal planning domain package."""

from planner_server.planning.models import (
    AllocationSnapshot,
    DriftStatus,
    Goal,
    GoalPortfolioMapping,
    Holding,
    PortfolioSettings,
)
from planner_server.planning.planning_service import PlanningService
from planner_server.planning.validation import RecordContractError

__all__ = [
    "AllocationSnapshot",
    "DriftStatus",
    "Goal",
    "GoalPortfolioMapping",
    "Holding",
    "PlanningService",
    "PortfolioSettings",
    "RecordContractError",
]
