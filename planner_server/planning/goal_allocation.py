"""Cross-goal claims on shared investments."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable, Mapping

from planner_server.planning.models import (
    AllocationConflict,
    ClaimingGoal,
    GoalFunding,
    GoalPortfolioMapping,
    MappingValidation,
)
from planner_server.planning.validation import ensure_valid_mappings

MAX_CLAIM_PCT = 100.0
_EPSILON = 1e-9


def _claims_by_entity(mappings: Iterable[GoalPortfolioMapping]) -> dict[str, dict[str, float]]:
    claims: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for mapping in mappings:
        claims[mapping.entity_id][mapping.goal_id] += mapping.allocation_pct
    return claims


def validate_goal_mappings(
    existing: Iterable[GoalPortfolioMapping],
    goal_id: str,
    proposed: Iterable[GoalPortfolioMapping],
) -> MappingValidation:
    """Check a goal's edited links against every other goal's claims.

    ``existing`` is the full stored mapping set; the goal's own stored rows
    are ignored since ``proposed`` replaces them. Conflicts are reported,
    never resolved.
    """
    existing = list(existing)
    proposed = list(proposed)
    ensure_valid_mappings(existing)
    ensure_valid_mappings(proposed)

    others = _claims_by_entity(m for m in existing if m.goal_id != goal_id)
    own: dict[str, float] = defaultdict(float)
    for mapping in proposed:
        own[mapping.entity_id] += mapping.allocation_pct

    conflicts: list[AllocationConflict] = []
    for entity_id, pct in own.items():
        claimants = others.get(entity_id, {})
        other_total = math.fsum(claimants.values())
        combined = other_total + pct
        if combined > MAX_CLAIM_PCT + _EPSILON:
            conflicts.append(
                AllocationConflict(
                    entity_id=entity_id,
                    combined_pct=combined,
                    excess_pct=combined - MAX_CLAIM_PCT,
                    claiming_goals=tuple(
                        ClaimingGoal(goal_id=other_goal, pct=other_pct)
                        for other_goal, other_pct in sorted(claimants.items())
                    ),
                )
            )

    return MappingValidation(
        goal_id=goal_id,
        own_total_pct=math.fsum(m.allocation_pct for m in proposed),
        mapping_count=len(proposed),
        conflicts=tuple(conflicts),
    )


def find_over_allocations(mappings: Iterable[GoalPortfolioMapping]) -> list[AllocationConflict]:
    """Every investment whose combined goal claims exceed 100%."""
    mappings = list(mappings)
    ensure_valid_mappings(mappings)
    conflicts: list[AllocationConflict] = []
    for entity_id, claimants in sorted(_claims_by_entity(mappings).items()):
        combined = math.fsum(claimants.values())
        if combined > MAX_CLAIM_PCT + _EPSILON:
            conflicts.append(
                AllocationConflict(
                    entity_id=entity_id,
                    combined_pct=combined,
                    excess_pct=combined - MAX_CLAIM_PCT,
                    claiming_goals=tuple(ClaimingGoal(goal_id=g, pct=p) for g, p in sorted(claimants.items())),
                )
            )
    return conflicts


def goal_funding(
    goal_id: str,
    target_amount: float,
    mappings: Iterable[GoalPortfolioMapping],
    entity_values: Mapping[str, float],
) -> GoalFunding:
    """Value currently earmarked for a goal through its mapped investments.

    Mappings to investments without a known value contribute nothing.
    """
    own = [m for m in mappings if m.goal_id == goal_id]
    ensure_valid_mappings(own)
    allocated = math.fsum(entity_values.get(m.entity_id, 0.0) * m.allocation_pct / 100.0 for m in own)
    progress = min(1.0, allocated / target_amount) * 100.0 if target_amount > 0 else 0.0
    return GoalFunding(
        goal_id=goal_id,
        target_amount=target_amount,
        allocated_value=allocated,
        gap=max(0.0, target_amount - allocated),
        progress_pct=progress,
    )
