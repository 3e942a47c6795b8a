"""Payload-level orchestration of the planning core."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Any, Callable

from planner_server.config.settings import Settings
from planner_server.lib.formatters import format_inr_compact, format_response, line_money, line_percent
from planner_server.planning.allocation import build_snapshot, count_drifted, detect_drift
from planner_server.planning.goal_allocation import find_over_allocations, goal_funding, validate_goal_mappings
from planner_server.planning.models import AllocationSnapshot, Holding, PortfolioSettings, ValidationIssue
from planner_server.planning.opportunities import DEFAULT_MIN_BELOW_ATH_PCT, find_buy_opportunities
from planner_server.planning.projection import goal_status, lumpsum_needed_today, project_goal, projection_schedule
from planner_server.planning.rebalance import plan_buy_sell, plan_lumpsum, plan_new_holdings, plan_sip
from planner_server.planning.records import (
    goal_from_record,
    holdings_from_records,
    mappings_from_records,
    parse_date,
    portfolio_settings_from_record,
    snapshot_to_frame,
)
from planner_server.planning.validation import RecordContractError, ensure_valid_settings
from planner_server.planning.withdrawal import build_withdrawal_plan
from planner_server.runtime.response import success_payload, validation_error_payload

LOGGER = logging.getLogger(__name__)


def _portfolio_values(holdings: list[Holding]) -> dict[str, float]:
    values: dict[str, float] = defaultdict(float)
    for holding in holdings:
        if holding.units > 0:
            values[holding.portfolio_id] += holding.current_value
    return dict(values)


class PlanningService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _guarded(self, operation: str, build: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        try:
            return build()
        except RecordContractError as error:
            LOGGER.warning("%s rejected: %s", operation, error)
            return validation_error_payload(error.issues)
        except ValueError as error:
            LOGGER.warning("%s rejected: %s", operation, error)
            return validation_error_payload([ValidationIssue(field="payload", message=str(error))])

    def _portfolio_snapshots(
        self, holdings: list[dict[str, Any]], portfolio: dict[str, Any] | None
    ) -> list[tuple[str, PortfolioSettings | None, AllocationSnapshot]]:
        """One snapshot per portfolio, or only the portfolio whose settings are given."""
        parsed = holdings_from_records(holdings)
        if portfolio:
            settings = portfolio_settings_from_record(portfolio, self.settings.default_rebalance_threshold)
            ensure_valid_settings(settings)
            members = [h for h in parsed if h.portfolio_id == settings.portfolio_id]
            return [(settings.portfolio_id, settings, build_snapshot(members))]
        grouped: dict[str, list[Holding]] = defaultdict(list)
        for holding in parsed:
            grouped[holding.portfolio_id].append(holding)
        return [(portfolio_id, None, build_snapshot(members)) for portfolio_id, members in grouped.items()]

    def _portfolio_snapshot(
        self, holdings: list[dict[str, Any]], portfolio: dict[str, Any] | None
    ) -> tuple[PortfolioSettings, AllocationSnapshot]:
        if not portfolio:
            raise ValueError("portfolio settings are required.")
        _, settings, snapshot = self._portfolio_snapshots(holdings, portfolio)[0]
        return settings, snapshot

    def _threshold(self, settings: PortfolioSettings | None) -> float:
        return settings.rebalance_threshold if settings else self.settings.default_rebalance_threshold

    def analyze_allocation(self, holdings: list[dict[str, Any]], portfolio: dict[str, Any] | None = None) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            results: list[dict[str, Any]] = []
            for portfolio_id, settings, snapshot in self._portfolio_snapshots(holdings, portfolio):
                drifts = detect_drift(snapshot, self._threshold(settings))
                sip_budget = settings.monthly_sip_budget if settings else 0.0
                results.append(
                    {
                        "portfolio_id": portfolio_id,
                        "total_value": snapshot.total_value,
                        "allocation": snapshot_to_frame(snapshot, drifts).to_dict(orient="records"),
                        "drifted_count": count_drifted(drifts),
                        "new_holdings": plan_new_holdings(snapshot, sip_budget),
                    }
                )
            return success_payload(
                portfolios=results,
                drifted_count=sum(result["drifted_count"] for result in results),
            )

        return self._guarded("analyze_allocation", build)

    def rebalance_overview(self, holdings: list[dict[str, Any]], portfolios: list[dict[str, Any]]) -> dict[str, Any]:
        """Drifted-holding counts for every portfolio that needs attention."""

        def build() -> dict[str, Any]:
            parsed = holdings_from_records(holdings)
            needing: list[dict[str, Any]] = []
            for record in portfolios:
                settings = portfolio_settings_from_record(record, self.settings.default_rebalance_threshold)
                ensure_valid_settings(settings)
                snapshot = build_snapshot(h for h in parsed if h.portfolio_id == settings.portfolio_id)
                drifted = count_drifted(detect_drift(snapshot, settings.rebalance_threshold))
                if drifted:
                    needing.append(
                        {"portfolio_id": settings.portfolio_id, "name": settings.name, "drifted_count": drifted}
                    )
            return success_payload(portfolios=needing)

        return self._guarded("rebalance_overview", build)

    def plan_sip_rebalance(self, holdings: list[dict[str, Any]], portfolio: dict[str, Any]) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            settings, snapshot = self._portfolio_snapshot(holdings, portfolio)
            plan = plan_sip(
                snapshot,
                settings.monthly_sip_budget,
                threshold=settings.rebalance_threshold,
                change_tolerance=self.settings.sip_change_tolerance,
            )
            if plan is None:
                LOGGER.info("No SIP budget for portfolio %s", settings.portfolio_id)
                return success_payload(plan=None, message="No SIP budget set for this portfolio.")
            lines = [
                line_money(f"{s.action.capitalize()} {s.instrument_code}", s.amount)
                for s in plan.suggestions
                if s.action != "hold"
            ]
            return success_payload(
                plan=plan,
                summary=format_response(f"SIP plan for {format_inr_compact(plan.sip_budget)} a month", lines),
            )

        return self._guarded("plan_sip_rebalance", build)

    def plan_lumpsum_rebalance(
        self,
        holdings: list[dict[str, Any]],
        portfolio: dict[str, Any],
        amount: float | None = None,
    ) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            settings, snapshot = self._portfolio_snapshot(holdings, portfolio)
            if amount is not None and (math.isnan(amount) or amount < 0):
                raise ValueError("amount must be a non-negative number.")
            plan = plan_lumpsum(
                snapshot,
                amount=amount,
                lumpsum_budget=settings.lumpsum_budget,
                threshold=settings.rebalance_threshold,
                precedence=self.settings.lumpsum_precedence,
                rounding_step=self.settings.lumpsum_rounding_step,
            )
            LOGGER.info("Lumpsum for %s: %.2f from %s", settings.portfolio_id, plan.amount, plan.source)
            warning = None
            if plan.unallocated > 0:
                warning = f"{format_inr_compact(plan.unallocated)} could not be placed without overshooting targets."
            lines = [line_money(f"Invest in {line.instrument_code}", line.invest) for line in plan.lines]
            return success_payload(
                plan=plan,
                summary=format_response(f"Lumpsum plan for {format_inr_compact(plan.amount)}", lines, warning=warning),
            )

        return self._guarded("plan_lumpsum_rebalance", build)

    def plan_buy_sell(self, holdings: list[dict[str, Any]], portfolio: dict[str, Any] | None = None) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            results: list[dict[str, Any]] = []
            lines: list[str] = []
            for portfolio_id, settings, snapshot in self._portfolio_snapshots(holdings, portfolio):
                plan = plan_buy_sell(snapshot, self._threshold(settings), self.settings.trade_noise_floor)
                results.append({"portfolio_id": portfolio_id, "plan": plan})
                lines.extend(
                    line_money(f"{s.action.capitalize()} {s.instrument_code} ({portfolio_id})", abs(s.amount))
                    for s in plan.suggestions
                )
            total_buy = math.fsum(result["plan"].total_buy for result in results)
            total_sell = math.fsum(result["plan"].total_sell for result in results)
            lines.extend([line_money("Total buy", total_buy), line_money("Total sell", total_sell)])
            return success_payload(
                portfolios=results,
                total_buy=total_buy,
                total_sell=total_sell,
                summary=format_response("Buy/sell rebalance", lines),
            )

        return self._guarded("plan_buy_sell", build)

    def project_goal(
        self,
        goal: dict[str, Any],
        today: str | None = None,
        rates_in_percent: bool = False,
        mappings: list[dict[str, Any]] | None = None,
        holdings: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Projection for one goal, plus funding and status when its links are supplied."""

        def build() -> dict[str, Any]:
            parsed_goal = goal_from_record(goal, rates_in_percent=rates_in_percent)
            as_of = parse_date(today) if today else None
            options = {
                "corpus_multiple": self.settings.retirement_corpus_multiple,
                "default_emergency_months": self.settings.default_emergency_months,
            }
            projection = project_goal(parsed_goal, as_of, **options)
            schedule = projection_schedule(parsed_goal, as_of, **options)

            funding = None
            status = None
            lumpsum_needed = None
            if mappings is not None and holdings is not None:
                funding = goal_funding(
                    parsed_goal.goal_id,
                    projection.inflated_target,
                    mappings_from_records(mappings),
                    _portfolio_values(holdings_from_records(holdings)),
                )
                status = goal_status(
                    funding.allocated_value, projection.inflated_target, projection.years_to_go, parsed_goal.cagr
                )
                lumpsum_needed = lumpsum_needed_today(
                    projection.inflated_target, projection.years_to_go, parsed_goal.cagr, funding.allocated_value
                )

            lines = [
                line_money("Target (inflated)", projection.inflated_target),
                line_money("Projected value", projection.projected_value),
                line_percent("Of target", projection.pct_of_target),
                line_money("Required monthly SIP", projection.required_sip),
            ]
            title = f"{parsed_goal.name or parsed_goal.goal_type}: {'on track' if projection.is_on_track else 'short'}"
            return success_payload(
                goal_id=parsed_goal.goal_id,
                projection=projection,
                schedule=schedule.to_dict(orient="records"),
                funding=funding,
                status=status,
                lumpsum_needed_today=lumpsum_needed,
                summary=format_response(title, lines),
            )

        return self._guarded("project_goal", build)

    def validate_goal_mappings(
        self,
        existing: list[dict[str, Any]],
        goal_id: str,
        proposed: list[dict[str, Any]],
        stored_as_fraction: bool = False,
    ) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            stored = mappings_from_records(existing, stored_as_fraction=stored_as_fraction)
            edited = mappings_from_records(proposed, stored_as_fraction=stored_as_fraction)
            result = validate_goal_mappings(stored, goal_id, edited)
            if result.conflicts:
                LOGGER.info("Goal %s over-claims %d investment(s)", goal_id, len(result.conflicts))
            return success_payload(
                validation=result,
                is_valid=result.is_valid,
                totals_complete=result.totals_complete,
                stored_over_allocations=find_over_allocations(stored),
            )

        return self._guarded("validate_goal_mappings", build)

    def build_withdrawal_plan(
        self,
        goal_id: str,
        mappings: list[dict[str, Any]],
        holdings: list[dict[str, Any]],
        target_amount: float | None = None,
    ) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            plan = build_withdrawal_plan(
                goal_id, mappings_from_records(mappings), holdings_from_records(holdings), target_amount
            )
            if plan is None:
                return success_payload(plan=None, message="No portfolios are linked to this goal.")
            lines = [line_money("Linked value", plan.total_linked), line_money("Estimated taxable gain", plan.total_taxable_gain)]
            if plan.coverage_pct is not None:
                lines.append(line_percent("Coverage of target", plan.coverage_pct))
            return success_payload(plan=plan, summary=format_response(f"Withdrawal plan for {goal_id}", lines))

        return self._guarded("build_withdrawal_plan", build)

    def find_buy_opportunities(
        self,
        holdings: list[dict[str, Any]],
        portfolio: dict[str, Any] | None = None,
        min_below_ath_pct: float = DEFAULT_MIN_BELOW_ATH_PCT,
    ) -> dict[str, Any]:
        def build() -> dict[str, Any]:
            found = [
                item
                for _, _, snapshot in self._portfolio_snapshots(holdings, portfolio)
                for item in find_buy_opportunities(snapshot, min_below_ath_pct)
            ]
            return success_payload(opportunities=sorted(found, key=lambda item: item.below_ath_pct, reverse=True))

        return self._guarded("find_buy_opportunities", build)
