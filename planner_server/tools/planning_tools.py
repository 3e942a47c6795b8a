"""Planning-domain MCP tools."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from mcp.server.fastmcp import FastMCP

from planner_server.runtime.monitoring import log_tool_event
from planner_server.runtime.response import error_response

if TYPE_CHECKING:
    from planner_server.tools.registry import ToolServices

LOGGER = logging.getLogger(__name__)


def _run_tool(tool: str, subject: str | None, call: Callable[[], dict[str, Any]]) -> str:
    started = time.perf_counter()
    try:
        payload = call()
    except Exception:
        LOGGER.exception("Tool %s failed", tool)
        log_tool_event(tool=tool, subject=subject, latency_ms=(time.perf_counter() - started) * 1000.0, success=False)
        return error_response("PLANNING_FAILED", "Planning request failed.")
    latency_ms = (time.perf_counter() - started) * 1000.0
    log_tool_event(tool=tool, subject=subject, latency_ms=latency_ms, success=bool(payload.get("ok")))
    return json.dumps(payload, ensure_ascii=True)


def _portfolio_id(portfolio: dict[str, Any] | None) -> str | None:
    return str(portfolio.get("portfolioId")) if portfolio and portfolio.get("portfolioId") else None


def register_planning_tools(mcp: FastMCP, services: ToolServices) -> None:
    @mcp.tool(description="Current allocation, drift status and planned-holding entry amounts for a portfolio.")
    def analyze_allocation(holdings: list[dict[str, Any]], portfolio: dict[str, Any] | None = None) -> str:
        return _run_tool(
            "analyze_allocation",
            _portfolio_id(portfolio),
            lambda: services.planning.analyze_allocation(holdings, portfolio),
        )

    @mcp.tool(description="List portfolios whose holdings have drifted beyond their rebalance threshold.")
    def rebalance_overview(holdings: list[dict[str, Any]], portfolios: list[dict[str, Any]]) -> str:
        return _run_tool("rebalance_overview", None, lambda: services.planning.rebalance_overview(holdings, portfolios))

    @mcp.tool(description="Redirect the monthly SIP budget towards underweight holdings.")
    def plan_sip_rebalance(holdings: list[dict[str, Any]], portfolio: dict[str, Any]) -> str:
        return _run_tool(
            "plan_sip_rebalance",
            _portfolio_id(portfolio),
            lambda: services.planning.plan_sip_rebalance(holdings, portfolio),
        )

    @mcp.tool(description="Distribute a one-time lumpsum so underweight holdings move towards target.")
    def plan_lumpsum_rebalance(
        holdings: list[dict[str, Any]],
        portfolio: dict[str, Any],
        amount: float | None = None,
    ) -> str:
        return _run_tool(
            "plan_lumpsum_rebalance",
            _portfolio_id(portfolio),
            lambda: services.planning.plan_lumpsum_rebalance(holdings, portfolio, amount=amount),
        )

    @mcp.tool(description="Buy and sell amounts that restore drifted holdings to target today.")
    def plan_buy_sell(holdings: list[dict[str, Any]], portfolio: dict[str, Any] | None = None) -> str:
        return _run_tool(
            "plan_buy_sell",
            _portfolio_id(portfolio),
            lambda: services.planning.plan_buy_sell(holdings, portfolio),
        )

    @mcp.tool(description="Project a goal's corpus, inflated target and required monthly SIP.")
    def project_goal(
        goal: dict[str, Any],
        today: str | None = None,
        rates_in_percent: bool = False,
        mappings: list[dict[str, Any]] | None = None,
        holdings: list[dict[str, Any]] | None = None,
    ) -> str:
        return _run_tool(
            "project_goal",
            str(goal.get("goalId") or "") or None,
            lambda: services.planning.project_goal(
                goal, today=today, rates_in_percent=rates_in_percent, mappings=mappings, holdings=holdings
            ),
        )

    @mcp.tool(description="Check a goal's proposed investment links against every other goal's claims.")
    def validate_goal_mappings(
        existing: list[dict[str, Any]],
        goal_id: str,
        proposed: list[dict[str, Any]],
        stored_as_fraction: bool = False,
    ) -> str:
        return _run_tool(
            "validate_goal_mappings",
            goal_id,
            lambda: services.planning.validate_goal_mappings(
                existing, goal_id, proposed, stored_as_fraction=stored_as_fraction
            ),
        )

    @mcp.tool(description="Proportional redemption plan across the portfolios linked to a goal.")
    def build_withdrawal_plan(
        goal_id: str,
        mappings: list[dict[str, Any]],
        holdings: list[dict[str, Any]],
        target_amount: float | None = None,
    ) -> str:
        return _run_tool(
            "build_withdrawal_plan",
            goal_id,
            lambda: services.planning.build_withdrawal_plan(goal_id, mappings, holdings, target_amount=target_amount),
        )

    @mcp.tool(description="Held instruments trading below their all-time high, deepest discount first.")
    def find_buy_opportunities(
        holdings: list[dict[str, Any]],
        portfolio: dict[str, Any] | None = None,
        min_below_ath_pct: float = 1.0,
    ) -> str:
        return _run_tool(
            "find_buy_opportunities",
            _portfolio_id(portfolio),
            lambda: services.planning.find_buy_opportunities(
                holdings, portfolio, min_below_ath_pct=min_below_ath_pct
            ),
        )
