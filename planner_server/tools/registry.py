"""Tool service container and registration."""

from __future__ import annotations

from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from planner_server.config.settings import Settings
from planner_server.planning.planning_service import PlanningService
from planner_server.tools.planning_tools import register_planning_tools


@dataclass
class ToolServices:
    planning: PlanningService


def build_tool_services(settings: Settings) -> ToolServices:
    return ToolServices(planning=PlanningService(settings))


def register_all_tools(mcp: FastMCP, services: ToolServices) -> None:
    register_planning_tools(mcp, services)
