"""Application entrypoint for the family finance planner MCP server."""

from __future__ import annotations

import asyncio
import logging
import os

from mcp.server.fastmcp import FastMCP
from starlette.responses import JSONResponse, Response

from planner_server.config.settings import Settings, get_settings
from planner_server.tools.registry import build_tool_services, register_all_tools

LOGGER = logging.getLogger(__name__)


def resolve_transport_mode(configured_mode: str) -> str:
    if os.getenv("RENDER") and configured_mode == "stdio":
        return "http"
    if configured_mode in {"stdio", "http"}:
        return configured_mode
    if os.getenv("RENDER") or os.getenv("PORT"):
        return "http"
    return "stdio"


def resolve_http_transport(configured_transport: str) -> str:
    if configured_transport in {"sse", "streamable"}:
        return configured_transport
    return "sse"


def build_server(settings: Settings) -> FastMCP:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp = FastMCP(
        name=settings.app_name,
        host=settings.host,
        port=settings.port,
        streamable_http_path=settings.mcp_path,
    )
    services = build_tool_services(settings)
    register_all_tools(mcp, services)

    @mcp.custom_route(settings.health_path, methods=["GET"])
    async def health_check(_: object) -> Response:
        tools = await mcp.list_tools()
        return JSONResponse(
            {
                "status": "ok",
                "service": settings.app_name,
                "version": settings.app_version,
                "mode": resolve_transport_mode(settings.transport_mode),
                "tool_count": len(tools),
            }
        )

    return mcp


async def run() -> None:
    settings = get_settings()
    mcp = build_server(settings)
    resolved_mode = resolve_transport_mode(settings.transport_mode)
    resolved_http_transport = resolve_http_transport(settings.http_transport)
    LOGGER.info("Starting %s in %s mode", settings.app_name, resolved_mode)
    if resolved_mode == "stdio":
        await mcp.run_stdio_async()
    elif resolved_http_transport == "streamable":
        await mcp.run_streamable_http_async()
    else:
        await mcp.run_sse_async()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
