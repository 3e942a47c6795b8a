"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

LUMPSUM_SOURCES = ("explicit", "budget", "suggested")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the planner server and its planning defaults."""

    app_name: str = "family-finance-planner"
    app_version: str = "1.0.0"
    transport_mode: str = "auto"
    http_transport: str = "sse"
    host: str = "0.0.0.0"
    port: int = 8000
    mcp_path: str = "/mcp"
    health_path: str = "/health"
    log_level: str = "INFO"
    default_rebalance_threshold: float = 0.05
    trade_noise_floor: float = 500.0
    lumpsum_rounding_step: float = 100.0
    sip_change_tolerance: float = 10.0
    default_emergency_months: int = 6
    retirement_corpus_multiple: float = 25.0
    lumpsum_precedence: tuple[str, ...] = LUMPSUM_SOURCES


def _as_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _as_precedence(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None or value == "":
        return default
    sources = tuple(part.strip().lower() for part in value.split(",") if part.strip())
    if not sources or any(source not in LUMPSUM_SOURCES for source in sources):
        return default
    return sources


def get_settings() -> Settings:
    """Load runtime settings from environment variables."""
    load_dotenv()

    return Settings(
        transport_mode=os.getenv("TRANSPORT_MODE", "auto").strip().lower(),
        http_transport=os.getenv("HTTP_TRANSPORT", "sse").strip().lower(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int(os.getenv("PORT"), 8000),
        mcp_path=os.getenv("MCP_PATH", "/mcp"),
        health_path=os.getenv("HEALTH_PATH", "/health"),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        default_rebalance_threshold=_as_float(os.getenv("DEFAULT_REBALANCE_THRESHOLD"), 0.05),
        trade_noise_floor=_as_float(os.getenv("TRADE_NOISE_FLOOR"), 500.0),
        lumpsum_rounding_step=_as_float(os.getenv("LUMPSUM_ROUNDING_STEP"), 100.0),
        sip_change_tolerance=_as_float(os.getenv("SIP_CHANGE_TOLERANCE"), 10.0),
        default_emergency_months=_as_int(os.getenv("DEFAULT_EMERGENCY_MONTHS"), 6),
        retirement_corpus_multiple=_as_float(os.getenv("RETIREMENT_CORPUS_MULTIPLE"), 25.0),
        lumpsum_precedence=_as_precedence(os.getenv("LUMPSUM_PRECEDENCE"), LUMPSUM_SOURCES),
    )
