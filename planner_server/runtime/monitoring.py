"""Structured tool-event logging."""

from __future__ import annotations

import json
import logging
import time

LOGGER = logging.getLogger(__name__)
SLOW_TOOL_MS = 2000.0


def log_tool_event(
    tool: str,
    latency_ms: float,
    success: bool,
    subject: str | None = None,
    warning: str | None = None,
) -> None:
    payload = {
        "tool": tool,
        "subject": subject,
        "latency_ms": round(latency_ms, 3),
        "success": success,
        "timestamp": int(time.time()),
    }
    if warning is None and latency_ms > SLOW_TOOL_MS:
        warning = "slow_response"
    if warning:
        payload["warning"] = warning
    LOGGER.info(json.dumps(payload, ensure_ascii=True))
