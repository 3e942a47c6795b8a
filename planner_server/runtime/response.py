"""Response shaping helpers for planner tools."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, is_dataclass
from datetime import date
from enum import Enum
from typing import Any

from planner_server.lib.formatters import FINANCIAL_DISCLAIMER
from planner_server.planning.models import ValidationIssue


def convert_data(data: Any) -> Any:
    if is_dataclass(data) and not isinstance(data, type):
        return convert_data(asdict(data))
    if isinstance(data, Enum):
        return data.value
    if isinstance(data, date):
        return data.isoformat()
    if isinstance(data, (list, tuple)):
        return [convert_data(item) for item in data]
    if isinstance(data, dict):
        return {key: convert_data(value) for key, value in data.items()}
    return data


def success_payload(**fields: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"ok": True}
    payload.update({key: convert_data(value) for key, value in fields.items()})
    payload["disclaimer"] = FINANCIAL_DISCLAIMER
    return payload


def validation_error_payload(issues: list[ValidationIssue]) -> dict[str, Any]:
    return {
        "ok": False,
        "error": {
            "type": "validation_error",
            "errors": [
                {"field": issue.field, "message": issue.message, "row": issue.row, "code": issue.code}
                for issue in issues
            ],
        },
    }


def error_response(code: str, message: str) -> str:
    return json.dumps(
        {
            "ok": False,
            "error": {"type": "server_error", "code": code, "message": message},
            "timestamp": int(time.time()),
        },
        ensure_ascii=True,
    )
