"""Response formatting helpers."""

from __future__ import annotations

FINANCIAL_DISCLAIMER = "Informational use only. This is not financial advice."
RUPEE = "₹"


def _group_indian(whole: str) -> str:
    if len(whole) <= 3:
        return whole
    head, tail = whole[:-3], whole[-3:]
    pairs: list[str] = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_inr(value: float | None) -> str:
    """Whole-rupee amount with Indian digit grouping, e.g. 30,00,000."""
    if value is None:
        return "n/a"
    rounded = int(round(value))
    sign = "-" if rounded < 0 else ""
    return f"{sign}{RUPEE}{_group_indian(str(abs(rounded)))}"


def format_inr_compact(value: float | None) -> str:
    if value is None:
        return "n/a"
    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    if magnitude >= 10_000_000:
        return f"{sign}{RUPEE}{magnitude / 10_000_000:.2f}Cr"
    if magnitude >= 100_000:
        return f"{sign}{RUPEE}{magnitude / 100_000:.1f}L"
    if magnitude >= 1000:
        return f"{sign}{RUPEE}{magnitude / 1000:.0f}K"
    return f"{sign}{RUPEE}{round(magnitude)}"


def _fmt_percent(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2f}%"


def format_response(
    title: str,
    lines: list[str],
    warning: str | None = None,
    include_disclaimer: bool = True,
) -> str:
    chunks: list[str] = [title]
    if warning:
        chunks.append(f"Warning: {warning}")
    chunks.extend(lines)
    if include_disclaimer:
        chunks.extend(["---", FINANCIAL_DISCLAIMER])
    return "\n".join(chunks)


def line_money(label: str, value: float | None) -> str:
    return f"{label}: {format_inr(value)}"


def line_percent(label: str, value: float | None) -> str:
    return f"{label}: {_fmt_percent(value)}"
