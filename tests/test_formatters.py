from planner_server.lib.formatters import (
    FINANCIAL_DISCLAIMER,
    format_inr,
    format_inr_compact,
    format_response,
    line_money,
    line_percent,
)


def test_format_response_includes_disclaimer() -> None:
    output = format_response("Title", ["a", "b"], warning="Y")
    assert output.startswith("Title")
    assert "Warning: Y" in output
    assert FINANCIAL_DISCLAIMER in output
    assert FINANCIAL_DISCLAIMER not in format_response("Title", [], include_disclaimer=False)


def test_indian_digit_grouping() -> None:
    assert format_inr(3000000) == "₹30,00,000"
    assert format_inr(96214064.4) == "₹9,62,14,064"
    assert format_inr(950) == "₹950"
    assert format_inr(-20000) == "-₹20,000"
    assert format_inr(None) == "n/a"


def test_compact_amounts() -> None:
    assert format_inr_compact(250000) == "₹2.5L"
    assert format_inr_compact(66700) == "₹67K"
    assert format_inr_compact(25000000) == "₹2.50Cr"
    assert format_inr_compact(500) == "₹500"


def test_line_helpers() -> None:
    assert line_money("Buy A", 20000) == "Buy A: ₹20,000"
    assert line_percent("Coverage", 50) == "Coverage: 50.00%"
