"""Human readable usage formatting."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .accounting import UsageRecord

_SCIENTIFIC_BELOW = Decimal("0.000001")


def format_cost(cost: Optional[Any]) -> str:
    """Format a USD cost: ``$0.000123``, or scientific notation below a millionth."""
    if cost is None:
        return "N/A"
    value = cost if isinstance(cost, Decimal) else Decimal(str(cost))
    if 0 < value < _SCIENTIFIC_BELOW:
        return f"${float(value):.2e}"
    return f"${value:.6f}"


def format_tokens(count: Optional[int]) -> str:
    """Format a token count with thousands separators."""
    if count is None:
        return "N/A"
    return f"{count:,}"


def summarize_usage(usage: "UsageRecord", detailed: bool = False) -> str:
    """One-line usage summary.

    Example:
        >>> summarize_usage(record)
        'Tokens: 1,750 (prompt: 1,500, completion: 250) | Cost: $0.000420'
    """
    parts = [
        f"Tokens: {format_tokens(usage.total_tokens)} "
        f"(prompt: {format_tokens(usage.prompt_tokens)}, completion: {format_tokens(usage.completion_tokens)})",
        f"Cost: {format_cost(usage.cost_usd)}",
    ]

    if detailed:
        if usage.cached_tokens:
            parts.append(f"Cached: {format_tokens(usage.cached_tokens)}")
        if usage.reasoning_tokens:
            parts.append(f"Reasoning: {format_tokens(usage.reasoning_tokens)}")
        if usage.request_count > 1:
            parts.append(f"Requests: {usage.request_count}")
            parts.append(f"Avg cost/request: {format_cost(usage.cost_usd / usage.request_count)}")

    if not usage.present:
        parts.append("(usage not reported by provider)")

    return " | ".join(parts)
