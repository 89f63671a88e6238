"""Usage accounting: token/cost extraction, accumulation and budgets."""

from .accounting import (
    EMPTY_USAGE,
    UsageAccumulator,
    UsageRecord,
    accumulate,
    check_budget,
    extract_usage,
    projected_cost,
)
from .formatting import format_cost, format_tokens, summarize_usage

__all__ = [
    "EMPTY_USAGE",
    "UsageAccumulator",
    "UsageRecord",
    "accumulate",
    "check_budget",
    "extract_usage",
    "projected_cost",
    "format_cost",
    "format_tokens",
    "summarize_usage",
]
