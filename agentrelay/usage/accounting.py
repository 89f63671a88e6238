"""Token and cost accounting.

Every model response carries provider metadata in whatever shape the provider
chose. ``extract_usage`` is the single place that knows those shapes; the rest
of the runtime only ever sees ``UsageRecord``.

Supported layouts, checked in order:

- OpenRouter provider metadata: ``{"openrouter": {"usage": {"promptTokens": ..., "cost": ...}}}``
- OpenAI style response metadata: ``{"token_usage": {"prompt_tokens": ...}}`` or ``{"usage": {...}}``
- LangChain usage metadata: ``{"usage_metadata": {"input_tokens": ..., "output_tokens": ...}}``

Costs are kept as ``Decimal`` so that accumulation is exact and the order in
which records are added never changes the total.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from agentrelay.utils.error_handler import BudgetExceeded

from .formatting import summarize_usage

LOGGER = logging.getLogger(__name__)

CostLike = Union[Decimal, float, int, str]

ZERO_COST = Decimal("0")


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """Normalized token/cost metrics for one or more model responses.

    ``present`` is False when the provider reported nothing usable and the
    zero defaults were substituted. ``request_count`` is 1 for a record
    extracted from a single response and the number of responses for a
    running total.
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: Decimal = ZERO_COST
    present: bool = False
    cached_tokens: int = 0
    reasoning_tokens: int = 0
    request_count: int = 0

    def __add__(self, other: object) -> "UsageRecord":
        if not isinstance(other, UsageRecord):
            return NotImplemented
        return accumulate(self, other)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": float(self.cost_usd),
            "present": self.present,
            "cached_tokens": self.cached_tokens,
            "reasoning_tokens": self.reasoning_tokens,
            "request_count": self.request_count,
        }


EMPTY_USAGE = UsageRecord()


# ========== Extraction ==========

_USAGE_BLOCK_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("openrouter", "usage"),
    ("token_usage",),
    ("usage",),
    ("usage_metadata",),
)

_PROMPT_KEYS = ("prompt_tokens", "promptTokens", "input_tokens", "inputTokens")
_COMPLETION_KEYS = ("completion_tokens", "completionTokens", "output_tokens", "outputTokens")
_TOTAL_KEYS = ("total_tokens", "totalTokens")
_COST_KEYS = ("cost", "total_cost", "cost_usd", "costUsd")

_PROMPT_DETAIL_KEYS = ("prompt_tokens_details", "promptTokensDetails", "input_token_details")
_CACHED_KEYS = ("cached_tokens", "cachedTokens", "cache_read")
_COMPLETION_DETAIL_KEYS = ("completion_tokens_details", "completionTokensDetails", "output_token_details")
_REASONING_KEYS = ("reasoning_tokens", "reasoningTokens", "reasoning")


def _dig(data: Any, path: Iterable[str]) -> Optional[Mapping[str, Any]]:
    current = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current if isinstance(current, Mapping) else None


def _coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed >= 0 else None
    return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a non-negative finite cost value, or return None."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (Decimal, int, float, str)):
        return None
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not parsed.is_finite() or parsed < 0:
        return None
    return parsed


def _first(block: Mapping[str, Any], keys: Tuple[str, ...], parse: Callable[[Any], Any]) -> Any:
    for key in keys:
        if key in block:
            parsed = parse(block[key])
            if parsed is not None:
                return parsed
    return None


def _detail(block: Mapping[str, Any], detail_keys: Tuple[str, ...], keys: Tuple[str, ...]) -> int:
    for detail_key in detail_keys:
        details = block.get(detail_key)
        if isinstance(details, Mapping):
            value = _first(details, keys, _coerce_int)
            if value is not None:
                return value
    return 0


def _record_from_block(block: Mapping[str, Any]) -> UsageRecord:
    prompt = _first(block, _PROMPT_KEYS, _coerce_int)
    completion = _first(block, _COMPLETION_KEYS, _coerce_int)
    total = _first(block, _TOTAL_KEYS, _coerce_int)
    cost = _first(block, _COST_KEYS, to_decimal)

    present = prompt is not None and completion is not None
    if total is None:
        total = (prompt or 0) + (completion or 0)

    return UsageRecord(
        prompt_tokens=prompt or 0,
        completion_tokens=completion or 0,
        total_tokens=total,
        cost_usd=cost if cost is not None else ZERO_COST,
        present=present,
        cached_tokens=_detail(block, _PROMPT_DETAIL_KEYS, _CACHED_KEYS),
        reasoning_tokens=_detail(block, _COMPLETION_DETAIL_KEYS, _REASONING_KEYS),
        request_count=1,
    )


def extract_usage(provider_metadata: Any) -> UsageRecord:
    """Normalize provider metadata of one model response into a UsageRecord.

    Never raises. Missing or malformed token counts default to zero with
    ``present=False``. A missing cost defaults to zero without affecting
    ``present`` (many providers report tokens but not cost).

    Args:
        provider_metadata: Opaque nested metadata attached to a response

    Returns:
        UsageRecord with request_count == 1
    """
    fallback: Optional[UsageRecord] = None
    for path in _USAGE_BLOCK_PATHS:
        block = _dig(provider_metadata, path)
        if block is None:
            continue
        record = _record_from_block(block)
        if record.present:
            return record
        if fallback is None:
            fallback = record

    if fallback is None:
        LOGGER.debug("No usage block found in provider metadata")
        return UsageRecord(request_count=1)
    LOGGER.debug("Usage block found but token counts are missing or malformed")
    return fallback


# ========== Accumulation ==========

def accumulate(running: UsageRecord, record: UsageRecord) -> UsageRecord:
    """Add two usage records field by field.

    Associative and commutative: token counts are integers, costs are
    Decimals, and ``present`` combines with ``or``.
    """
    return UsageRecord(
        prompt_tokens=running.prompt_tokens + record.prompt_tokens,
        completion_tokens=running.completion_tokens + record.completion_tokens,
        total_tokens=running.total_tokens + record.total_tokens,
        cost_usd=running.cost_usd + record.cost_usd,
        present=running.present or record.present,
        cached_tokens=running.cached_tokens + record.cached_tokens,
        reasoning_tokens=running.reasoning_tokens + record.reasoning_tokens,
        request_count=running.request_count + record.request_count,
    )


def projected_cost(running: UsageRecord) -> Decimal:
    """Estimate the cost of the next model call as the mean cost per call so far."""
    if running.request_count <= 0:
        return ZERO_COST
    return running.cost_usd / running.request_count


def check_budget(
    running: UsageRecord,
    max_cost_usd: Optional[CostLike],
    projected: CostLike = ZERO_COST,
) -> None:
    """Raise BudgetExceeded if actual or projected cumulative cost passes the ceiling.

    The runtime calls this before every model call with
    ``projected=projected_cost(running)``, so the call that would push the
    total over the ceiling is never issued. Reaching the ceiling exactly is
    allowed.

    Args:
        running: Accumulated usage of the request so far
        max_cost_usd: Ceiling in USD, None disables the check
        projected: Expected cost of the next call

    Raises:
        BudgetExceeded: Actual or projected cost exceeds the ceiling
    """
    if max_cost_usd is None:
        return
    limit = to_decimal(max_cost_usd)
    if limit is None:
        raise ValueError(f"Invalid cost ceiling: {max_cost_usd!r}")

    spent = running.cost_usd
    if spent > limit:
        raise BudgetExceeded(spent=spent, limit=limit)

    estimate = spent + (to_decimal(projected) or ZERO_COST)
    if estimate > limit:
        raise BudgetExceeded(spent=spent, limit=limit, projected=estimate)


class UsageAccumulator:
    """Running usage total across several requests (e.g. one chat session).

    Fires ``on_budget_warning`` once when spending reaches ``warning_ratio``
    of the ceiling.

    Example:
        accumulator = UsageAccumulator(max_cost_usd=2.0, on_budget_warning=print)
        accumulator.add(result.usage)
        accumulator.check()  # raises BudgetExceeded once over budget
    """

    def __init__(
        self,
        max_cost_usd: Optional[CostLike] = None,
        *,
        warning_ratio: float = 0.9,
        on_budget_warning: Optional[Callable[[UsageRecord], None]] = None,
    ) -> None:
        self.max_cost_usd = to_decimal(max_cost_usd) if max_cost_usd is not None else None
        self.warning_ratio = Decimal(str(warning_ratio))
        self._on_budget_warning = on_budget_warning
        self._totals = EMPTY_USAGE
        self._warned = False

    @property
    def totals(self) -> UsageRecord:
        return self._totals

    @property
    def request_count(self) -> int:
        return self._totals.request_count

    @property
    def remaining_budget(self) -> Optional[Decimal]:
        if self.max_cost_usd is None:
            return None
        return max(ZERO_COST, self.max_cost_usd - self._totals.cost_usd)

    def add(self, record: UsageRecord) -> UsageRecord:
        self._totals = accumulate(self._totals, record)

        if (
            self.max_cost_usd is not None
            and not self._warned
            and self._totals.cost_usd >= self.max_cost_usd * self.warning_ratio
        ):
            self._warned = True
            LOGGER.warning(
                f"Usage at {self._totals.cost_usd} of {self.max_cost_usd} USD budget"
            )
            if self._on_budget_warning is not None:
                self._on_budget_warning(self._totals)

        return self._totals

    def check(self) -> None:
        """Raise BudgetExceeded if the next request would likely pass the ceiling."""
        check_budget(self._totals, self.max_cost_usd, projected_cost(self._totals))

    def reset(self) -> None:
        self._totals = EMPTY_USAGE
        self._warned = False

    def summarize(self, detailed: bool = False) -> str:
        return summarize_usage(self._totals, detailed=detailed)
