"""Run events and caller hooks.

Hooks are plain callables or coroutine functions supplied per runtime. A
failing hook is logged and never fails the request it observes.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Mapping, Optional, Tuple, Union

from agentrelay.usage.accounting import EMPTY_USAGE, UsageRecord

LOGGER = logging.getLogger(__name__)

RunEventType = Literal[
    "agent-start",
    "agent-handoff",
    "tool-result",
    "text-delta",
    "budget-warning",
    "agent-finish",
    "agent-error",
]


@dataclass(frozen=True, slots=True)
class RunEvent:
    """Progress notification emitted while a request runs."""

    type: RunEventType
    agent: Optional[str] = None
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Delta text for ``text-delta`` events, empty otherwise."""
        return str(self.data.get("delta", "")) if self.type == "text-delta" else ""


@dataclass(frozen=True, slots=True)
class UsageTrackingEvent:
    """Usage of a single model response, delivered to ``on_usage``."""

    agent_name: str
    usage: UsageRecord
    provider_metadata: Mapping[str, Any]
    method: Literal["generate", "stream"]
    handoff_chain: Tuple[str, ...] = ()
    session_id: Optional[str] = None
    finish_reason: Optional[str] = None
    duration_ms: float = 0.0
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class FinishPayload:
    """Terminal payload delivered to ``on_finish`` for every request."""

    text: str
    provider_metadata: Mapping[str, Any] = field(default_factory=dict)
    usage: UsageRecord = EMPTY_USAGE
    agent: Optional[str] = None
    outcome: str = "completed"


Hook = Callable[..., Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class RunHooks:
    """Caller supplied callbacks, scoped to one runtime instance.

    Attributes:
        on_finish: Receives a FinishPayload when a request terminates
        on_usage: Receives a UsageTrackingEvent after every model response
        on_usage_error: Receives (exception, UsageTrackingEvent) when on_usage fails
        on_event: Receives every RunEvent (agent start, handoff, tool results, ...)
        on_handoff: Receives (source, target, reason) for each accepted handoff
    """

    on_finish: Optional[Hook] = None
    on_usage: Optional[Hook] = None
    on_usage_error: Optional[Hook] = None
    on_event: Optional[Hook] = None
    on_handoff: Optional[Hook] = None


async def call_hook(hook: Optional[Hook], *args: Any, name: str = "hook") -> Optional[Exception]:
    """Invoke a sync or async hook.

    Returns:
        The exception raised by the hook, or None on success
    """
    if hook is None:
        return None
    try:
        result = hook(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        LOGGER.exception(f"{name} hook failed", exc_info=e)
        return e
    return None
