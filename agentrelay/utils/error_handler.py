"""Unified error handling for agentrelay graph nodes and providers."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Sequence

LOGGER = logging.getLogger(__name__)


class AgentRelayError(Exception):
    """Base exception for agentrelay errors.

    ``recoverable`` tells the runtime whether the request can still return a
    best-effort answer (partial output, routing fallback) or must be reported
    as a plain failure.
    """

    recoverable: bool = True

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
        }


class ConfigurationError(AgentRelayError):
    """Bad registry or runtime setup. Raised at startup, never per request."""

    recoverable = False


class AgentNotFoundError(AgentRelayError):
    """Lookup of an agent name that was never registered."""

    recoverable = False

    def __init__(self, name: str):
        super().__init__(f"Agent not registered: {name}", "The requested agent does not exist.")
        self.name = name


class HandoffError(AgentRelayError):
    """Base class for handoff failures."""


class InvalidHandoffError(HandoffError):
    """The model asked for a target outside the active agent's handoff targets."""

    def __init__(self, source: str, target: str, allowed: Sequence[str]):
        allowed_text = ", ".join(sorted(allowed)) or "none"
        super().__init__(
            f"Agent '{source}' cannot hand off to '{target}' (allowed: {allowed_text})",
            "I was unable to route your request to the right specialist.",
        )
        self.source = source
        self.target = target
        self.allowed = tuple(sorted(allowed))


class HandoffCycleError(HandoffError):
    """A handoff would revisit an agent already visited in this request."""

    def __init__(self, target: str, chain: Sequence[str], message: Optional[str] = None):
        path = " -> ".join(list(chain) + [target])
        super().__init__(
            message or f"Handoff cycle detected: {path}",
            "I was unable to route your request to the right specialist.",
        )
        self.target = target
        self.chain = tuple(chain)


class HandoffLimitExceeded(HandoffCycleError):
    """The handoff chain would grow past the configured ceiling."""

    def __init__(self, target: str, chain: Sequence[str], max_handoffs: int):
        super().__init__(
            target,
            chain,
            f"Handoff to '{target}' exceeds the limit of {max_handoffs} handoff(s) per request "
            f"(chain: {list(chain)})",
        )
        self.max_handoffs = max_handoffs


class TurnBudgetExceeded(AgentRelayError):
    """The active agent used all of its turns without producing an answer."""

    def __init__(self, agent: str, max_turns: int):
        super().__init__(
            f"Agent '{agent}' exhausted its turn budget ({max_turns} turn(s))",
            "I ran out of steps before finishing. Here is what I have so far.",
        )
        self.agent = agent
        self.max_turns = max_turns


class ToolExecutionError(AgentRelayError):
    """Error during tool execution. Fed back to the model as a tool result."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class BudgetExceeded(AgentRelayError):
    """Cumulative (actual or projected) cost would pass the configured ceiling."""

    def __init__(self, spent: Decimal, limit: Decimal, projected: Optional[Decimal] = None):
        projected = spent if projected is None else projected
        super().__init__(
            f"Cost budget exceeded: spent ${spent}, projected ${projected}, limit ${limit}",
            "The cost limit for this request was reached. Returning what was produced so far.",
        )
        self.spent = spent
        self.limit = limit
        self.projected = projected


class ProviderError(AgentRelayError):
    """Underlying model call failed (network, rate limit, auth, ...)."""

    recoverable = False

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        *,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, user_message)
        self.retryable = retryable
        self.status_code = status_code


class RunCancelled(AgentRelayError):
    """The caller cancelled the request."""

    def __init__(self) -> None:
        super().__init__("Request cancelled by caller", "The request was cancelled.")


_RETRYABLE_MARKERS = ("rate_limit", "rate limit", "429", "timeout", "timed out", "connection", "overloaded")
_FATAL_MARKERS = ("invalid_api_key", "authentication", "unauthorized", "quota", "insufficient", "context_length")


def classify_provider_error(error: BaseException) -> ProviderError:
    """Convert a raw model client exception into a ProviderError.

    Rate limits, timeouts, connection failures and 5xx responses are marked
    retryable. Authentication, quota and context-length failures are not.
    """
    if isinstance(error, ProviderError):
        return error

    status_code = getattr(error, "status_code", None)
    if not isinstance(status_code, int):
        status_code = None
    error_str = f"{type(error).__name__}: {error}".lower()

    if any(marker in error_str for marker in _FATAL_MARKERS):
        retryable = False
    elif status_code is not None:
        retryable = status_code == 429 or status_code >= 500
    else:
        retryable = isinstance(error, (asyncio.TimeoutError, ConnectionError)) or any(
            marker in error_str for marker in _RETRYABLE_MARKERS
        )

    return ProviderError(
        f"Model call failed: {type(error).__name__}: {error}",
        handle_model_error(error),
        retryable=retryable,
        status_code=status_code,
    )


def handle_model_error(error: BaseException) -> str:
    """Convert model invocation errors to user-friendly messages."""
    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "The model provider is rate limiting requests, please try again later."

    if "timeout" in error_str or "timed out" in error_str:
        return "The model took too long to respond, please retry."

    if "context_length" in error_str:
        return "The conversation is too long for the model, please start a new session."

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "The model API key is invalid, please contact the administrator."

    if "quota" in error_str or "insufficient" in error_str:
        return "The model provider quota is exhausted, please contact the administrator."

    return f"The model service is temporarily unavailable: {error}"


def with_error_boundary(node_name: str):
    """Decorator to add an error boundary to graph nodes.

    Any error raised inside the node ends the request: the node returns a
    terminal state update carrying the error instead of raising through the
    graph. Cancellation is not an Exception and is never caught here.

    Example:
        @with_error_boundary("agent")
        async def agent_node(state: ExecutionContext) -> dict:
            ...
    """
    from agentrelay.graph.state import DispatchPhase

    def _terminal(error: Exception) -> Dict[str, Any]:
        if isinstance(error, AgentRelayError):
            LOGGER.error(f"{node_name} failed with {error.kind}: {error}")
            relay_error = error
        else:
            LOGGER.exception(f"{node_name} unexpected error", exc_info=error)
            relay_error = AgentRelayError(
                f"Unexpected error in {node_name}: {type(error).__name__}: {error}",
                "Something went wrong while handling your request. Please retry.",
            )
        return {"phase": DispatchPhase.TERMINAL, "error": relay_error}

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def sync_wrapper(state, *args, **kwargs):
            try:
                return func(state, *args, **kwargs)
            except Exception as e:
                return _terminal(e)

        @functools.wraps(func)
        async def async_wrapper(state, *args, **kwargs):
            try:
                return await func(state, *args, **kwargs)
            except Exception as e:
                return _terminal(e)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
