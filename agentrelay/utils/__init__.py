"""Utilities for agentrelay."""

from .logging_utils import (
    log_agent_response,
    log_error,
    log_handoff,
    log_model_selection,
    log_routing_decision,
    log_tool_call,
    log_tool_result,
    log_user_message,
    setup_logging,
)
from .message_utils import last_assistant_text, role_and_text, stringify_content, window_history
from .error_handler import (
    AgentNotFoundError,
    AgentRelayError,
    BudgetExceeded,
    ConfigurationError,
    HandoffCycleError,
    HandoffError,
    HandoffLimitExceeded,
    InvalidHandoffError,
    ProviderError,
    RunCancelled,
    ToolExecutionError,
    TurnBudgetExceeded,
    classify_provider_error,
    handle_model_error,
    with_error_boundary,
)

__all__ = [
    "setup_logging",
    "log_tool_call",
    "log_tool_result",
    "log_model_selection",
    "log_routing_decision",
    "log_handoff",
    "log_error",
    "log_user_message",
    "log_agent_response",
    "stringify_content",
    "role_and_text",
    "last_assistant_text",
    "window_history",
    "AgentRelayError",
    "ConfigurationError",
    "AgentNotFoundError",
    "HandoffError",
    "InvalidHandoffError",
    "HandoffCycleError",
    "HandoffLimitExceeded",
    "TurnBudgetExceeded",
    "ToolExecutionError",
    "BudgetExceeded",
    "ProviderError",
    "RunCancelled",
    "classify_provider_error",
    "handle_model_error",
    "with_error_boundary",
]
