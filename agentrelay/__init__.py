"""Top-level package exports for agentrelay."""

from .agents import AgentDefinition, AgentRegistry, HandoffConfig, ModelRoutingPolicy
from .events import FinishPayload, RunEvent, RunHooks, UsageTrackingEvent
from .runtime import AgentRuntime, RetryPolicy, RunResult, StreamingRun, build_runtime
from .usage import UsageAccumulator, UsageRecord
from .utils.error_handler import (
    AgentNotFoundError,
    AgentRelayError,
    BudgetExceeded,
    ConfigurationError,
    HandoffCycleError,
    HandoffLimitExceeded,
    InvalidHandoffError,
    ProviderError,
    RunCancelled,
    ToolExecutionError,
    TurnBudgetExceeded,
)

__version__ = "0.1.0"

__all__ = [
    "AgentDefinition",
    "AgentRegistry",
    "HandoffConfig",
    "ModelRoutingPolicy",
    "FinishPayload",
    "RunEvent",
    "RunHooks",
    "UsageTrackingEvent",
    "AgentRuntime",
    "RetryPolicy",
    "RunResult",
    "StreamingRun",
    "build_runtime",
    "UsageAccumulator",
    "UsageRecord",
    "AgentNotFoundError",
    "AgentRelayError",
    "BudgetExceeded",
    "ConfigurationError",
    "HandoffCycleError",
    "HandoffLimitExceeded",
    "InvalidHandoffError",
    "ProviderError",
    "RunCancelled",
    "ToolExecutionError",
    "TurnBudgetExceeded",
]
