"""Runtime assembly: AgentRuntime, streaming handles, retry and model wiring."""

from .app import AgentRuntime, RunOutcome, RunResult, build_runtime
from .model_resolver import build_model_resolver, resolve_model_configs
from .retry import NO_RETRY, RetryPolicy
from .streaming import StreamingRun

__all__ = [
    "AgentRuntime",
    "RunOutcome",
    "RunResult",
    "build_runtime",
    "build_model_resolver",
    "resolve_model_configs",
    "NO_RETRY",
    "RetryPolicy",
    "StreamingRun",
]
