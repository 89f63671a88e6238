"""Dispatch state machine built on LangGraph."""

from .decision import ContinueWithTools, Decision, FinalAnswer, Handoff, resolve_decision
from .state import DispatchPhase, ExecutionContext, RunLimits

__all__ = [
    "ContinueWithTools",
    "Decision",
    "FinalAnswer",
    "Handoff",
    "resolve_decision",
    "DispatchPhase",
    "ExecutionContext",
    "RunLimits",
]
