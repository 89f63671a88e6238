"""Conditional routing helpers for the dispatch graph.

Every route reads only the dispatch phase (and, after the agent node, the
decision type), so the state machine stays exhaustive.
"""

from __future__ import annotations

import logging
from typing import Literal

from agentrelay.utils.logging_utils import log_routing_decision

from .decision import ContinueWithTools
from .state import DispatchPhase, ExecutionContext

LOGGER = logging.getLogger(__name__)


def route_after_select(state: ExecutionContext) -> Literal["agent", "handoff", "finalize"]:
    phase = state.get("phase")
    if phase == DispatchPhase.ACTIVE:
        decision, reason = "agent", f"{state.get('active_agent')} is active"
    elif phase == DispatchPhase.HANDING_OFF:
        decision, reason = "handoff", f"programmatic routing to {state['decision'].target}"
    else:
        decision, reason = "finalize", "initial agent could not be selected"
    log_routing_decision(LOGGER, "select", decision, reason)
    return decision


def route_after_agent(state: ExecutionContext) -> Literal["tools", "handoff", "finalize"]:
    """Route after a model response.

    Returns:
        "tools": Response requested tool calls
        "handoff": Response requested a handoff
        "finalize": Final answer, or the node failed
    """
    phase = state.get("phase")
    if phase == DispatchPhase.HANDING_OFF:
        decision, reason = "handoff", "model requested a handoff"
    elif phase == DispatchPhase.ACTIVE and isinstance(state.get("decision"), ContinueWithTools):
        decision, reason = "tools", f"{len(state['decision'].tool_calls)} tool call(s) requested"
    else:
        error = state.get("error")
        decision = "finalize"
        reason = f"{error.kind}" if error is not None else "final answer produced"
    log_routing_decision(LOGGER, "agent", decision, reason)
    return decision


def route_after_tools(state: ExecutionContext) -> Literal["agent", "finalize"]:
    if state.get("phase") == DispatchPhase.ACTIVE:
        decision, reason = "agent", f"{state.get('turns_remaining')} turn(s) remaining"
    else:
        error = state.get("error")
        decision, reason = "finalize", error.kind if error is not None else "terminated"
    log_routing_decision(LOGGER, "tools", decision, reason)
    return decision


def route_after_handoff(state: ExecutionContext) -> Literal["agent", "finalize"]:
    if state.get("phase") == DispatchPhase.ACTIVE:
        decision, reason = "agent", f"{state.get('active_agent')} took over"
    else:
        error = state.get("error")
        decision, reason = "finalize", error.kind if error is not None else "handoff rejected"
    log_routing_decision(LOGGER, "handoff", decision, reason)
    return decision
