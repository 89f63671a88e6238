"""Shared state definition for the dispatch graph."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph import add_messages

from agentrelay.usage.accounting import UsageRecord
from agentrelay.utils.error_handler import AgentRelayError

from .decision import Decision


class DispatchPhase(str, Enum):
    """Dispatcher state machine phases."""

    SELECTING = "selecting"
    ACTIVE = "active"
    HANDING_OFF = "handing_off"
    TERMINAL = "terminal"


@dataclass(frozen=True, slots=True)
class RunLimits:
    """Per-request limits, fixed when the request starts."""

    max_handoffs: int = 1
    max_cost_usd: Optional[Decimal] = None
    budget_warning_ratio: float = 0.9


class ExecutionContext(TypedDict, total=False):
    """Per-request state owned by exactly one in-flight request.

    Created when the request starts and dropped when the graph reaches END.
    Agents and the tool cache live outside this state and are shared.
    """

    # ========== Request ==========
    request_id: str
    session_id: Optional[str]
    context: Dict[str, Any]  # Caller context passed to instructions and hooks
    stream: bool  # Use the provider's streaming variant and emit text-delta events
    limits: RunLimits
    agent_choice: Optional[str]  # Programmatic handoff before the first model call
    tool_choice: Optional[str]  # Hand off to the specialist owning this tool before the first model call

    # ========== Dispatch ==========
    phase: DispatchPhase
    initial_agent: str
    active_agent: Optional[str]
    turns_remaining: int
    handoff_chain: List[str]  # Agents entered through handoffs, initial agent excluded
    decision: Optional[Decision]  # Last resolved decision of the active agent

    # ========== History ==========
    messages: Annotated[List[BaseMessage], add_messages]
    handoff_history: Optional[List[BaseMessage]]  # Filtered view of messages[:handoff_offset] for the active agent
    handoff_offset: int

    # ========== Accounting ==========
    usage: UsageRecord
    budget_warned: bool
    tool_invocations: int
    last_provider_metadata: Dict[str, Any]

    # ========== Outcome ==========
    final_text: str
    error: Optional[AgentRelayError]
