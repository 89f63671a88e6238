"""Factory for assembling the dispatch state machine.

    START → select ─┬─────────────→ handoff ⇄ agent ⇄ tools
                    └→ agent ─────────↑         │
                                                ↓
                                   finalize → END

- select: SELECTING → ACTIVE (initial agent) or HANDING_OFF (agent_choice or tool_choice)
- agent: one model round-trip; resolves ContinueWithTools / Handoff / FinalAnswer
- tools: runs the tool calls of a continuation; TurnBudgetExceeded at zero turns
- handoff: validates and performs the transfer, resetting the turn budget
- finalize: settles the caller-visible answer for every outcome
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langgraph.graph import END, START, StateGraph

from agentrelay.agents.registry import AgentRegistry
from agentrelay.events import RunHooks
from agentrelay.models.provider import ModelProvider
from agentrelay.tools.mediator import ToolMediator

from .nodes import build_agent_node, build_finalize_node, build_handoff_node, build_select_node, build_tools_node
from .routing import route_after_agent, route_after_handoff, route_after_select, route_after_tools
from .state import ExecutionContext

if TYPE_CHECKING:
    from agentrelay.runtime.retry import RetryPolicy

LOGGER = logging.getLogger(__name__)


def build_dispatch_graph(
    *,
    registry: AgentRegistry,
    provider: ModelProvider,
    mediator: ToolMediator,
    retry_policy: RetryPolicy,
    hooks: RunHooks,
    log_prompt_max_length: int = 500,
):
    """Compose and compile the dispatch graph. No checkpointer: state lives for one request."""

    # ========== Build nodes ==========
    select_node = build_select_node(registry=registry, hooks=hooks)
    agent_node = build_agent_node(
        registry=registry,
        provider=provider,
        retry_policy=retry_policy,
        hooks=hooks,
        log_prompt_max_length=log_prompt_max_length,
    )
    tools_node = build_tools_node(registry=registry, mediator=mediator, hooks=hooks)
    handoff_node = build_handoff_node(registry=registry, hooks=hooks)
    finalize_node = build_finalize_node(hooks=hooks)

    # ========== Build graph ==========
    graph = StateGraph(ExecutionContext)
    graph.add_node("select", select_node)
    graph.add_node("agent", agent_node)
    graph.add_node("tools", tools_node)
    graph.add_node("handoff", handoff_node)
    graph.add_node("finalize", finalize_node)

    graph.add_edge(START, "select")
    graph.add_conditional_edges(
        "select",
        route_after_select,
        {"agent": "agent", "handoff": "handoff", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "agent",
        route_after_agent,
        {"tools": "tools", "handoff": "handoff", "finalize": "finalize"},
    )
    graph.add_conditional_edges("tools", route_after_tools, {"agent": "agent", "finalize": "finalize"})
    graph.add_conditional_edges("handoff", route_after_handoff, {"agent": "agent", "finalize": "finalize"})
    graph.add_edge("finalize", END)

    LOGGER.debug(f"Dispatch graph built for {len(registry)} agent(s)")
    return graph.compile()
