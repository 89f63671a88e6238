"""Select node: SELECTING -> ACTIVE (or HANDING_OFF for programmatic routing).

Programmatic routing happens before the first model call:
- ``agent_choice`` hands off to the named agent
- ``tool_choice`` hands off to the first handoff target (by name) that owns
  the tool, unless the initial agent owns it already
"""

from __future__ import annotations

import logging
from typing import Optional

from agentrelay.agents.registry import AgentRegistry
from agentrelay.agents.schema import Agent
from agentrelay.events import RunEvent, RunHooks
from agentrelay.graph.decision import Handoff
from agentrelay.graph.state import DispatchPhase, ExecutionContext
from agentrelay.utils.error_handler import with_error_boundary
from agentrelay.utils.logging_utils import log_node_entry

from .common import emit

LOGGER = logging.getLogger(__name__)

EXPLICIT_CHOICE_REASON = "explicit agent choice"


def tool_choice_reason(tool_name: str) -> str:
    return f"requested tool: {tool_name}"


def find_tool_owner(registry: AgentRegistry, agent: Agent, tool_name: str) -> Optional[str]:
    """Name of the handoff target of ``agent`` that owns ``tool_name``, if any."""
    for target in sorted(agent.handoff_targets):
        candidate = registry.get(target)
        if candidate is not None and tool_name in candidate.tools:
            return candidate.name
    return None


def build_select_node(*, registry: AgentRegistry, hooks: RunHooks):
    @with_error_boundary("select")
    async def select_node(state: ExecutionContext) -> ExecutionContext:
        log_node_entry(LOGGER, "select", state)

        agent = registry.lookup(state["initial_agent"])
        LOGGER.info(f"Initial agent: {agent.name} (max_turns={agent.max_turns})")
        await emit(
            RunEvent("agent-start", agent.name, {"turns_remaining": agent.max_turns, "reason": "initial"}),
            hooks,
        )

        update: ExecutionContext = {
            "phase": DispatchPhase.ACTIVE,
            "active_agent": agent.name,
            "turns_remaining": agent.max_turns,
        }

        choice = state.get("agent_choice")
        tool_choice = state.get("tool_choice")
        if choice:
            if choice != agent.name:
                LOGGER.info(f"Explicit agent choice: {choice}")
                update["phase"] = DispatchPhase.HANDING_OFF
                update["decision"] = Handoff(target=choice, reason=EXPLICIT_CHOICE_REASON)
        elif tool_choice and tool_choice not in agent.tools:
            owner = find_tool_owner(registry, agent, tool_choice)
            if owner is None:
                LOGGER.warning(f"No handoff target of {agent.name} owns tool '{tool_choice}', not routing")
            else:
                LOGGER.info(f"Tool choice routing: {tool_choice} -> {owner}")
                update["phase"] = DispatchPhase.HANDING_OFF
                update["decision"] = Handoff(target=owner, reason=tool_choice_reason(tool_choice))

        return update

    return select_node
