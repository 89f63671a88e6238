"""Tools node - runs the tool calls of one continuation response."""

from __future__ import annotations

import logging

from agentrelay.agents.registry import AgentRegistry
from agentrelay.events import RunEvent, RunHooks
from agentrelay.graph.decision import ContinueWithTools
from agentrelay.graph.state import DispatchPhase, ExecutionContext
from agentrelay.tools.mediator import ToolMediator
from agentrelay.utils.error_handler import TurnBudgetExceeded, with_error_boundary
from agentrelay.utils.logging_utils import log_node_entry

from .common import emit

LOGGER = logging.getLogger(__name__)


def build_tools_node(*, registry: AgentRegistry, mediator: ToolMediator, hooks: RunHooks):
    @with_error_boundary("tools")
    async def tools_node(state: ExecutionContext) -> ExecutionContext:
        log_node_entry(LOGGER, "tools", state)

        agent = registry.lookup(state["active_agent"])
        decision = state.get("decision")
        calls = decision.tool_calls if isinstance(decision, ContinueWithTools) else ()

        # All calls settle before the turn advances
        results = await mediator.invoke_all(calls, registry.tools_for(agent))

        for result in results:
            await emit(
                RunEvent(
                    "tool-result",
                    agent.name,
                    {
                        "tool_name": result.tool_name,
                        "call_id": result.call_id,
                        "ok": result.ok,
                        "cache_hit": result.cache_hit,
                        "error_kind": result.error_kind,
                    },
                ),
                hooks,
            )

        update: ExecutionContext = {
            "messages": [result.to_message() for result in results],
            "tool_invocations": state.get("tool_invocations", 0) + len(results),
            "decision": None,
        }

        if state["turns_remaining"] <= 0:
            # Tool results stay in history so the partial answer is replayable
            error = TurnBudgetExceeded(agent.name, agent.max_turns)
            LOGGER.warning(error.message)
            update["phase"] = DispatchPhase.TERMINAL
            update["error"] = error
        else:
            update["phase"] = DispatchPhase.ACTIVE
        return update

    return tools_node
