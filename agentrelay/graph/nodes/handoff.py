"""Handoff node: HANDING_OFF -> ACTIVE, or TERMINAL when the handoff is rejected.

Checks run in a fixed order:
1. The target must be one of the active agent's handoff targets
2. The target must not have been visited in this request (initial agent included)
3. The chain must stay within the per-request handoff ceiling

On success the source's HandoffConfig for the target decides which history
the target is prompted with (input_filter) and gets its own on_handoff call.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from langchain_core.messages import ToolMessage

from agentrelay.agents.handoff_filters import apply_input_filter
from agentrelay.agents.handoff_tools import HANDOFF_TOOL_NAME, transfer_message
from agentrelay.agents.registry import AgentRegistry
from agentrelay.agents.schema import Agent
from agentrelay.events import RunEvent, RunHooks, call_hook
from agentrelay.graph.decision import Handoff
from agentrelay.graph.state import DispatchPhase, ExecutionContext
from agentrelay.utils.error_handler import (
    HandoffCycleError,
    HandoffError,
    HandoffLimitExceeded,
    InvalidHandoffError,
    with_error_boundary,
)
from agentrelay.utils.logging_utils import log_handoff, log_node_entry

from .common import emit

LOGGER = logging.getLogger(__name__)


def validate_handoff(
    source: Agent,
    target: str,
    *,
    initial_agent: str,
    chain: Sequence[str],
    max_handoffs: int,
) -> None:
    """Raise the matching HandoffError if ``source`` may not hand off to ``target``."""
    if target not in source.handoff_targets:
        raise InvalidHandoffError(source.name, target, sorted(source.handoff_targets))

    visited = [initial_agent, *chain]
    if target in visited:
        raise HandoffCycleError(target, visited)

    if len(chain) >= max_handoffs:
        raise HandoffLimitExceeded(target, list(chain), max_handoffs)


def _tool_messages(decision: Handoff, content: str, *, ok: bool) -> List[ToolMessage]:
    """Answer the handoff call and any skipped sibling calls so history stays well-formed."""
    messages: List[ToolMessage] = []
    if decision.call_id:
        messages.append(
            ToolMessage(
                content=content,
                tool_call_id=decision.call_id,
                name=HANDOFF_TOOL_NAME,
                status="success" if ok else "error",
            )
        )
    for call in decision.skipped_calls:
        messages.append(
            ToolMessage(
                content=f"Skipped: control was transferred before {call.tool_name} ran.",
                tool_call_id=call.call_id,
                name=call.tool_name,
                status="error",
            )
        )
    return messages


def build_handoff_node(*, registry: AgentRegistry, hooks: RunHooks):
    @with_error_boundary("handoff")
    async def handoff_node(state: ExecutionContext) -> ExecutionContext:
        log_node_entry(LOGGER, "handoff", state)

        decision = state.get("decision")
        if not isinstance(decision, Handoff):
            raise HandoffError("Handoff node reached without a handoff decision")

        source = registry.lookup(state["active_agent"])
        chain = list(state.get("handoff_chain") or [])

        try:
            validate_handoff(
                source,
                decision.target,
                initial_agent=state["initial_agent"],
                chain=chain,
                max_handoffs=state["limits"].max_handoffs,
            )
        except HandoffError as e:
            LOGGER.warning(f"Handoff rejected: {e.message}")
            return {
                "messages": _tool_messages(decision, f"Error ({e.kind}): {e.message}", ok=False),
                "phase": DispatchPhase.TERMINAL,
                "error": e,
                "decision": None,
            }

        target = registry.lookup(decision.target)
        chain.append(target.name)
        log_handoff(LOGGER, source.name, target.name, chain, decision.reason)

        await emit(
            RunEvent(
                "agent-handoff",
                source.name,
                {"target": target.name, "reason": decision.reason, "handoff_chain": list(chain)},
            ),
            hooks,
        )
        await call_hook(hooks.on_handoff, source.name, target.name, decision.reason, name="on_handoff")

        config = source.handoff_config(target.name)
        if config.on_handoff is not None:
            await call_hook(
                config.on_handoff, source.name, target.name, decision.reason, name=f"on_handoff[{target.name}]"
            )

        await emit(
            RunEvent("agent-start", target.name, {"turns_remaining": target.max_turns, "reason": "handoff"}),
            hooks,
        )

        transfer = _tool_messages(decision, transfer_message(target.name, decision.context), ok=True)
        recorded = [*(state.get("messages") or []), *transfer]
        view = apply_input_filter(config.input_filter, recorded)
        LOGGER.debug(f"Handoff history for {target.name}: {len(view)} of {len(recorded)} messages")

        return {
            "messages": transfer,
            "handoff_history": view,
            "handoff_offset": len(recorded),
            "phase": DispatchPhase.ACTIVE,
            "active_agent": target.name,
            "turns_remaining": target.max_turns,
            "handoff_chain": chain,
            "decision": None,
        }

    return handoff_node
