"""Finalize node - settles the caller-visible answer of a terminated request.

No model call happens here. The answer is:
- the final answer text when the request completed
- the last assistant text (partial output) for turn and cost budget errors
- the error's user message for rejected handoffs and unrecoverable failures
"""

from __future__ import annotations

import logging

from agentrelay.events import RunEvent, RunHooks
from agentrelay.graph.state import DispatchPhase, ExecutionContext
from agentrelay.usage.accounting import EMPTY_USAGE
from agentrelay.utils.error_handler import AgentRelayError, BudgetExceeded, TurnBudgetExceeded
from agentrelay.utils.logging_utils import log_node_entry
from agentrelay.utils.message_utils import last_assistant_text

from .common import emit

LOGGER = logging.getLogger(__name__)


def settle_text(state: ExecutionContext) -> str:
    error = state.get("error")
    partial = last_assistant_text(list(state.get("messages") or []))

    if error is None:
        return state.get("final_text") or partial
    if isinstance(error, (TurnBudgetExceeded, BudgetExceeded)):
        return partial or error.user_message
    return error.user_message


def build_finalize_node(*, hooks: RunHooks):
    async def finalize_node(state: ExecutionContext) -> ExecutionContext:
        log_node_entry(LOGGER, "finalize", state)

        text = settle_text(state)
        error: AgentRelayError | None = state.get("error")
        agent = state.get("active_agent")
        usage = state.get("usage") or EMPTY_USAGE

        if error is None:
            LOGGER.info(f"Request finished by {agent} ({usage.total_tokens} tokens, ${usage.cost_usd})")
            await emit(RunEvent("agent-finish", agent, {"text": text, "usage": usage.to_dict()}), hooks)
        else:
            LOGGER.warning(f"Request ended with {error.kind}: {error.message}")
            await emit(RunEvent("agent-error", agent, {**error.to_dict(), "text": text}), hooks)

        return {"phase": DispatchPhase.TERMINAL, "final_text": text}

    return finalize_node
