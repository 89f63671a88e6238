"""Agent node - one model round-trip for the active agent.

Each call:
1. Refuses to call the model when actual or projected cost would pass the
   request's ceiling
2. Renders the agent's instructions from the request context; after a
   handoff the history is the filtered handoff view plus what followed it
3. Calls the provider (generate or stream) under the retry policy,
   forwarding text deltas as they arrive
4. Extracts usage, notifies on_usage and accumulates the request total
5. Appends the response to history; a call that pushed the actual total over
   the ceiling ends the request with BudgetExceeded and its text kept as the
   partial answer
6. Otherwise resolves the tagged decision

Continuation responses (tool calls or handoff) consume one turn; a final
answer ends the request without being charged.
"""

from __future__ import annotations

import logging
import time
from contextlib import aclosing
from decimal import Decimal
from typing import TYPE_CHECKING, List, Mapping, Optional, Sequence

from langchain_core.messages import BaseMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool

from agentrelay.agents.registry import AgentRegistry
from agentrelay.agents.schema import Agent
from agentrelay.events import RunEvent, RunHooks, UsageTrackingEvent, call_hook
from agentrelay.graph.decision import FinalAnswer, Handoff, resolve_decision
from agentrelay.graph.state import DispatchPhase, ExecutionContext
from agentrelay.models.provider import ModelProvider, ModelResponse, StreamFinish, TextDelta
from agentrelay.usage.accounting import EMPTY_USAGE, accumulate, check_budget, extract_usage, projected_cost
from agentrelay.utils.error_handler import BudgetExceeded, ProviderError, classify_provider_error, with_error_boundary
from agentrelay.utils.logging_utils import log_agent_response, log_node_entry, log_prompt, log_visible_tools
from agentrelay.utils.message_utils import window_history

from .common import emit

if TYPE_CHECKING:
    from agentrelay.runtime.retry import RetryPolicy

LOGGER = logging.getLogger(__name__)


def build_agent_node(
    *,
    registry: AgentRegistry,
    provider: ModelProvider,
    retry_policy: RetryPolicy,
    hooks: RunHooks,
    log_prompt_max_length: int = 500,
):
    async def _generate(
        agent: Agent,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
        stream: bool,
    ) -> ModelResponse:
        if not stream:
            try:
                return await provider.generate(messages, tools, agent.routing)
            except Exception as e:
                raise classify_provider_error(e) from e

        forwarded = False
        try:
            async with aclosing(provider.stream(messages, tools, agent.routing)) as events:
                async for event in events:
                    if isinstance(event, TextDelta):
                        if event.text:
                            forwarded = True
                            await emit(RunEvent("text-delta", agent.name, {"delta": event.text}), hooks)
                    elif isinstance(event, StreamFinish):
                        return event.response
        except Exception as e:
            error = classify_provider_error(e)
            if forwarded and error.retryable:
                # Retrying would replay text the caller already received
                raise ProviderError(error.message, error.user_message, retryable=False, status_code=error.status_code) from e
            raise error from e
        raise ProviderError("Model stream ended without a finish event", retryable=False)

    @with_error_boundary("agent")
    async def agent_node(state: ExecutionContext) -> ExecutionContext:
        log_node_entry(LOGGER, "agent", state)

        agent = registry.lookup(state["active_agent"])
        limits = state["limits"]
        usage = state.get("usage") or EMPTY_USAGE

        # ========== Budget gate ==========
        check_budget(usage, limits.max_cost_usd, projected_cost(usage))

        # ========== Prompt ==========
        context: Mapping = state.get("context") or {}
        system_prompt = agent.render_instructions(context)
        log_prompt(LOGGER, agent.name, system_prompt, log_prompt_max_length)

        recorded: List[BaseMessage] = list(state.get("messages") or [])
        handoff_history = state.get("handoff_history")
        if handoff_history is not None:
            recorded = [*handoff_history, *recorded[state.get("handoff_offset", 0):]]
        history = window_history(recorded, agent.last_messages)
        prompt_messages = [SystemMessage(content=system_prompt), *history]

        tools = list(registry.tools_for(agent).values())
        log_visible_tools(LOGGER, agent.name, tools)

        # ========== Model call ==========
        stream = bool(state.get("stream"))
        started = time.perf_counter()
        response: Optional[ModelResponse] = None
        async for attempt in retry_policy.retrying():
            with attempt:
                response = await _generate(agent, prompt_messages, tools, stream)
        if response is None:
            raise ProviderError("no candidate model produced a response")
        duration_ms = (time.perf_counter() - started) * 1000

        # ========== Usage ==========
        record = extract_usage(response.provider_metadata)
        total = accumulate(usage, record)
        tracking = UsageTrackingEvent(
            agent_name=agent.name,
            usage=record,
            provider_metadata=response.provider_metadata,
            method="stream" if stream else "generate",
            handoff_chain=tuple(state.get("handoff_chain") or []),
            session_id=state.get("session_id"),
            finish_reason=response.finish_reason,
            duration_ms=duration_ms,
            context=context,
        )
        hook_error = await call_hook(hooks.on_usage, tracking, name="on_usage")
        if hook_error is not None:
            await call_hook(hooks.on_usage_error, hook_error, tracking, name="on_usage_error")

        update: ExecutionContext = {
            "messages": [response.to_message(agent.name)],
            "usage": total,
            "last_provider_metadata": dict(response.provider_metadata),
        }

        if limits.max_cost_usd is not None and not state.get("budget_warned"):
            threshold = limits.max_cost_usd * Decimal(str(limits.budget_warning_ratio))
            if total.cost_usd >= threshold:
                LOGGER.warning(f"Request cost ${total.cost_usd} reached the warning threshold (${threshold})")
                update["budget_warned"] = True
                await emit(
                    RunEvent(
                        "budget-warning",
                        agent.name,
                        {"spent_usd": float(total.cost_usd), "limit_usd": float(limits.max_cost_usd)},
                    ),
                    hooks,
                )

        # ========== Budget after the call ==========
        if limits.max_cost_usd is not None and total.cost_usd > limits.max_cost_usd:
            LOGGER.warning(
                f"{agent.name} pushed request cost to ${total.cost_usd}, over the ${limits.max_cost_usd} ceiling"
            )
            # Unrun calls still need answers for the history to stay well-formed
            update["messages"].extend(
                ToolMessage(
                    content=f"Skipped: the cost budget was exhausted before {call.tool_name} ran.",
                    tool_call_id=call.call_id,
                    name=call.tool_name,
                    status="error",
                )
                for call in response.tool_calls
            )
            update["phase"] = DispatchPhase.TERMINAL
            update["decision"] = None
            update["error"] = BudgetExceeded(spent=total.cost_usd, limit=limits.max_cost_usd)
            return update

        # ========== Decision ==========
        decision = resolve_decision(response)
        update["decision"] = decision

        if isinstance(decision, FinalAnswer):
            log_agent_response(LOGGER, decision.text)
            update["phase"] = DispatchPhase.TERMINAL
            update["final_text"] = decision.text
            return update

        turns_remaining = state["turns_remaining"] - 1
        update["turns_remaining"] = turns_remaining
        if isinstance(decision, Handoff):
            LOGGER.info(f"{agent.name} requested handoff to '{decision.target}'")
            update["phase"] = DispatchPhase.HANDING_OFF
        else:
            LOGGER.info(
                f"{agent.name} requested {len(decision.tool_calls)} tool call(s), "
                f"{turns_remaining} turn(s) remaining"
            )
            update["phase"] = DispatchPhase.ACTIVE
        return update

    return agent_node
