"""Integration tests for the dispatch loop: handoffs, budgets, tools, routing and hooks.

Every test drives a real AgentRuntime (LangGraph dispatch graph, tool mediator,
usage accounting) against a scripted model provider.
"""

import asyncio
from decimal import Decimal

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agentrelay.agents.registry import AgentRegistry
from agentrelay.agents.schema import AgentDefinition, HandoffConfig
from agentrelay.events import RunHooks
from agentrelay.runtime.app import AgentRuntime
from agentrelay.runtime.retry import NO_RETRY, RetryPolicy
from agentrelay.tools.cache import InMemoryToolCache
from agentrelay.tools.mediator import ToolMediator
from agentrelay.tools.registry import ToolMeta, ToolRegistry
from agentrelay.tools.types import ToolCall
from agentrelay.utils.error_handler import (
    AgentNotFoundError,
    BudgetExceeded,
    HandoffCycleError,
    HandoffLimitExceeded,
    InvalidHandoffError,
    ProviderError,
    TurnBudgetExceeded,
)

from relay_fakes import call_tool, final, hand_off

FAST_RETRY = RetryPolicy(max_attempts=3, min_wait=0, max_wait=0, multiplier=0)


class Recorder:
    """Collects every hook invocation."""

    def __init__(self) -> None:
        self.events = []
        self.usage = []
        self.usage_errors = []
        self.handoffs = []
        self.finished = []

    def hooks(self, **overrides) -> RunHooks:
        callbacks = {
            "on_event": self.events.append,
            "on_usage": self.usage.append,
            "on_usage_error": lambda error, tracking: self.usage_errors.append((error, tracking)),
            "on_handoff": lambda source, target, reason: self.handoffs.append((source, target, reason)),
            "on_finish": self.finished.append,
        }
        callbacks.update(overrides)
        return RunHooks(**callbacks)

    @property
    def event_types(self):
        return [event.type for event in self.events]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def bank_agents(get_balance):
    return [
        AgentDefinition(
            name="triage",
            instructions="You are the front desk for {{ user_name | default('a customer') }}.",
            handoff_targets=["operations", "support"],
            max_turns=3,
        ),
        AgentDefinition(name="operations", instructions="Answer balance questions.", tools=[get_balance], max_turns=5),
        AgentDefinition(name="support", instructions="Handle complaints.", max_turns=2),
    ]


def make_runtime(provider, definitions, **kwargs):
    kwargs.setdefault("retry_policy", NO_RETRY)
    return AgentRuntime(AgentRegistry.from_definitions(definitions), provider, **kwargs)


class TestHandoffFlow:
    """triage → operations → tool → answer."""

    @pytest.mark.asyncio
    async def test_triage_hands_off_to_operations(self, provider, bank_agents, balance_calls, recorder):
        provider.queue(
            hand_off("operations", reason="balance question"),
            call_tool("get_balance", {"account": "checking"}, call_id="c1"),
            final("Your checking balance is $1523.40."),
        )
        runtime = make_runtime(provider, bank_agents, hooks=recorder.hooks())

        result = await runtime.run("triage", "what's my account balance?", {"user_name": "Ada"})

        assert result.ok
        assert result.outcome == "completed"
        assert result.text == "Your checking balance is $1523.40."
        assert result.agent == "operations"
        assert result.handoff_chain == ("operations",)
        assert result.tool_invocations == 1
        assert result.turns_remaining == 4
        assert result.error is None
        assert balance_calls.count == 1

        assert [type(m) for m in result.messages] == [
            HumanMessage,
            AIMessage,
            ToolMessage,
            AIMessage,
            ToolMessage,
            AIMessage,
        ]
        assert result.messages[2].content.startswith("Transferred to operations.")
        assert result.messages[4].content == "checking balance: $1523.40"

        # Each agent sees its own instructions and only its own tools
        assert isinstance(provider.calls[0].messages[0], SystemMessage)
        assert provider.calls[0].messages[0].content == "You are the front desk for Ada."
        assert provider.calls[0].tool_names == ["handoff_to_agent"]
        assert provider.calls[1].messages[0].content == "Answer balance questions."
        assert provider.calls[1].tool_names == ["get_balance"]
        assert [call.method for call in provider.calls] == ["generate"] * 3

    @pytest.mark.asyncio
    async def test_hooks_observe_the_request(self, provider, bank_agents, recorder):
        provider.queue(
            hand_off("operations", reason="balance question"),
            call_tool("get_balance", call_id="c1"),
            final("Done."),
        )
        runtime = make_runtime(provider, bank_agents, hooks=recorder.hooks())

        result = await runtime.run("triage", "balance?", session_id="s-1")

        assert recorder.event_types == ["agent-start", "agent-handoff", "agent-start", "tool-result", "agent-finish"]
        assert recorder.handoffs == [("triage", "operations", "balance question")]
        assert [u.agent_name for u in recorder.usage] == ["triage", "operations", "operations"]
        assert recorder.usage[1].handoff_chain == ("operations",)
        assert recorder.usage[0].session_id == "s-1"
        assert recorder.usage[0].method == "generate"
        assert len(recorder.finished) == 1
        assert recorder.finished[0].text == "Done."
        assert recorder.finished[0].outcome == "completed"
        assert recorder.finished[0].usage == result.usage
        assert result.usage.request_count == 3
        assert result.usage.prompt_tokens == 30

    @pytest.mark.asyncio
    async def test_handoff_with_single_turn(self, provider, bank_agents):
        bank_agents[0] = AgentDefinition(
            name="triage", instructions="Route.", handoff_targets=["operations"], max_turns=1
        )
        provider.queue(hand_off("operations"), final("Handled by operations."))
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "balance?")

        assert result.ok
        assert result.agent == "operations"
        assert result.turns_remaining == 5

    @pytest.mark.asyncio
    async def test_sibling_calls_skipped_on_handoff(self, provider, bank_agents, balance_calls):
        provider.queue(
            hand_off("operations", extra=(ToolCall("get_balance", {}, "c9"),)),
            final("Operations here."),
        )
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "balance?")

        tool_messages = [m for m in result.messages if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in tool_messages] == ["call_handoff", "c9"]
        assert tool_messages[1].status == "error"
        assert tool_messages[1].content.startswith("Skipped")
        assert balance_calls.count == 0
        assert result.tool_invocations == 0

    @pytest.mark.asyncio
    async def test_handoff_context_forwarded(self, provider, bank_agents):
        provider.queue(
            hand_off("support", reason="complaint", context="login fails since the update"),
            final("Sorry about that."),
        )
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "your app is broken")

        assert result.handoff_chain == ("support",)
        assert provider.calls[1].messages[0].content == "Handle complaints."
        assert provider.calls[1].messages[-1].content == "Context for support: login fails since the update"
        assert "login fails since the update" in result.messages[2].content


def only_user_messages(history):
    return [message for message in history if isinstance(message, HumanMessage)]


class TestHandoffHistory:
    """The target agent is prompted with a filtered view; the recorded history stays complete."""

    @pytest.mark.asyncio
    async def test_default_filter_hides_handoff_chatter(self, provider, bank_agents):
        provider.queue(
            hand_off("operations", reason="balance question"),
            call_tool("get_balance", {"account": "checking"}, call_id="c1"),
            final("Your checking balance is $1523.40."),
        )
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "what's my account balance?")

        assert result.ok
        assert [type(m) for m in provider.calls[1].messages] == [SystemMessage, HumanMessage]
        assert [type(m) for m in provider.calls[2].messages] == [SystemMessage, HumanMessage, AIMessage, ToolMessage]
        assert provider.calls[2].messages[-1].content == "checking balance: $1523.40"
        # Recorded history still shows the handoff
        assert result.messages[1].tool_calls[0]["name"] == "handoff_to_agent"
        assert result.messages[2].content.startswith("Transferred to operations.")

    @pytest.mark.asyncio
    async def test_custom_input_filter(self, provider, get_balance):
        agents = [
            AgentDefinition(
                name="triage",
                instructions="Route.",
                handoff_targets=["operations"],
                handoff_configs={"operations": HandoffConfig(input_filter=only_user_messages)},
            ),
            AgentDefinition(name="operations", instructions="Answer.", tools=[get_balance]),
        ]
        history = [HumanMessage(content="hello"), AIMessage(content="Hi, how can I help?")]
        provider.queue(hand_off("operations"), final("Done."))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("triage", "balance?", history=history)

        assert result.ok
        assert [m.content for m in provider.calls[1].messages[1:]] == ["hello", "balance?"]
        assert len(result.messages) == 6

    @pytest.mark.asyncio
    async def test_failing_filter_falls_back_to_full_history(self, provider, get_balance):
        def broken_filter(history):
            raise ValueError("bad filter")

        agents = [
            AgentDefinition(
                name="triage",
                instructions="Route.",
                handoff_targets=["operations"],
                handoff_configs={"operations": HandoffConfig(input_filter=broken_filter)},
            ),
            AgentDefinition(name="operations", instructions="Answer.", tools=[get_balance]),
        ]
        provider.queue(hand_off("operations"), final("Done."))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("triage", "balance?")

        assert result.ok
        assert [type(m) for m in provider.calls[1].messages] == [SystemMessage, HumanMessage, AIMessage, ToolMessage]

    @pytest.mark.asyncio
    async def test_per_target_on_handoff(self, provider, get_balance, recorder):
        seen = []

        async def on_operations(source, target, reason):
            seen.append(("operations", source, target, reason))

        def on_support(source, target, reason):
            seen.append(("support", source, target, reason))

        agents = [
            AgentDefinition(
                name="triage",
                instructions="Route.",
                handoff_targets=["operations", "support"],
                handoff_configs={
                    "operations": HandoffConfig(on_handoff=on_operations),
                    "support": HandoffConfig(on_handoff=on_support),
                },
            ),
            AgentDefinition(name="operations", instructions="Answer.", tools=[get_balance]),
            AgentDefinition(name="support", instructions="Help."),
        ]
        provider.queue(hand_off("operations", reason="balance question"), final("Done."))
        runtime = make_runtime(provider, agents, hooks=recorder.hooks())

        result = await runtime.run("triage", "balance?")

        assert result.ok
        assert seen == [("operations", "triage", "operations", "balance question")]
        assert recorder.handoffs == [("triage", "operations", "balance question")]

    @pytest.mark.asyncio
    async def test_on_handoff_failure_does_not_stop_request(self, provider, get_balance):
        def broken(source, target, reason):
            raise RuntimeError("audit log offline")

        agents = [
            AgentDefinition(
                name="triage",
                instructions="Route.",
                handoff_targets=["operations"],
                handoff_configs={"operations": HandoffConfig(on_handoff=broken)},
            ),
            AgentDefinition(name="operations", instructions="Answer.", tools=[get_balance]),
        ]
        provider.queue(hand_off("operations"), final("Done."))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("triage", "balance?")

        assert result.ok
        assert result.agent == "operations"


class TestHandoffErrors:
    """Rejected handoffs end the request with a user-facing message."""

    @pytest.mark.asyncio
    async def test_cycle_detected(self, provider):
        agents = [
            AgentDefinition(name="triage", instructions="x", handoff_targets=["operations"]),
            AgentDefinition(name="operations", instructions="x", handoff_targets=["triage"]),
        ]
        provider.queue(hand_off("operations"), hand_off("triage"))
        runtime = make_runtime(provider, agents, max_handoffs=2)

        result = await runtime.run("triage", "ping-pong")

        assert isinstance(result.error, HandoffCycleError)
        assert not isinstance(result.error, HandoffLimitExceeded)
        assert result.text == "I was unable to route your request to the right specialist."
        assert result.outcome == "partial"
        assert result.handoff_chain == ("operations",)
        assert result.agent == "operations"
        last = result.messages[-1]
        assert isinstance(last, ToolMessage)
        assert last.status == "error"

    @pytest.mark.asyncio
    async def test_chain_limit(self, provider):
        agents = [
            AgentDefinition(name="triage", instructions="x", handoff_targets=["operations"]),
            AgentDefinition(name="operations", instructions="x", handoff_targets=["billing"]),
            AgentDefinition(name="billing", instructions="x"),
        ]
        provider.queue(hand_off("operations"), hand_off("billing"))
        runtime = make_runtime(provider, agents, max_handoffs=1)

        result = await runtime.run("triage", "refund please")

        assert isinstance(result.error, HandoffLimitExceeded)
        assert result.handoff_chain == ("operations",)
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_undeclared_target(self, provider, bank_agents):
        provider.queue(hand_off("billing"))
        runtime = make_runtime(provider, bank_agents + [AgentDefinition(name="billing", instructions="x")])

        result = await runtime.run("triage", "refund please")

        assert isinstance(result.error, InvalidHandoffError)
        assert result.agent == "triage"
        assert result.handoff_chain == ()


class TestTurnBudget:
    """Only continuation responses are charged."""

    @pytest.mark.asyncio
    async def test_exhausted_turns_return_partial_output(self, provider, broken_ledger):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[broken_ledger], max_turns=2)]
        provider.queue(
            call_tool("read_ledger", call_id="c1", text="Checking the ledger."),
            call_tool("read_ledger", call_id="c2", text="Still trying the ledger."),
        )
        runtime = make_runtime(provider, agents)

        result = await runtime.run("ops", "show my ledger")

        assert isinstance(result.error, TurnBudgetExceeded)
        assert result.outcome == "partial"
        assert result.text == "Still trying the ledger."
        assert result.turns_remaining == 0
        assert len(provider.calls) == 2
        tool_messages = [m for m in result.messages if isinstance(m, ToolMessage)]
        assert len(tool_messages) == 2
        assert all(m.status == "error" for m in tool_messages)
        assert "ledger service unavailable" in tool_messages[0].content

    @pytest.mark.asyncio
    async def test_exhausted_without_text_uses_user_message(self, provider, broken_ledger):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[broken_ledger], max_turns=1)]
        provider.queue(call_tool("read_ledger"))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("ops", "show my ledger")

        assert result.text == TurnBudgetExceeded("ops", 1).user_message

    @pytest.mark.asyncio
    async def test_final_answer_is_not_charged(self, provider):
        agents = [AgentDefinition(name="solo", instructions="x", max_turns=1)]
        provider.queue(final("Hello!"))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("solo", "hi")

        assert result.ok
        assert result.turns_remaining == 1

    @pytest.mark.asyncio
    async def test_tool_failure_is_fed_back_to_model(self, provider, broken_ledger):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[broken_ledger], max_turns=3)]
        provider.queue(call_tool("read_ledger", call_id="c1"), final("The ledger is down, try later."))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("ops", "show my ledger")

        assert result.ok
        assert result.text == "The ledger is down, try later."
        seen = provider.calls[1].messages[-1]
        assert isinstance(seen, ToolMessage)
        assert seen.content.startswith("Error (ToolExecutionError)")


class TestCostBudget:
    """Projected cost gates every model call."""

    @pytest.mark.asyncio
    async def test_stops_before_overrunning_budget(self, provider, get_balance, recorder):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        provider.queue(
            call_tool("get_balance", call_id="c1", cost=0.5),
            call_tool("get_balance", call_id="c2", cost=0.5, text="Fetched balances."),
            final("never sent", cost=0.5),
        )
        runtime = make_runtime(provider, agents, max_cost_usd=1.0, hooks=recorder.hooks())

        result = await runtime.run("ops", "balances?")

        assert len(provider.calls) == 2
        assert isinstance(result.error, BudgetExceeded)
        assert result.outcome == "partial"
        assert result.usage.cost_usd == Decimal("1.0")
        assert result.text == "Fetched balances."
        assert recorder.event_types.count("budget-warning") == 1

    @pytest.mark.asyncio
    async def test_single_call_over_budget_is_reported(self, provider, get_balance):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        provider.queue(final("done", cost=1.5))
        runtime = make_runtime(provider, agents, max_cost_usd=1.0)

        result = await runtime.run("ops", "balances?")

        assert result.outcome == "partial"
        assert isinstance(result.error, BudgetExceeded)
        assert result.error.spent == Decimal("1.5")
        assert result.error.limit == Decimal("1.0")
        assert result.text == "done"
        assert result.usage.cost_usd == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_second_call_pushes_total_over_budget(self, provider, get_balance, balance_calls):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        provider.queue(call_tool("get_balance", call_id="c1", cost=0.5), final("done", cost=1.0))
        runtime = make_runtime(provider, agents, max_cost_usd=1.0)

        result = await runtime.run("ops", "balances?")

        assert len(provider.calls) == 2
        assert balance_calls.count == 1
        assert result.outcome == "partial"
        assert isinstance(result.error, BudgetExceeded)
        assert result.text == "done"
        assert result.usage.cost_usd == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_tool_calls_skipped_when_call_overruns(self, provider, get_balance, balance_calls):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        provider.queue(call_tool("get_balance", call_id="c1", text="Looking it up.", cost=1.5))
        runtime = make_runtime(provider, agents, max_cost_usd=1.0)

        result = await runtime.run("ops", "balances?")

        assert isinstance(result.error, BudgetExceeded)
        assert result.text == "Looking it up."
        assert balance_calls.count == 0
        assert result.tool_invocations == 0
        last = result.messages[-1]
        assert isinstance(last, ToolMessage)
        assert last.tool_call_id == "c1"
        assert last.status == "error"

    @pytest.mark.asyncio
    async def test_per_request_override(self, provider, get_balance):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        provider.queue(call_tool("get_balance", cost=0.5), final("never sent"))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("ops", "balances?", max_cost_usd="0.5")

        assert len(provider.calls) == 1
        assert isinstance(result.error, BudgetExceeded)
        assert result.text == result.error.user_message

    @pytest.mark.asyncio
    async def test_unlimited_by_default(self, provider, get_balance):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        provider.queue(call_tool("get_balance", cost=50), final("ok", cost=50))
        runtime = make_runtime(provider, agents)

        result = await runtime.run("ops", "balances?")

        assert result.ok
        assert result.usage.cost_usd == Decimal("100")


class TestToolCache:
    @pytest.mark.asyncio
    async def test_cache_shared_across_turns_and_requests(self, provider, get_balance, balance_calls):
        agents = [AgentDefinition(name="ops", instructions="x", tools=[get_balance])]
        mediator = ToolMediator(
            cache=InMemoryToolCache(),
            registry=ToolRegistry(meta=[ToolMeta(name="get_balance", cacheable=True, ttl_seconds=60)]),
        )
        provider.queue(
            call_tool("get_balance", {"account": "checking"}, call_id="c1"),
            call_tool("get_balance", {}, call_id="c2"),
            final("Same balance twice."),
            call_tool("get_balance", {"account": "checking"}, call_id="c3"),
            final("Still the same."),
        )
        runtime = make_runtime(provider, agents, mediator=mediator)

        first = await runtime.run("ops", "balance?")
        second = await runtime.run("ops", "balance again?")

        assert first.ok and second.ok
        assert first.tool_invocations == 2
        assert balance_calls.count == 1
        tool_messages = [m for m in first.messages if isinstance(m, ToolMessage)]
        assert [m.response_metadata["cache_hit"] for m in tool_messages] == [False, True]


class TestProviderErrors:
    @pytest.mark.asyncio
    async def test_retryable_error_retried(self, provider):
        agents = [AgentDefinition(name="solo", instructions="x")]
        provider.queue(ProviderError("rate limited", retryable=True), final("Recovered."))
        runtime = make_runtime(provider, agents, retry_policy=FAST_RETRY)

        result = await runtime.run("solo", "hi")

        assert result.ok
        assert result.text == "Recovered."
        assert len(provider.calls) == 2
        assert result.usage.request_count == 1

    @pytest.mark.asyncio
    async def test_fatal_error_fails_request(self, provider, recorder):
        agents = [AgentDefinition(name="solo", instructions="x")]
        provider.queue(ProviderError("invalid_api_key", "The model API key is invalid.", retryable=False))
        runtime = make_runtime(provider, agents, retry_policy=FAST_RETRY, hooks=recorder.hooks())

        result = await runtime.run("solo", "hi")

        assert result.outcome == "failed"
        assert result.text == "The model API key is invalid."
        assert len(provider.calls) == 1
        assert recorder.event_types[-1] == "agent-error"
        assert recorder.finished[0].outcome == "failed"

    @pytest.mark.asyncio
    async def test_raw_exception_classified(self, provider):
        agents = [AgentDefinition(name="solo", instructions="x")]
        provider.queue(TimeoutError("upstream timed out"), final("Second try worked."))
        runtime = make_runtime(provider, agents, retry_policy=FAST_RETRY)

        result = await runtime.run("solo", "hi")

        assert result.ok
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, provider):
        agents = [AgentDefinition(name="solo", instructions="x")]
        provider.queue(*[ProviderError("overloaded", retryable=True)] * 3)
        runtime = make_runtime(provider, agents, retry_policy=FAST_RETRY)

        result = await runtime.run("solo", "hi")

        assert result.outcome == "failed"
        assert isinstance(result.error, ProviderError)
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_no_attempt_made_fails_request(self, provider):
        class NeverAttempts:
            def retrying(self):
                return self

            def __aiter__(self):
                return self

            async def __anext__(self):
                raise StopAsyncIteration

        agents = [AgentDefinition(name="solo", instructions="x")]
        runtime = make_runtime(provider, agents, retry_policy=NeverAttempts())

        result = await runtime.run("solo", "hi")

        assert result.outcome == "failed"
        assert isinstance(result.error, ProviderError)
        assert "no candidate model" in result.error.message
        assert provider.calls == []


class TestRequestInputs:
    @pytest.mark.asyncio
    async def test_explicit_agent_choice(self, provider, bank_agents, recorder):
        provider.queue(final("Operations speaking."))
        runtime = make_runtime(provider, bank_agents, hooks=recorder.hooks())

        result = await runtime.run("triage", "balance?", agent_choice="operations")

        assert result.ok
        assert result.agent == "operations"
        assert result.handoff_chain == ("operations",)
        assert provider.calls[0].tool_names == ["get_balance"]
        assert recorder.handoffs == [("triage", "operations", "explicit agent choice")]
        assert not any(isinstance(m, ToolMessage) for m in result.messages)

    @pytest.mark.asyncio
    async def test_agent_choice_of_initial_agent_ignored(self, provider, bank_agents):
        provider.queue(final("Front desk."))
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "hi", agent_choice="triage")

        assert result.agent == "triage"
        assert result.handoff_chain == ()

    @pytest.mark.asyncio
    async def test_agent_choice_must_be_reachable(self, provider, bank_agents):
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("support", "hi", agent_choice="operations")

        assert isinstance(result.error, InvalidHandoffError)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_tool_choice_routes_to_owner(self, provider, bank_agents, recorder):
        provider.queue(final("Operations speaking."))
        runtime = make_runtime(provider, bank_agents, hooks=recorder.hooks())

        result = await runtime.run("triage", "balance?", tool_choice="get_balance")

        assert result.ok
        assert result.agent == "operations"
        assert result.handoff_chain == ("operations",)
        assert provider.calls[0].tool_names == ["get_balance"]
        assert recorder.handoffs == [("triage", "operations", "requested tool: get_balance")]

    @pytest.mark.asyncio
    async def test_tool_choice_without_owner_stays(self, provider, bank_agents):
        provider.queue(final("Front desk."))
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "wire money", tool_choice="wire_transfer")

        assert result.ok
        assert result.agent == "triage"
        assert result.handoff_chain == ()
        assert provider.calls[0].tool_names == ["handoff_to_agent"]

    @pytest.mark.asyncio
    async def test_agent_choice_wins_over_tool_choice(self, provider, bank_agents):
        provider.queue(final("Support here."))
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "hi", agent_choice="support", tool_choice="get_balance")

        assert result.agent == "support"
        assert result.handoff_chain == ("support",)

    @pytest.mark.asyncio
    async def test_tool_choice_streamed(self, provider, bank_agents):
        provider.queue(final("Operations streaming."))
        runtime = make_runtime(provider, bank_agents)

        handle = runtime.stream("triage", "balance?", tool_choice="get_balance")
        events = [event async for event in handle]
        result = await handle.result()

        assert result.agent == "operations"
        assert events[1].type == "agent-handoff"
        assert events[1].data["reason"] == "requested tool: get_balance"

    @pytest.mark.asyncio
    async def test_unknown_initial_agent(self, provider, bank_agents, recorder):
        runtime = make_runtime(provider, bank_agents, hooks=recorder.hooks())

        result = await runtime.run("billing", "hi")

        assert isinstance(result.error, AgentNotFoundError)
        assert result.outcome == "failed"
        assert provider.calls == []
        assert len(recorder.finished) == 1

    @pytest.mark.asyncio
    async def test_history_is_copied(self, provider, bank_agents):
        history = [HumanMessage(content="earlier question"), AIMessage(content="earlier answer")]
        provider.queue(final("New answer."))
        runtime = make_runtime(provider, bank_agents)

        result = await runtime.run("triage", "follow-up", history=history)

        assert len(history) == 2
        assert [m.content for m in result.messages] == [
            "earlier question",
            "earlier answer",
            "follow-up",
            "New answer.",
        ]
        assert result.messages[0] is not history[0]

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(self, provider, bank_agents):
        provider.queue(final("one"), final("two"))
        runtime = make_runtime(provider, bank_agents)

        first, second = await asyncio.gather(runtime.run("triage", "a"), runtime.run("triage", "b"))

        assert {first.text, second.text} == {"one", "two"}
        assert first.request_id != second.request_id
        assert len(first.messages) == len(second.messages) == 2


class TestHookFailures:
    @pytest.mark.asyncio
    async def test_on_usage_failure_reported_not_raised(self, provider, bank_agents, recorder):
        def broken_usage(event):
            raise RuntimeError("metrics backend down")

        provider.queue(final("Fine."))
        runtime = make_runtime(provider, bank_agents, hooks=recorder.hooks(on_usage=broken_usage))

        result = await runtime.run("triage", "hi")

        assert result.ok
        assert len(recorder.usage_errors) == 1
        error, tracking = recorder.usage_errors[0]
        assert str(error) == "metrics backend down"
        assert tracking.agent_name == "triage"

    @pytest.mark.asyncio
    async def test_async_hooks_and_finish_failure(self, provider, bank_agents):
        seen = []

        async def on_event(event):
            seen.append(event.type)

        async def on_finish(payload):
            raise RuntimeError("sink unavailable")

        provider.queue(final("Fine."))
        runtime = make_runtime(provider, bank_agents, hooks=RunHooks(on_event=on_event, on_finish=on_finish))

        result = await runtime.run("triage", "hi")

        assert result.ok
        assert seen == ["agent-start", "agent-finish"]
