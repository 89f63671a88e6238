"""Runtime assembly and the caller-facing API.

``AgentRuntime`` owns the shared, read-only pieces (linked agent registry,
model provider, tool mediator with its cache, hooks) and runs each request
in a fresh ExecutionContext. Per-request errors never escape ``run()``:
they come back inside the RunResult. Configuration errors are raised when
the runtime is constructed.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Sequence, Tuple, Union

from langchain_core.messages import BaseMessage, HumanMessage
from langgraph.errors import GraphRecursionError

from agentrelay.agents.registry import AgentRegistry
from agentrelay.agents.scanner import scan_agents_from_config
from agentrelay.config.settings import Settings, get_settings
from agentrelay.events import FinishPayload, RunHooks, call_hook
from agentrelay.graph.builder import build_dispatch_graph
from agentrelay.graph.state import DispatchPhase, ExecutionContext, RunLimits
from agentrelay.models.provider import ChatModelProvider, ModelProvider, ModelResolver
from agentrelay.models.registry import ModelRegistry, build_default_registry
from agentrelay.telemetry.tracing import configure_tracing
from agentrelay.tools.cache import InMemoryToolCache
from agentrelay.tools.mediator import ToolMediator
from agentrelay.tools.registry import ToolRegistry
from agentrelay.usage.accounting import EMPTY_USAGE, CostLike, UsageRecord, to_decimal
from agentrelay.utils.error_handler import AgentRelayError, ConfigurationError, RunCancelled
from agentrelay.utils.logging_utils import log_user_message
from agentrelay.utils.message_utils import last_assistant_text

from .model_resolver import build_model_resolver, resolve_model_configs
from .retry import RetryPolicy
from .streaming import StreamingRun

LOGGER = logging.getLogger(__name__)

RunOutcome = Literal["completed", "partial", "failed", "cancelled"]
GraphObserver = Callable[[str, Any], None]


@dataclass(frozen=True)
class RunResult:
    """Structured outcome of one request.

    Attributes:
        text: Caller-visible answer (final, partial, or a user-facing error message)
        outcome: "completed", "partial" (recoverable error, best-effort text),
            "failed" or "cancelled"
        agent: Agent active when the request ended
        handoff_chain: Agents entered through handoffs, in order
        turns_remaining: Turn budget left for the final active agent
        usage: Accumulated usage of every model call in the request
        messages: Full conversation history including tool results
        provider_metadata: Metadata of the last model response
        error: Error that ended the request, if any
    """

    text: str
    outcome: RunOutcome
    request_id: str
    agent: Optional[str] = None
    handoff_chain: Tuple[str, ...] = ()
    turns_remaining: int = 0
    usage: UsageRecord = EMPTY_USAGE
    messages: Tuple[BaseMessage, ...] = ()
    provider_metadata: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[AgentRelayError] = None
    tool_invocations: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == "completed"

    @property
    def partial(self) -> bool:
        return self.outcome == "partial"

    def to_finish_payload(self) -> FinishPayload:
        return FinishPayload(
            text=self.text,
            provider_metadata=self.provider_metadata,
            usage=self.usage,
            agent=self.agent,
            outcome=self.outcome,
        )


class AgentRuntime:
    """Runs requests against a linked agent registry.

    Example:
        runtime = AgentRuntime(registry, provider, max_handoffs=1)
        result = await runtime.run("triage", "what's my account balance?")
        print(result.text, result.handoff_chain, result.usage.cost_usd)
    """

    def __init__(
        self,
        registry: AgentRegistry,
        provider: ModelProvider,
        *,
        mediator: Optional[ToolMediator] = None,
        hooks: Optional[RunHooks] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_handoffs: int = 1,
        max_cost_usd: Optional[CostLike] = None,
        budget_warning_ratio: float = 0.9,
        log_prompt_max_length: int = 500,
        model_registry: Optional[ModelRegistry] = None,
    ) -> None:
        if not registry.is_linked:
            registry.link()
        if max_handoffs < 0:
            raise ConfigurationError(f"max_handoffs must be >= 0, got {max_handoffs}")
        if not 0 < budget_warning_ratio <= 1:
            raise ConfigurationError(f"budget_warning_ratio must be in (0, 1], got {budget_warning_ratio}")

        self._max_cost_usd = self._parse_cost(max_cost_usd)
        if model_registry is not None:
            self._validate_models(registry, model_registry)

        self.registry = registry
        self.provider = provider
        self.mediator = mediator or ToolMediator()
        self.hooks = hooks or RunHooks()
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_handoffs = max_handoffs
        self.budget_warning_ratio = budget_warning_ratio

        self._graph = build_dispatch_graph(
            registry=registry,
            provider=provider,
            mediator=self.mediator,
            retry_policy=self.retry_policy,
            hooks=self.hooks,
            log_prompt_max_length=log_prompt_max_length,
        )
        longest = max((agent.max_turns for agent in registry.list_agents()), default=1)
        # select, finalize and an explicit choice, then per agent period two steps
        # per charged turn, the uncharged final call and the handoff step
        self._recursion_limit = 4 + (max_handoffs + 1) * (2 * longest + 2)
        LOGGER.info(
            f"Runtime ready: {len(registry)} agent(s), max_handoffs={max_handoffs}, "
            f"max_cost_usd={self._max_cost_usd}"
        )

    @staticmethod
    def _parse_cost(value: Optional[CostLike]) -> Optional[Decimal]:
        if value is None:
            return None
        parsed = to_decimal(value)
        if parsed is None or parsed <= 0:
            raise ConfigurationError(f"max_cost_usd must be a positive number, got {value!r}")
        return parsed

    @staticmethod
    def _validate_models(registry: AgentRegistry, model_registry: ModelRegistry) -> None:
        for agent in registry.list_agents():
            keys = [agent.routing.model] if agent.routing.model else []
            keys.extend(agent.routing.fallback_models)
            for key in keys:
                if not model_registry.has(key):
                    raise ConfigurationError(
                        f"Agent '{agent.name}' routes to unknown model '{key}' "
                        f"(known: {model_registry.keys()})"
                    )

    # ========== Public API ==========

    async def run(
        self,
        initial_agent: str,
        request: Union[str, BaseMessage],
        context: Optional[Mapping[str, Any]] = None,
        *,
        history: Optional[Sequence[BaseMessage]] = None,
        session_id: Optional[str] = None,
        agent_choice: Optional[str] = None,
        tool_choice: Optional[str] = None,
        max_cost_usd: Optional[CostLike] = None,
    ) -> RunResult:
        """Run one request to completion with the non-streaming model path.

        Args:
            initial_agent: Agent that receives the request (usually the triage agent)
            request: User message
            context: Caller context for instructions, hooks and usage events
            history: Earlier conversation messages (copied, never mutated)
            session_id: Reported in usage events
            agent_choice: Hand off to this agent before the first model call
            tool_choice: Hand off to the handoff target that owns this tool
                before the first model call; ignored when agent_choice is set
            max_cost_usd: Overrides the runtime cost ceiling for this request

        Returns:
            RunResult, never raises for per-request errors
        """
        state = self._initial_state(
            initial_agent, request, context, history, session_id, agent_choice, tool_choice, max_cost_usd, stream=False
        )
        return await StreamingRun(self, state, forward_events=False).result()

    def stream(
        self,
        initial_agent: str,
        request: Union[str, BaseMessage],
        context: Optional[Mapping[str, Any]] = None,
        *,
        history: Optional[Sequence[BaseMessage]] = None,
        session_id: Optional[str] = None,
        agent_choice: Optional[str] = None,
        tool_choice: Optional[str] = None,
        max_cost_usd: Optional[CostLike] = None,
    ) -> StreamingRun:
        """Start a request with the streaming model path and return its handle.

        Must be called from a running event loop; the request starts when the
        handle is first iterated or awaited.
        """
        state = self._initial_state(
            initial_agent, request, context, history, session_id, agent_choice, tool_choice, max_cost_usd, stream=True
        )
        return StreamingRun(self, state)

    # ========== Execution ==========

    def _initial_state(
        self,
        initial_agent: str,
        request: Union[str, BaseMessage],
        context: Optional[Mapping[str, Any]],
        history: Optional[Sequence[BaseMessage]],
        session_id: Optional[str],
        agent_choice: Optional[str],
        tool_choice: Optional[str],
        max_cost_usd: Optional[CostLike],
        *,
        stream: bool,
    ) -> ExecutionContext:
        messages = [message.model_copy() for message in history or []]
        if isinstance(request, BaseMessage):
            messages.append(request.model_copy())
        else:
            log_user_message(LOGGER, request)
            messages.append(HumanMessage(content=request))

        limit = self._parse_cost(max_cost_usd) if max_cost_usd is not None else self._max_cost_usd
        return {
            "request_id": uuid.uuid4().hex,
            "session_id": session_id,
            "context": dict(context or {}),
            "stream": stream,
            "limits": RunLimits(
                max_handoffs=self.max_handoffs,
                max_cost_usd=limit,
                budget_warning_ratio=self.budget_warning_ratio,
            ),
            "agent_choice": agent_choice,
            "tool_choice": tool_choice,
            "phase": DispatchPhase.SELECTING,
            "initial_agent": initial_agent,
            "active_agent": None,
            "turns_remaining": 0,
            "handoff_chain": [],
            "decision": None,
            "messages": messages,
            "handoff_history": None,
            "handoff_offset": 0,
            "usage": EMPTY_USAGE,
            "budget_warned": False,
            "tool_invocations": 0,
            "last_provider_metadata": {},
            "final_text": "",
            "error": None,
        }

    async def _run_graph(self, state: ExecutionContext, observe: GraphObserver) -> None:
        config = {
            "recursion_limit": self._recursion_limit,
            "run_name": "agentrelay",
            "metadata": {"request_id": state["request_id"], "session_id": state.get("session_id")},
        }
        async with aclosing(self._graph.astream(state, config=config, stream_mode=["custom", "values"])) as chunks:
            async for mode, chunk in chunks:
                observe(mode, chunk)

    def _build_result(
        self,
        state: Mapping[str, Any],
        pending_text: str = "",
        *,
        cancelled: bool = False,
        failure: Optional[BaseException] = None,
    ) -> RunResult:
        messages = tuple(state.get("messages") or ())
        error: Optional[AgentRelayError] = state.get("error")
        text = state.get("final_text") or ""

        if cancelled:
            error = RunCancelled()
            outcome: RunOutcome = "cancelled"
            text = text or pending_text or last_assistant_text(list(messages))
        elif failure is not None:
            if isinstance(failure, AgentRelayError):
                error = failure
            elif isinstance(failure, GraphRecursionError):
                error = AgentRelayError(f"Step limit reached: {failure}", "The request took too many steps.")
            else:
                error = AgentRelayError(
                    f"Unexpected failure: {type(failure).__name__}: {failure}",
                    "Something went wrong while handling your request. Please retry.",
                )
            outcome = "failed"
            text = error.user_message
        elif error is None:
            outcome = "completed"
        else:
            outcome = "partial" if error.recoverable else "failed"

        return RunResult(
            text=text,
            outcome=outcome,
            request_id=state.get("request_id", ""),
            agent=state.get("active_agent"),
            handoff_chain=tuple(state.get("handoff_chain") or ()),
            turns_remaining=state.get("turns_remaining", 0),
            usage=state.get("usage") or EMPTY_USAGE,
            messages=messages,
            provider_metadata=dict(state.get("last_provider_metadata") or {}),
            error=error,
            tool_invocations=state.get("tool_invocations", 0),
        )

    async def _notify_finish(self, result: RunResult) -> None:
        LOGGER.info(
            f"Request {result.request_id} {result.outcome}: agent={result.agent}, "
            f"chain={list(result.handoff_chain)}, cost=${result.usage.cost_usd}"
        )
        await call_hook(self.hooks.on_finish, result.to_finish_payload(), name="on_finish")


def build_runtime(
    config_path: Optional[Union[str, Path]] = None,
    *,
    settings: Optional[Settings] = None,
    registry: Optional[AgentRegistry] = None,
    provider: Optional[ModelProvider] = None,
    model_resolver: Optional[ModelResolver] = None,
    hooks: Optional[RunHooks] = None,
) -> AgentRuntime:
    """Assemble a runtime from settings and an agents.yaml file.

    Args:
        config_path: agents.yaml path, defaults to AGENTS_CONFIG
        settings: Application settings, defaults to get_settings()
        registry: Pre-built agent registry (skips agents.yaml)
        provider: Model provider, defaults to ChatModelProvider over ChatOpenAI
        model_resolver: Resolver used by the default provider
        hooks: Runtime-scoped hooks

    Raises:
        ConfigurationError: Missing or invalid configuration
    """
    settings = settings or get_settings()
    configure_tracing(settings.observability)

    tool_registry = ToolRegistry()
    if registry is None:
        path = config_path or settings.observability.agents_config_path
        if not path:
            raise ConfigurationError("No agents config: pass config_path or set AGENTS_CONFIG")
        registry = scan_agents_from_config(
            path,
            tool_registry=tool_registry,
            default_max_turns=settings.governance.default_max_turns,
        )

    model_configs = resolve_model_configs(settings)
    model_registry = build_default_registry(model_configs)
    unknown = [key for key in settings.models.fallback_keys if not model_registry.has(key)]
    if unknown:
        raise ConfigurationError(f"MODEL_FALLBACK names unknown model slot(s): {unknown}")
    if provider is None:
        resolver = model_resolver or build_model_resolver(model_configs, temperature=settings.models.temperature)
        provider = ChatModelProvider(model_registry, resolver, default_fallbacks=settings.models.fallback_keys)

    cache = None
    if settings.cache.enabled:
        cache = InMemoryToolCache(
            default_ttl=settings.cache.default_ttl_seconds,
            max_entries=settings.cache.max_entries,
        )
    mediator = ToolMediator(
        cache=cache,
        registry=tool_registry,
        concurrency=settings.governance.tool_concurrency,
    )

    return AgentRuntime(
        registry,
        provider,
        mediator=mediator,
        hooks=hooks,
        retry_policy=RetryPolicy.from_settings(settings.retry),
        max_handoffs=settings.governance.max_handoffs,
        max_cost_usd=settings.governance.max_cost_usd,
        budget_warning_ratio=settings.governance.budget_warning_ratio,
        log_prompt_max_length=settings.observability.log_prompt_max_length,
        model_registry=model_registry,
    )
