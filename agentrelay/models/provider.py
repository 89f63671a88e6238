"""Model capability seen by the execution loop.

The runtime talks to models only through ``ModelProvider``: ``generate``
returns one ``ModelResponse`` and ``stream`` yields ``TextDelta`` events
followed by exactly one ``StreamFinish`` carrying the same response shape.
``ChatModelProvider`` adapts any LangChain chat model to this protocol.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.tools import BaseTool

from agentrelay.agents.schema import ModelRoutingPolicy
from agentrelay.tools.types import ToolCall
from agentrelay.utils.error_handler import ProviderError, classify_provider_error
from agentrelay.utils.logging_utils import log_model_selection
from agentrelay.utils.message_utils import stringify_content

from .registry import ModelRegistry, ModelSpec

LOGGER = logging.getLogger(__name__)

ModelResolver = Callable[[str], BaseChatModel]


@dataclass(frozen=True, slots=True)
class ModelResponse:
    """Normalized result of one model call.

    ``handoff`` is set by providers that return a handoff directive natively;
    LangChain models express handoffs as a ``handoff_to_agent`` tool call.
    """

    text: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    handoff: Optional[str] = None
    provider_metadata: Mapping[str, Any] = field(default_factory=dict)
    finish_reason: Optional[str] = None
    model_id: Optional[str] = None

    def to_message(self, agent_name: str) -> AIMessage:
        return AIMessage(
            content=self.text,
            name=agent_name,
            tool_calls=[call.as_langchain() for call in self.tool_calls],
            response_metadata=dict(self.provider_metadata),
        )


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class StreamFinish:
    response: ModelResponse


StreamEvent = Union[TextDelta, StreamFinish]


class ModelProvider(Protocol):
    async def generate(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
        policy: ModelRoutingPolicy,
    ) -> ModelResponse:
        ...

    def stream(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
        policy: ModelRoutingPolicy,
    ) -> AsyncIterator[StreamEvent]:
        ...


def response_from_message(message: BaseMessage, model_id: Optional[str] = None) -> ModelResponse:
    """Convert a LangChain AI message (or aggregated chunk) into a ModelResponse."""
    metadata: Dict[str, Any] = dict(getattr(message, "response_metadata", None) or {})
    usage_metadata = getattr(message, "usage_metadata", None)
    if usage_metadata:
        metadata.setdefault("usage_metadata", dict(usage_metadata))

    calls: List[ToolCall] = []
    for raw in getattr(message, "tool_calls", None) or []:
        calls.append(
            ToolCall(
                tool_name=raw["name"],
                arguments=dict(raw.get("args") or {}),
                call_id=raw.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            )
        )

    invalid = getattr(message, "invalid_tool_calls", None) or []
    if invalid:
        LOGGER.warning(f"Model returned {len(invalid)} malformed tool call(s), ignoring them")

    finish_reason = metadata.get("finish_reason")
    return ModelResponse(
        text=stringify_content(message.content, separator=""),
        tool_calls=tuple(calls),
        provider_metadata=metadata,
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        model_id=model_id,
    )


class ChatModelProvider:
    """ModelProvider backed by LangChain chat models.

    Model selection follows the agent's routing policy through the
    ModelRegistry; clients come from a resolver and are created once per
    model id. Fallback models are tried in order when a call fails, but never
    once streamed text has reached the caller.
    """

    def __init__(
        self,
        model_registry: ModelRegistry,
        model_resolver: ModelResolver,
        *,
        default_fallbacks: Sequence[str] = (),
    ) -> None:
        self._registry = model_registry
        self._resolver = model_resolver
        self._default_fallbacks = tuple(default_fallbacks)
        self._clients: Dict[str, BaseChatModel] = {}

    def candidates(self, policy: ModelRoutingPolicy, *, require_tools: bool) -> List[ModelSpec]:
        """Primary model followed by distinct fallbacks (agent policy first, then global)."""
        specs = [self._registry.select(policy.model, require_tools=require_tools)]
        for key in (*policy.fallback_models, *self._default_fallbacks):
            spec = self._registry.get(key)
            if all(spec.model_id != existing.model_id for existing in specs):
                specs.append(spec)
        return specs

    def _client(self, spec: ModelSpec) -> BaseChatModel:
        client = self._clients.get(spec.model_id)
        if client is None:
            client = self._resolver(spec.model_id)
            self._clients[spec.model_id] = client
        return client

    def _prepare(self, spec: ModelSpec, tools: Sequence[BaseTool], policy: ModelRoutingPolicy):
        runnable: Any = self._client(spec)
        if tools:
            kwargs: Dict[str, Any] = {}
            if policy.tool_choice is not None:
                kwargs["tool_choice"] = policy.tool_choice
            runnable = runnable.bind_tools(list(tools), **kwargs)
        if policy.temperature is not None:
            runnable = runnable.bind(temperature=policy.temperature)
        return runnable

    async def generate(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
        policy: ModelRoutingPolicy,
    ) -> ModelResponse:
        last_error: Optional[ProviderError] = None
        for index, spec in enumerate(self.candidates(policy, require_tools=bool(tools))):
            runnable = self._prepare(spec, tools, policy)
            log_model_selection(LOGGER, spec.key, spec.model_id, "fallback" if index else "primary")
            try:
                message = await runnable.ainvoke(list(messages))
            except Exception as e:
                last_error = classify_provider_error(e)
                LOGGER.warning(f"Model {spec.model_id} failed: {last_error.message}")
                continue
            return response_from_message(message, spec.model_id)

        if last_error is None:
            raise ProviderError("no candidate model produced a response")
        raise last_error

    async def stream(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool],
        policy: ModelRoutingPolicy,
    ) -> AsyncIterator[StreamEvent]:
        last_error: Optional[ProviderError] = None
        for index, spec in enumerate(self.candidates(policy, require_tools=bool(tools))):
            runnable = self._prepare(spec, tools, policy)
            log_model_selection(LOGGER, spec.key, spec.model_id, "fallback" if index else "primary")
            aggregated: Optional[AIMessageChunk] = None
            forwarded = False
            try:
                async for chunk in runnable.astream(list(messages)):
                    aggregated = chunk if aggregated is None else aggregated + chunk
                    delta = stringify_content(chunk.content, separator="")
                    if delta:
                        forwarded = True
                        yield TextDelta(delta)
            except Exception as e:
                error = classify_provider_error(e)
                if forwarded:
                    # Text already reached the caller; a retry would duplicate it
                    raise ProviderError(
                        error.message,
                        error.user_message,
                        retryable=False,
                        status_code=error.status_code,
                    ) from e
                last_error = error
                LOGGER.warning(f"Model {spec.model_id} stream failed: {error.message}")
                continue

            yield StreamFinish(response_from_message(aggregated or AIMessageChunk(content=""), spec.model_id))
            return

        if last_error is None:
            raise ProviderError("no candidate model produced a response")
        raise last_error
