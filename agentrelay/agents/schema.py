"""Agent definition schema.

An agent is an explicit, immutable configuration struct: instructions,
tools, handoff targets, turn budget and model routing policy. Instructions
are a pure function of the request context; plain strings are treated as
Jinja2 templates rendered in a sandbox.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from jinja2.sandbox import SandboxedEnvironment
from langchain_core.messages import BaseMessage
from langchain_core.tools import BaseTool

InstructionsFn = Callable[[Mapping[str, Any]], str]
HistoryFilter = Callable[[List[BaseMessage]], Sequence[BaseMessage]]

TOOL_CHOICE_KEYWORDS = frozenset({"auto", "required", "none"})

_TEMPLATE_ENV = SandboxedEnvironment()


@dataclass(frozen=True, slots=True)
class ModelRoutingPolicy:
    """Which model serves an agent and how it may use tools.

    Attributes:
        model: Model slot key in the ModelRegistry ("chat", "reason", ...);
            None lets the registry choose based on tool requirements
        tool_choice: "auto", "required", "none" or the name of one tool
        active_tools: Restricts the tools offered to the model, None offers all
        temperature: Sampling temperature override
        fallback_models: Model slot keys tried in order when the primary fails
    """

    model: Optional[str] = None
    tool_choice: Optional[str] = None
    active_tools: Optional[FrozenSet[str]] = None
    temperature: Optional[float] = None
    fallback_models: Tuple[str, ...] = ()

    @property
    def requires_tools(self) -> bool:
        return self.tool_choice is not None and self.tool_choice not in {"auto", "none"}


@dataclass(frozen=True, slots=True)
class HandoffConfig:
    """Options for handing off to one particular target agent.

    Attributes:
        input_filter: Rewrites the history the target agent is prompted with.
            None applies drop_handoff_chatter. The recorded history is never
            changed by a filter.
        on_handoff: Called with (source, target, reason) after the transfer,
            sync or async
    """

    input_filter: Optional[HistoryFilter] = None
    on_handoff: Optional[Callable[..., Any]] = None


DEFAULT_HANDOFF_CONFIG = HandoffConfig()


@dataclass(frozen=True)
class AgentDefinition:
    """Declarative description of an agent, validated by AgentRegistry.register.

    Attributes:
        name: Unique agent name
        instructions: Template string or function of the request context
        tools: Tools this agent may call
        handoff_targets: Names of agents this agent may hand off to
        max_turns: Model round-trips allowed while this agent is active
        routing: Model routing policy
        description: One-line summary shown to agents that can hand off here
        last_messages: History window sent to the model, None sends everything
        handoff_configs: Per-target HandoffConfig, keyed by handoff target name
    """

    name: str
    instructions: Union[str, InstructionsFn]
    tools: Sequence[BaseTool] = ()
    handoff_targets: Iterable[str] = ()
    max_turns: Optional[int] = None
    routing: ModelRoutingPolicy = field(default_factory=ModelRoutingPolicy)
    description: str = ""
    last_messages: Optional[int] = None
    handoff_configs: Mapping[str, HandoffConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class Agent:
    """A registered agent. Immutable and shared by all concurrent requests."""

    name: str
    instructions: InstructionsFn
    tools: Mapping[str, BaseTool]
    handoff_targets: FrozenSet[str]
    max_turns: int
    routing: ModelRoutingPolicy = field(default_factory=ModelRoutingPolicy)
    description: str = ""
    last_messages: Optional[int] = None
    handoff_configs: Mapping[str, HandoffConfig] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def can_hand_off(self) -> bool:
        return bool(self.handoff_targets)

    def handoff_config(self, target: str) -> HandoffConfig:
        return self.handoff_configs.get(target, DEFAULT_HANDOFF_CONFIG)

    def render_instructions(self, context: Optional[Mapping[str, Any]] = None) -> str:
        """Render the system prompt for one turn."""
        rendered = self.instructions(MappingProxyType(dict(context or {})))
        if not isinstance(rendered, str):
            raise TypeError(f"Instructions of agent '{self.name}' returned {type(rendered).__name__}, expected str")
        return rendered


def template_instructions(template: str) -> InstructionsFn:
    """Turn a Jinja2 template string into an instructions function.

    Example:
        >>> fn = template_instructions("You help {{ user_name }}.")
        >>> fn({"user_name": "Ada"})
        'You help Ada.'
    """
    compiled = _TEMPLATE_ENV.from_string(template)

    def render(context: Mapping[str, Any]) -> str:
        return compiled.render(dict(context))

    return render


def as_instructions_fn(instructions: Union[str, InstructionsFn]) -> InstructionsFn:
    if callable(instructions):
        return instructions
    if isinstance(instructions, str):
        return template_instructions(instructions)
    raise TypeError(f"Instructions must be a string or callable, got {type(instructions).__name__}")
