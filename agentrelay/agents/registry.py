"""Agent Registry - two-phase registration of agent definitions.

Phase 1 (declare): ``register()`` validates each definition on its own
(unique name, positive turn budget, well-formed tools) and accepts forward
references to handoff targets that are not registered yet.

Phase 2 (link): ``link()`` resolves every handoff target, validates routing
policies against the final tool surface and builds the handoff tools. After
linking the registry is read-only and can be shared by concurrent requests
without locking.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional

from langchain_core.tools import BaseTool

from agentrelay.utils.error_handler import AgentNotFoundError, ConfigurationError

from .handoff_tools import HANDOFF_TOOL_NAME, create_handoff_tool
from .schema import TOOL_CHOICE_KEYWORDS, Agent, AgentDefinition, HandoffConfig, as_instructions_fn

LOGGER = logging.getLogger(__name__)


class AgentRegistry:
    """Agent registry.

    Example:
        >>> registry = AgentRegistry()
        >>> registry.register(AgentDefinition(name="triage", instructions="...", handoff_targets=["operations"]))
        >>> registry.register(AgentDefinition(name="operations", instructions="...", tools=[get_balance]))
        >>> registry.link()
        >>> registry.lookup("operations").max_turns
        10
    """

    def __init__(self, *, default_max_turns: int = 10) -> None:
        if default_max_turns <= 0:
            raise ConfigurationError(f"default_max_turns must be positive, got {default_max_turns}")
        self._agents: Dict[str, Agent] = {}
        self._handoff_tools: Dict[str, BaseTool] = {}
        self._default_max_turns = default_max_turns
        self._linked = False

    @classmethod
    def from_definitions(cls, definitions: Iterable[AgentDefinition], **kwargs) -> "AgentRegistry":
        """Register all definitions and link them."""
        registry = cls(**kwargs)
        for definition in definitions:
            registry.register(definition)
        return registry.link()

    # ========== Registration (phase 1: declare) ==========

    def register(self, definition: AgentDefinition) -> Agent:
        """Declare an agent.

        Args:
            definition: Agent definition

        Returns:
            The immutable Agent

        Raises:
            ConfigurationError: Registry already linked, duplicate name,
                non-positive max_turns, malformed tools or a handoff config
                for an agent that is not a handoff target
        """
        if self._linked:
            raise ConfigurationError(f"Cannot register '{definition.name}': registry is read-only after link()")

        name = definition.name
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"Agent name must be a non-empty string, got {name!r}")
        if name in self._agents:
            raise ConfigurationError(f"Duplicate agent name: {name}")

        max_turns = self._default_max_turns if definition.max_turns is None else definition.max_turns
        if isinstance(max_turns, bool) or not isinstance(max_turns, int) or max_turns <= 0:
            raise ConfigurationError(f"Agent '{name}' must have a positive max_turns, got {max_turns!r}")

        if definition.last_messages is not None and definition.last_messages <= 0:
            raise ConfigurationError(f"Agent '{name}' last_messages must be positive, got {definition.last_messages}")

        tools: Dict[str, BaseTool] = {}
        for tool in definition.tools:
            if not isinstance(tool, BaseTool):
                raise ConfigurationError(f"Agent '{name}' tool {tool!r} is not a LangChain BaseTool")
            if tool.name == HANDOFF_TOOL_NAME:
                raise ConfigurationError(f"Agent '{name}' uses reserved tool name '{HANDOFF_TOOL_NAME}'")
            if tool.name in tools:
                raise ConfigurationError(f"Agent '{name}' declares tool '{tool.name}' twice")
            tools[tool.name] = tool

        targets = frozenset(definition.handoff_targets)
        if name in targets:
            raise ConfigurationError(f"Agent '{name}' cannot hand off to itself")

        handoff_configs: Dict[str, HandoffConfig] = {}
        for target, config in dict(definition.handoff_configs).items():
            if target not in targets:
                raise ConfigurationError(f"Agent '{name}' configures handoff to '{target}', which is not a target")
            if not isinstance(config, HandoffConfig):
                raise ConfigurationError(f"Agent '{name}' handoff config for '{target}' must be a HandoffConfig")
            for hook_name in ("input_filter", "on_handoff"):
                hook = getattr(config, hook_name)
                if hook is not None and not callable(hook):
                    raise ConfigurationError(f"Agent '{name}' handoff {hook_name} for '{target}' is not callable")
            handoff_configs[target] = config

        try:
            instructions = as_instructions_fn(definition.instructions)
        except Exception as e:
            raise ConfigurationError(f"Agent '{name}' has invalid instructions: {e}") from e

        agent = Agent(
            name=name,
            instructions=instructions,
            tools=MappingProxyType(tools),
            handoff_targets=targets,
            max_turns=max_turns,
            routing=definition.routing,
            description=definition.description,
            last_messages=definition.last_messages,
            handoff_configs=MappingProxyType(handoff_configs),
        )
        self._agents[name] = agent
        LOGGER.debug(f"Declared agent: {name} (tools={sorted(tools)}, targets={sorted(targets)}, max_turns={max_turns})")
        return agent

    # ========== Linking (phase 2) ==========

    def link(self) -> "AgentRegistry":
        """Resolve handoff targets and freeze the registry.

        Raises:
            ConfigurationError: Undeclared handoff target or routing policy
                naming a tool the agent does not have
        """
        if self._linked:
            return self

        for agent in self._agents.values():
            for target in sorted(agent.handoff_targets):
                if target not in self._agents:
                    raise ConfigurationError(f"Agent '{agent.name}' declares unknown handoff target '{target}'")

        for agent in self._agents.values():
            available = set(agent.tools)
            if agent.can_hand_off:
                available.add(HANDOFF_TOOL_NAME)

            active = agent.routing.active_tools
            if active is not None:
                unknown = sorted(set(active) - available)
                if unknown:
                    raise ConfigurationError(f"Agent '{agent.name}' activates unknown tools: {unknown}")

            choice = agent.routing.tool_choice
            if choice is not None and choice not in TOOL_CHOICE_KEYWORDS and choice not in available:
                raise ConfigurationError(f"Agent '{agent.name}' tool_choice names unknown tool '{choice}'")
            if agent.routing.requires_tools and not available:
                raise ConfigurationError(f"Agent '{agent.name}' requires tool use but has no tools")

            if agent.can_hand_off:
                targets = [self._agents[t] for t in agent.handoff_targets]
                self._handoff_tools[agent.name] = create_handoff_tool(agent.name, targets)

        self._linked = True
        stats = self.get_stats()
        LOGGER.info(
            f"Agent registry linked: {stats['agents']} agents, "
            f"{stats['dispatchers']} with handoff targets, {stats['tools']} tools"
        )
        return self

    @property
    def is_linked(self) -> bool:
        return self._linked

    # ========== Queries ==========

    def lookup(self, name: str) -> Agent:
        """Return the agent named ``name``.

        Raises:
            AgentNotFoundError: No such agent
        """
        agent = self._agents.get(name)
        if agent is None:
            raise AgentNotFoundError(name)
        return agent

    def get(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def list_agents(self) -> List[Agent]:
        return list(self._agents.values())

    def tools_for(self, agent: Agent) -> Dict[str, BaseTool]:
        """Tools offered to the model while ``agent`` is active.

        Includes the handoff tool for agents with handoff targets and applies
        the routing policy's ``active_tools`` filter.
        """
        if not self._linked:
            raise ConfigurationError("Agent registry must be linked before use")

        tools = dict(agent.tools)
        handoff_tool = self._handoff_tools.get(agent.name)
        if handoff_tool is not None:
            tools[HANDOFF_TOOL_NAME] = handoff_tool

        active = agent.routing.active_tools
        if active is not None:
            tools = {name: tool for name, tool in tools.items() if name in active}
        return tools

    def get_catalog_text(self) -> str:
        """Generate a catalog of registered agents (for prompts and the CLI)."""
        lines = []
        for agent in sorted(self._agents.values(), key=lambda a: a.name):
            targets = ", ".join(sorted(agent.handoff_targets)) or "-"
            lines.append(
                f"- {agent.name}: {agent.description or 'No description provided.'} "
                f"(max_turns={agent.max_turns}, hands off to: {targets})"
            )
        return "\n".join(lines)

    def get_stats(self) -> Dict[str, int]:
        return {
            "agents": len(self._agents),
            "dispatchers": sum(1 for a in self._agents.values() if a.can_hand_off),
            "tools": sum(len(a.tools) for a in self._agents.values()),
        }
