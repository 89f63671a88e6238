"""Agent scanner - loads agent definitions from agents.yaml and builds a linked AgentRegistry

Responsibilities:
1. Read agents.yaml
2. Dynamically import tools, instructions factories and handoff hooks
3. Parse routing policies, per-target handoff options and tool cache metadata
4. Register and link every agent

Example agents.yaml::

    agents:
      triage:
        description: Routes customer requests
        instructions: "You route requests for {{ user_name | default('the customer') }}."
        handoff_targets: [operations]
        handoff_config:
          operations:
            input_filter: "agentrelay.agents.handoff_filters:keep_full_history"
            on_handoff: "mybank.audit:record_transfer"
        max_turns: 3
        routing:
          model: chat
          tool_choice: auto
      operations:
        description: Account operations
        instructions_factory: "mybank.prompts:operations_prompt"
        tools:
          - path: "mybank.tools:get_balance"
            cacheable: true
            ttl_seconds: 30
        max_turns: 5

Unlike tool discovery, any error here is a configuration error: a runtime
never starts with a partially loaded agent graph.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from langchain_core.tools import BaseTool

from agentrelay.tools.registry import ToolMeta, ToolRegistry
from agentrelay.utils.error_handler import ConfigurationError

from .registry import AgentRegistry
from .schema import AgentDefinition, HandoffConfig, ModelRoutingPolicy

LOGGER = logging.getLogger(__name__)


def import_factory(factory_path: str) -> Any:
    """Dynamically import an object.

    Args:
        factory_path: Import path in "module.path:attribute" form

    Returns:
        The imported object (function, tool instance or list of tools)

    Raises:
        ConfigurationError: Malformed path or failed import

    Examples:
        >>> get_balance = import_factory("mybank.tools:get_balance")
    """
    try:
        module_path, attr_name = factory_path.split(":")
        module = importlib.import_module(module_path)
        return getattr(module, attr_name)
    except (ValueError, ImportError, AttributeError) as e:
        LOGGER.error(f"Failed to import '{factory_path}': {e}")
        raise ConfigurationError(f"Cannot import '{factory_path}': {e}") from e


def load_agents_config(config_path: Path | str) -> Dict[str, Any]:
    """Load the agents.yaml config file.

    Raises:
        ConfigurationError: Missing file or invalid YAML
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Agents config not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict) or not isinstance(config.get("agents", {}), dict):
        raise ConfigurationError(f"{config_path} must contain an 'agents' mapping")

    LOGGER.info(f"Loaded agents config from: {config_path}")
    return config


def _load_tools(agent_name: str, entries: List[Any]) -> Tuple[List[BaseTool], List[ToolMeta]]:
    """Parse tool entries: plain import paths or {path, cacheable, ttl_seconds, tags}"""
    tools: List[BaseTool] = []
    metas: List[ToolMeta] = []

    for entry in entries:
        if isinstance(entry, str):
            entry = {"path": entry}
        if not isinstance(entry, dict) or "path" not in entry:
            raise ConfigurationError(f"Agent '{agent_name}' has a malformed tool entry: {entry!r}")

        loaded = import_factory(entry["path"])
        batch = list(loaded) if isinstance(loaded, (list, tuple)) else [loaded]
        for tool in batch:
            if not isinstance(tool, BaseTool):
                raise ConfigurationError(
                    f"Agent '{agent_name}': '{entry['path']}' is not a LangChain tool ({type(tool).__name__})"
                )
            tools.append(tool)
            if "cacheable" in entry or "ttl_seconds" in entry:
                ttl = entry.get("ttl_seconds")
                metas.append(
                    ToolMeta(
                        name=tool.name,
                        cacheable=bool(entry.get("cacheable", False)),
                        ttl_seconds=float(ttl) if ttl is not None else None,
                        tags=list(entry.get("tags", [])),
                    )
                )
    return tools, metas


def _parse_routing(agent_name: str, config: Optional[Dict[str, Any]]) -> ModelRoutingPolicy:
    if not config:
        return ModelRoutingPolicy()
    if not isinstance(config, dict):
        raise ConfigurationError(f"Agent '{agent_name}' routing must be a mapping")

    active = config.get("active_tools")
    temperature = config.get("temperature")
    return ModelRoutingPolicy(
        model=config.get("model"),
        tool_choice=config.get("tool_choice"),
        active_tools=frozenset(active) if active is not None else None,
        temperature=float(temperature) if temperature is not None else None,
        fallback_models=tuple(config.get("fallback_models", ())),
    )



def _parse_handoff_configs(agent_name: str, config: Optional[Dict[str, Any]]) -> Dict[str, HandoffConfig]:
    if not config:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Agent '{agent_name}' handoff_config must be a mapping")

    configs: Dict[str, HandoffConfig] = {}
    for target, entry in config.items():
        entry = entry or {}
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Agent '{agent_name}' handoff_config for '{target}' must be a mapping")
        unknown = sorted(set(entry) - {"input_filter", "on_handoff"})
        if unknown:
            raise ConfigurationError(f"Agent '{agent_name}' handoff_config for '{target}' has unknown keys: {unknown}")
        hooks = {key: import_factory(path) for key, path in entry.items() if path}
        configs[str(target)] = HandoffConfig(**hooks)
    return configs


def parse_agent_definition(name: str, config: Dict[str, Any]) -> Tuple[AgentDefinition, List[ToolMeta]]:
    """Parse an AgentDefinition from its YAML config.

    Args:
        name: Agent name (key in the agents mapping)
        config: Agent config dict

    Returns:
        (AgentDefinition, tool cache metadata)

    Raises:
        ConfigurationError: Missing instructions or failed import
    """
    if not isinstance(config, dict):
        raise ConfigurationError(f"Agent '{name}' config must be a mapping")

    # ========== Instructions ==========
    instructions: Any
    if "instructions_factory" in config:
        instructions = import_factory(config["instructions_factory"])
        if not callable(instructions):
            raise ConfigurationError(f"Agent '{name}' instructions_factory is not callable")
    elif isinstance(config.get("instructions"), str):
        instructions = config["instructions"]
    else:
        raise ConfigurationError(f"Agent '{name}' needs 'instructions' or 'instructions_factory'")

    # ========== Tools ==========
    tools, metas = _load_tools(name, config.get("tools", []) or [])

    # ========== Routing ==========
    routing = _parse_routing(name, config.get("routing"))
    handoff_configs = _parse_handoff_configs(name, config.get("handoff_config"))

    definition = AgentDefinition(
        name=name,
        instructions=instructions,
        tools=tools,
        handoff_targets=tuple(config.get("handoff_targets", []) or []),
        max_turns=config.get("max_turns"),
        routing=routing,
        description=str(config.get("description", "")),
        last_messages=config.get("last_messages"),
        handoff_configs=handoff_configs,
    )
    return definition, metas


def scan_agents_from_config(
    config_path: Path | str,
    *,
    tool_registry: Optional[ToolRegistry] = None,
    default_max_turns: Optional[int] = None,
) -> AgentRegistry:
    """Scan agents.yaml and return a linked AgentRegistry.

    Args:
        config_path: Path to agents.yaml
        tool_registry: Receives tool instances and cache metadata (optional)
        default_max_turns: Used for agents without max_turns
            (global.default_max_turns takes precedence)

    Raises:
        ConfigurationError: Any configuration error
    """
    config = load_agents_config(config_path)
    global_config = config.get("global", {}) or {}
    if "default_max_turns" in global_config:
        default_max_turns = int(global_config["default_max_turns"])
    elif default_max_turns is None:
        default_max_turns = 10

    registry = AgentRegistry(default_max_turns=default_max_turns)
    for name, agent_config in (config.get("agents") or {}).items():
        if isinstance(agent_config, dict) and agent_config.get("enabled", True) is False:
            LOGGER.info(f"  ⊘ Skipped disabled agent: {name}")
            continue

        definition, metas = parse_agent_definition(name, agent_config)
        registry.register(definition)
        if tool_registry is not None:
            for tool in definition.tools:
                tool_registry.register_tool(tool)
            for meta in metas:
                tool_registry.register_meta(meta)
        LOGGER.info(f"  ✓ Declared agent: {name}")

    return registry.link()
