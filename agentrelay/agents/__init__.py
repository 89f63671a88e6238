"""Agent definitions, two-phase registry and YAML loading."""

from .handoff_filters import apply_input_filter, drop_handoff_chatter, keep_full_history
from .handoff_tools import HANDOFF_TOOL_NAME, create_handoff_tool, parse_handoff_arguments, transfer_message
from .registry import AgentRegistry
from .scanner import import_factory, load_agents_config, parse_agent_definition, scan_agents_from_config
from .schema import (
    TOOL_CHOICE_KEYWORDS,
    DEFAULT_HANDOFF_CONFIG,
    Agent,
    AgentDefinition,
    HandoffConfig,
    HistoryFilter,
    InstructionsFn,
    ModelRoutingPolicy,
    as_instructions_fn,
    template_instructions,
)

__all__ = [
    "apply_input_filter",
    "drop_handoff_chatter",
    "keep_full_history",
    "HANDOFF_TOOL_NAME",
    "create_handoff_tool",
    "parse_handoff_arguments",
    "transfer_message",
    "AgentRegistry",
    "import_factory",
    "load_agents_config",
    "parse_agent_definition",
    "scan_agents_from_config",
    "TOOL_CHOICE_KEYWORDS",
    "DEFAULT_HANDOFF_CONFIG",
    "Agent",
    "AgentDefinition",
    "HandoffConfig",
    "HistoryFilter",
    "InstructionsFn",
    "ModelRoutingPolicy",
    "as_instructions_fn",
    "template_instructions",
]
