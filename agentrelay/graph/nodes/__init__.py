"""Graph node builders."""

from .agent import build_agent_node
from .finalize import build_finalize_node, settle_text
from .handoff import build_handoff_node, validate_handoff
from .select import build_select_node
from .tools import build_tools_node

__all__ = [
    "build_agent_node",
    "build_finalize_node",
    "settle_text",
    "build_handoff_node",
    "validate_handoff",
    "build_select_node",
    "build_tools_node",
]
