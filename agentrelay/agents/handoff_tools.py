"""Handoff tool offered to agents that can transfer control.

Each agent with handoff targets gets one ``handoff_to_agent`` tool whose
``agent`` argument is an enum of exactly those targets. The runtime
intercepts calls to this tool and turns them into a handoff decision; the
tool body only produces the transfer message recorded in history.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, Optional, Sequence, Tuple

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import Field, create_model

from .schema import Agent

LOGGER = logging.getLogger(__name__)

HANDOFF_TOOL_NAME = "handoff_to_agent"

# Argument names accepted for the target, first match wins
_TARGET_KEYS = ("agent", "target_agent", "agent_name", "target")


def transfer_message(target: str, context: Optional[str] = None) -> str:
    message = f"Transferred to {target}. Adopt the persona of {target} immediately."
    if context:
        message += f"\nContext from previous agent: {context}"
    return message


def build_handoff_catalog(targets: Sequence[Agent]) -> str:
    """One line per target agent, used in the handoff tool description."""
    lines = []
    for agent in sorted(targets, key=lambda a: a.name):
        lines.append(f"- {agent.name}: {agent.description or 'No description provided.'}")
    return "\n".join(lines)


def create_handoff_tool(source: str, targets: Sequence[Agent]) -> BaseTool:
    """Create the handoff tool for ``source``.

    Args:
        source: Name of the agent that owns the tool
        targets: Agents reachable from ``source``

    Returns:
        StructuredTool named ``handoff_to_agent``
    """
    if not targets:
        raise ValueError(f"Agent '{source}' has no handoff targets")

    names = tuple(sorted(agent.name for agent in targets))
    HandoffInput = create_model(
        "HandoffInput",
        agent=(Literal[names], Field(description="Name of the agent that should handle the request")),
        context=(Optional[str], Field(default=None, description="Relevant context for the next agent")),
        reason=(Optional[str], Field(default=None, description="Why this agent is the right choice")),
    )

    description = (
        "Transfer the conversation to a specialist agent that is better suited to answer it.\n\n"
        f"Available agents:\n{build_handoff_catalog(targets)}\n\n"
        "Call this exactly once, with the single best agent. Do not answer the request yourself."
    )

    def _handoff(agent: str, context: Optional[str] = None, reason: Optional[str] = None) -> str:
        return transfer_message(agent, context)

    tool = StructuredTool.from_function(
        func=_handoff,
        name=HANDOFF_TOOL_NAME,
        description=description,
        args_schema=HandoffInput,
    )
    LOGGER.debug(f"Created handoff tool for {source}: targets={list(names)}")
    return tool


def parse_handoff_arguments(arguments: Mapping[str, Any]) -> Tuple[str, str, Optional[str]]:
    """Extract (target, reason, context) from handoff tool arguments.

    A missing target yields an empty string, which the dispatcher rejects as
    an invalid handoff.
    """
    target = ""
    for key in _TARGET_KEYS:
        value = arguments.get(key)
        if isinstance(value, str) and value.strip():
            target = value.strip()
            break
    reason = arguments.get("reason")
    context = arguments.get("context")
    return (
        target,
        reason if isinstance(reason, str) else "",
        context if isinstance(context, str) and context else None,
    )
