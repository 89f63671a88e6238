"""Tagged decision resolved from each model response.

The dispatcher never inspects free text to route: every response maps to
exactly one of ``ContinueWithTools``, ``Handoff`` or ``FinalAnswer``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from agentrelay.agents.handoff_tools import HANDOFF_TOOL_NAME, parse_handoff_arguments
from agentrelay.models.provider import ModelResponse
from agentrelay.tools.types import ToolCall


@dataclass(frozen=True, slots=True)
class ContinueWithTools:
    """Run these tool calls, then give the active agent another turn."""

    tool_calls: Tuple[ToolCall, ...]


@dataclass(frozen=True, slots=True)
class Handoff:
    """Transfer control to ``target``.

    ``call_id`` links the decision to the handoff tool call that requested
    it (None for native or programmatic handoffs). ``skipped_calls`` are
    sibling tool calls of the same response that are not executed.
    """

    target: str
    reason: str = ""
    call_id: Optional[str] = None
    context: Optional[str] = None
    skipped_calls: Tuple[ToolCall, ...] = ()


@dataclass(frozen=True, slots=True)
class FinalAnswer:
    text: str


Decision = Union[ContinueWithTools, Handoff, FinalAnswer]


def resolve_decision(response: ModelResponse) -> Decision:
    """Map a model response to a decision.

    Precedence: handoff tool call, native handoff directive, tool calls,
    final answer. Only the first handoff call of a response is honored.
    """
    for call in response.tool_calls:
        if call.tool_name == HANDOFF_TOOL_NAME:
            target, reason, context = parse_handoff_arguments(call.arguments)
            return Handoff(
                target=target,
                reason=reason,
                call_id=call.call_id,
                context=context,
                skipped_calls=tuple(c for c in response.tool_calls if c is not call),
            )

    if response.handoff:
        return Handoff(target=response.handoff, skipped_calls=tuple(response.tool_calls))

    if response.tool_calls:
        return ContinueWithTools(tool_calls=tuple(response.tool_calls))

    return FinalAnswer(text=response.text)
