"""History filters applied when control moves to another agent.

A filter takes the conversation as recorded so far and returns the history
the target agent is prompted with. The recorded history itself is never
rewritten, so RunResult.messages still shows every handoff.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Set

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

from agentrelay.utils.message_utils import stringify_content

from .handoff_tools import HANDOFF_TOOL_NAME, parse_handoff_arguments
from .schema import HistoryFilter

LOGGER = logging.getLogger(__name__)


def drop_handoff_chatter(history: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Remove handoff tool calls and their results.

    An assistant message that called ``handoff_to_agent`` keeps its text and
    any handoff context, but loses all of its tool calls. Tool results that
    answered those calls (the transfer message and skipped siblings) are
    dropped. If nothing is left of the assistant message it is dropped too.

    Example:
        >>> [m.type for m in drop_handoff_chatter(history)]
        ['human']
    """
    answered: Set[str] = set()
    filtered: List[BaseMessage] = []

    for message in history:
        if isinstance(message, AIMessage) and any(call["name"] == HANDOFF_TOOL_NAME for call in message.tool_calls):
            answered.update(call["id"] for call in message.tool_calls if call.get("id"))
            parts = [stringify_content(message.content)]
            for call in message.tool_calls:
                if call["name"] != HANDOFF_TOOL_NAME:
                    continue
                target, _, context = parse_handoff_arguments(call["args"])
                if context:
                    parts.append(f"Context for {target}: {context}")
            content = "\n".join(part for part in parts if part)
            if content:
                # Fresh message: provider metadata may still carry the raw tool calls
                filtered.append(AIMessage(content=content, name=message.name, id=message.id))
            continue

        if isinstance(message, ToolMessage) and message.tool_call_id in answered:
            continue
        filtered.append(message)

    return filtered


def keep_full_history(history: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Pass the recorded history through unchanged."""
    return list(history)


def apply_input_filter(input_filter: Optional[HistoryFilter], history: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Run ``input_filter`` (default: drop_handoff_chatter) over ``history``.

    A filter that raises or returns something other than messages is logged
    and the unfiltered history is used instead.
    """
    chosen = input_filter or drop_handoff_chatter
    label = getattr(chosen, "__name__", repr(chosen))
    try:
        filtered = list(chosen(list(history)))
    except Exception as e:
        LOGGER.error(f"Handoff input filter {label} failed, using full history: {e}")
        return list(history)

    if not all(isinstance(message, BaseMessage) for message in filtered):
        LOGGER.error(f"Handoff input filter {label} returned non-message items, using full history")
        return list(history)
    return filtered
