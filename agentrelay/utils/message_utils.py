"""Message formatting and history windowing utilities."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage


def stringify_content(content: Any, separator: str = "\n") -> str:
    """Convert message content to string.

    Handles:
    - List content (multimodal messages / content blocks)
    - Dict content with "text" field
    - Simple string content

    Non-text content blocks (tool use, images) are skipped.
    """
    if content is None:
        return ""
    if isinstance(content, list):
        pieces: list[str] = []
        for item in content:
            if isinstance(item, str):
                pieces.append(item)
            elif isinstance(item, dict) and "text" in item:
                pieces.append(str(item["text"]))
        return separator.join(pieces)
    return str(content)


def role_and_text(message: Any) -> tuple[str, str]:
    """Return a (role, text) pair for any message-like object."""
    if isinstance(message, SystemMessage):
        return "system", stringify_content(message.content)
    if isinstance(message, HumanMessage):
        return "user", stringify_content(message.content)
    if isinstance(message, AIMessage):
        return "assistant", stringify_content(message.content)
    if isinstance(message, ToolMessage):
        return "tool", stringify_content(message.content)
    if isinstance(message, BaseMessage):
        return message.type, stringify_content(message.content)
    if isinstance(message, dict):
        role = message.get("role") or message.get("type") or "unknown"
        return str(role), stringify_content(message.get("content", ""))
    return "unknown", stringify_content(message)


def last_assistant_text(messages: List[BaseMessage]) -> str:
    """Return the text of the most recent assistant message that has any."""
    for message in reversed(messages):
        if isinstance(message, AIMessage):
            text = stringify_content(message.content)
            if text:
                return text
    return ""


def window_history(messages: List[BaseMessage], keep_recent: Optional[int]) -> List[BaseMessage]:
    """Trim history to roughly the last ``keep_recent`` messages.

    The window never separates an assistant message carrying tool calls from
    its tool results, and always keeps system messages and the latest user
    message so the active agent still sees the request it is answering.

    Args:
        messages: Conversation history
        keep_recent: Number of recent messages to keep (None or <= 0 keeps all)

    Returns:
        Windowed message list that is safe to send to tool-calling models
    """
    if not keep_recent or keep_recent <= 0 or len(messages) <= keep_recent:
        return list(messages)

    # tool_call_id -> index of the assistant message that issued it
    issuer: Dict[str, int] = {}
    # assistant index -> indices of its tool results
    results: Dict[int, List[int]] = {}

    for i, msg in enumerate(messages):
        if isinstance(msg, AIMessage):
            for tc in msg.tool_calls or []:
                tc_id = tc.get("id") if isinstance(tc, dict) else getattr(tc, "id", None)
                if tc_id:
                    issuer[tc_id] = i
        elif isinstance(msg, ToolMessage):
            ai_idx = issuer.get(msg.tool_call_id)
            if ai_idx is not None:
                results.setdefault(ai_idx, []).append(i)

    cutoff_idx = len(messages) - keep_recent
    keep: Set[int] = set(range(cutoff_idx, len(messages)))

    for i in range(cutoff_idx, len(messages)):
        msg = messages[i]
        if isinstance(msg, ToolMessage):
            ai_idx = issuer.get(msg.tool_call_id)
            if ai_idx is not None:
                keep.add(ai_idx)
                keep.update(results.get(ai_idx, []))

    for i, msg in enumerate(messages):
        if isinstance(msg, SystemMessage):
            keep.add(i)

    for i in range(len(messages) - 1, -1, -1):
        if isinstance(messages[i], HumanMessage):
            keep.add(i)
            break

    return [messages[i] for i in sorted(keep)]
