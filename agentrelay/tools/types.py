"""Tool call and tool result value types."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from langchain_core.messages import ToolMessage

from agentrelay.utils.error_handler import ToolExecutionError

TOOL_EXECUTION_ERROR = ToolExecutionError.__name__


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by one model response."""

    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    call_id: str = ""

    def as_langchain(self) -> Dict[str, Any]:
        return {"name": self.tool_name, "args": dict(self.arguments), "id": self.call_id, "type": "tool_call"}


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of one tool invocation.

    Exactly one of ``output`` (success) or ``error_kind`` + ``message``
    (failure) is meaningful. ``cache_hit`` is diagnostic only.
    """

    call_id: str
    tool_name: str
    output: Any = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    cache_hit: bool = False

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def content(self) -> str:
        """Text fed back to the model."""
        if not self.ok:
            return f"Error ({self.error_kind}): {self.message}"
        if isinstance(self.output, str):
            return self.output
        try:
            return json.dumps(self.output, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(self.output)

    def to_message(self) -> ToolMessage:
        return ToolMessage(
            content=self.content(),
            tool_call_id=self.call_id,
            name=self.tool_name,
            status="success" if self.ok else "error",
            response_metadata={"cache_hit": self.cache_hit},
        )
