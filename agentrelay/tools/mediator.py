"""Tool invocation mediator.

Every tool call requested by a model goes through ``ToolMediator.invoke``:

1. Normalize arguments through the tool's args schema
2. Compute a fingerprint from (tool name, normalized arguments)
3. Return a cached result for cacheable tools, otherwise run the tool
4. Store successful results of cacheable tools
5. Convert any failure into a ToolResult with ``error_kind="ToolExecutionError"``

Failures never propagate: the model sees the error text as the tool result
and decides whether to retry, pick another tool or report the problem.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from langchain_core.tools import BaseTool
from pydantic import BaseModel, ValidationError

from agentrelay.utils.logging_utils import log_tool_call, log_tool_result

from .cache import ToolCache
from .registry import NO_CACHE, CachePolicy, ToolRegistry
from .types import TOOL_EXECUTION_ERROR, ToolCall, ToolResult

LOGGER = logging.getLogger(__name__)


def normalize_arguments(tool: Optional[BaseTool], arguments: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a canonical, JSON-compatible form of tool arguments.

    Arguments are validated through the tool's pydantic args schema when it has
    one, so defaults are filled in and equivalent inputs ("3" vs 3 for an int
    field) normalize to the same value.

    Raises:
        ValidationError: Arguments do not match the tool's schema
    """
    schema = getattr(tool, "args_schema", None) if tool is not None else None
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_validate(dict(arguments)).model_dump(mode="json")
    return json.loads(json.dumps(dict(arguments), sort_keys=True, default=str))


def fingerprint(tool_name: str, normalized_arguments: Mapping[str, Any]) -> str:
    """Deterministic cache key for a tool call."""
    payload = json.dumps(
        {"tool": tool_name, "args": normalized_arguments},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ToolMediator:
    """Runs tool calls with optional result caching and structured error capture.

    Stateless apart from the shared cache, so one mediator serves every
    request of a runtime.
    """

    def __init__(
        self,
        *,
        cache: Optional[ToolCache] = None,
        registry: Optional[ToolRegistry] = None,
        concurrency: int = 8,
    ) -> None:
        self._cache = cache
        self._registry = registry or ToolRegistry()
        self._concurrency = max(1, concurrency)

    def cache_policy(self, tool: BaseTool) -> CachePolicy:
        if self._cache is None:
            return NO_CACHE
        return self._registry.cache_policy(tool)

    async def invoke(
        self,
        tool_name: str,
        arguments: Mapping[str, Any],
        cache_policy: Optional[CachePolicy] = None,
        *,
        tools: Mapping[str, BaseTool],
        call_id: str = "",
    ) -> ToolResult:
        """Invoke one tool call.

        Args:
            tool_name: Name of the tool requested by the model
            arguments: Structured input for the tool
            cache_policy: Overrides the policy resolved from tool metadata
            tools: Tools available to the active agent
            call_id: Identifier correlating the result with the model's call

        Returns:
            ToolResult, never raises for tool failures
        """
        log_tool_call(LOGGER, tool_name, dict(arguments))

        tool = tools.get(tool_name)
        if tool is None:
            return self._failure(call_id, tool_name, f"Unknown tool '{tool_name}'. Available: {sorted(tools)}")

        try:
            normalized = normalize_arguments(tool, arguments)
        except ValidationError as e:
            return self._failure(call_id, tool_name, f"Invalid arguments: {e}")

        policy = cache_policy if cache_policy is not None else self.cache_policy(tool)
        key = fingerprint(tool_name, normalized) if policy.cacheable and self._cache is not None else None

        if key is not None:
            entry = await self._cache.get(key)
            if entry is not None:
                log_tool_result(LOGGER, tool_name, entry.value, success=True, cache_hit=True)
                return ToolResult(call_id=call_id, tool_name=tool_name, output=entry.value, cache_hit=True)

        try:
            output = await tool.ainvoke(dict(arguments))
        except Exception as e:
            LOGGER.debug(f"Tool {tool_name} raised {type(e).__name__}", exc_info=e)
            return self._failure(call_id, tool_name, str(e) or type(e).__name__)

        if key is not None:
            stored = await self._cache.set(key, output, policy.ttl_seconds)
            if not stored:
                LOGGER.debug(f"Cache entry for {tool_name} already written by a concurrent call")

        log_tool_result(LOGGER, tool_name, output, success=True)
        return ToolResult(call_id=call_id, tool_name=tool_name, output=output)

    async def invoke_all(self, calls: Sequence[ToolCall], tools: Mapping[str, BaseTool]) -> List[ToolResult]:
        """Run the tool calls of one model response concurrently.

        Returns once every call has settled; results keep the order of ``calls``.
        """
        if not calls:
            return []

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _run(call: ToolCall) -> ToolResult:
            async with semaphore:
                return await self.invoke(call.tool_name, call.arguments, tools=tools, call_id=call.call_id)

        return list(await asyncio.gather(*(_run(call) for call in calls)))

    @staticmethod
    def _failure(call_id: str, tool_name: str, message: str) -> ToolResult:
        log_tool_result(LOGGER, tool_name, message, success=False)
        return ToolResult(
            call_id=call_id,
            tool_name=tool_name,
            error_kind=TOOL_EXECUTION_ERROR,
            message=message,
        )
