"""Tool metadata management and registration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from langchain_core.tools import BaseTool


@dataclass(frozen=True, slots=True)
class ToolMeta:
    """Describes caching and governance attributes for a tool.

    A tool whose result depends only on its arguments (lookups, conversions)
    can be marked ``cacheable``; ``ttl_seconds`` overrides the cache default.
    """

    name: str
    cacheable: bool = False
    ttl_seconds: Optional[float] = None
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Cache behaviour applied to one tool invocation."""

    cacheable: bool = False
    ttl_seconds: Optional[float] = None


NO_CACHE = CachePolicy()


class ToolRegistry:
    """Tracks tool instances and their metadata."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None, meta: Optional[Iterable[ToolMeta]] = None) -> None:
        self._tools: Dict[str, BaseTool] = {}
        self._meta: Dict[str, ToolMeta] = {}
        if tools:
            for tool in tools:
                self.register_tool(tool)
        if meta:
            for item in meta:
                self.register_meta(item)

    def register_tool(self, tool: BaseTool, meta: Optional[ToolMeta] = None) -> None:
        self._tools[tool.name] = tool
        if meta is not None:
            self.register_meta(meta)

    def register_meta(self, metadata: ToolMeta) -> None:
        self._meta[metadata.name] = metadata

    def get_tool(self, name: str) -> BaseTool:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def cache_policy(self, tool: BaseTool) -> CachePolicy:
        """Resolve the cache policy of a tool.

        Registered ToolMeta wins; otherwise the tool's own ``metadata`` dict is
        consulted (``{"cacheable": True, "cache_ttl": 60}``).
        """
        meta = self._meta.get(tool.name)
        if meta is not None:
            return CachePolicy(cacheable=meta.cacheable, ttl_seconds=meta.ttl_seconds)

        tool_meta = tool.metadata or {}
        if tool_meta.get("cacheable"):
            ttl = tool_meta.get("cache_ttl")
            return CachePolicy(cacheable=True, ttl_seconds=float(ttl) if ttl is not None else None)
        return NO_CACHE
