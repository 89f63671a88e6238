"""Tool registry, result cache and invocation mediator."""

from .cache import CacheEntry, InMemoryToolCache, ToolCache
from .mediator import ToolMediator, fingerprint, normalize_arguments
from .registry import NO_CACHE, CachePolicy, ToolMeta, ToolRegistry
from .types import TOOL_EXECUTION_ERROR, ToolCall, ToolResult

__all__ = [
    "CacheEntry",
    "InMemoryToolCache",
    "ToolCache",
    "ToolMediator",
    "fingerprint",
    "normalize_arguments",
    "NO_CACHE",
    "CachePolicy",
    "ToolMeta",
    "ToolRegistry",
    "TOOL_EXECUTION_ERROR",
    "ToolCall",
    "ToolResult",
]
