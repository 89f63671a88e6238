"""Model management utilities."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Iterable, List, Mapping, Optional

LOGGER = logging.getLogger(__name__)

MODEL_SLOTS = ("base", "reason", "vision", "code", "chat")


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """Normalized description of an LLM endpoint."""

    key: str
    model_id: str
    can_tools: bool
    domain: str  # general | reasoning | code | chat
    quality: str  # low | med | high


class ModelRegistry:
    """Central registry for model specs and routing heuristics."""

    def __init__(self, specs: Optional[Iterable[ModelSpec]] = None) -> None:
        self._specs: Dict[str, ModelSpec] = {}
        if specs:
            for spec in specs:
                self.register(spec)

    def register(self, spec: ModelSpec) -> None:
        self._specs[spec.key] = spec

    def get(self, key: str) -> ModelSpec:
        if key not in self._specs:
            raise KeyError(f"Unknown model key: {key}")
        return self._specs[key]

    def has(self, key: str) -> bool:
        return key in self._specs

    def keys(self) -> List[str]:
        return list(self._specs)

    def prefer(self, *, require_tools: bool, preference: Optional[str] = None) -> ModelSpec:
        """Choose a model spec when the agent does not name one."""
        if preference == "reasoning" and "reason" in self._specs:
            return self.get("reason")
        if require_tools:
            if "chat" in self._specs:
                return self.get("chat")
            for spec in self._specs.values():
                if spec.can_tools:
                    return spec
            raise KeyError("No registered model supports tool calling")
        if "base" in self._specs:
            return self.get("base")
        if not self._specs:
            raise KeyError("No models registered")
        return next(iter(self._specs.values()))

    def select(self, model_key: Optional[str] = None, *, require_tools: bool = False) -> ModelSpec:
        """Resolve the model for one agent turn.

        An explicit ``model_key`` wins unless the agent must call tools and the
        named model cannot; then the routing heuristics pick a tool-capable one.
        """
        if model_key is None:
            return self.prefer(require_tools=require_tools)

        spec = self.get(model_key)
        if require_tools and not spec.can_tools:
            fallback = self.prefer(require_tools=True)
            LOGGER.warning(
                f"Model '{model_key}' ({spec.model_id}) cannot call tools, using '{fallback.key}' instead"
            )
            return fallback
        return spec


def build_default_registry(model_configs: Mapping[str, Mapping[str, object]]) -> ModelRegistry:
    """Instantiate the registry with defaults drawn from configuration.

    Args:
        model_configs: Dictionary mapping slot names to config dicts with an 'id' key
    """
    traits = {
        "base": (False, "general", "low"),
        "reason": (True, "reasoning", "high"),
        "vision": (False, "general", "med"),
        "code": (True, "code", "high"),
        "chat": (True, "chat", "med"),
    }
    registry = ModelRegistry()
    for key in MODEL_SLOTS:
        if key not in model_configs:
            continue
        can_tools, domain, quality = traits[key]
        registry.register(
            ModelSpec(
                key=key,
                model_id=str(model_configs[key]["id"]),
                can_tools=can_tools,
                domain=domain,
                quality=quality,
            )
        )
    return registry
