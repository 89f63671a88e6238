"""Default model resolver wiring using environment-derived settings.

Converts the five model slots of ``ModelRoutingSettings`` into normalized
configs and builds a resolver that creates ChatOpenAI clients on demand.
Any OpenAI-compatible endpoint works (OpenRouter, DeepSeek, local servers).

Key Functions:
    - resolve_model_configs(): Extract model configs from settings
    - build_model_resolver(): Create a resolver function that returns model instances
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, TypedDict

from langchain_openai import ChatOpenAI

from agentrelay.config.settings import Settings
from agentrelay.models.provider import ModelResolver
from agentrelay.models.registry import MODEL_SLOTS
from agentrelay.utils.error_handler import ConfigurationError


class ModelConfig(TypedDict):
    id: str
    api_key: Optional[str]
    base_url: Optional[str]


def resolve_model_configs(settings: Settings) -> Dict[str, ModelConfig]:
    """Build normalized model configs (id + credentials) from settings.

    Args:
        settings: Application settings loaded from .env

    Returns:
        Dict mapping slot names to ModelConfig dicts with keys: id, api_key, base_url
    """
    models = settings.models
    return {
        slot: {
            "id": getattr(models, slot),
            "api_key": getattr(models, f"{slot}_api_key"),
            "base_url": getattr(models, f"{slot}_base_url"),
        }
        for slot in MODEL_SLOTS
    }


def _chat_kwargs(config: ModelConfig, temperature: float) -> Dict[str, object]:
    if not config["api_key"]:
        raise ConfigurationError(f"Missing API key for model {config['id']}, configure it in .env")
    kwargs: Dict[str, object] = {
        "model": config["id"],
        "api_key": config["api_key"],
        "temperature": temperature,
        "stream_usage": True,
    }
    if config["base_url"]:
        kwargs["base_url"] = config["base_url"]
    return kwargs


def build_model_resolver(model_configs: Dict[str, ModelConfig], *, temperature: float = 0.2) -> ModelResolver:
    """Construct a resolver that returns ChatOpenAI-compatible clients.

    Models are only instantiated when requested, so slots without an API key
    are fine as long as no agent routes to them.

    Raises (from the resolver):
        KeyError: Model id is not in the configuration
        ConfigurationError: API key is missing for the requested model

    Example:
        >>> resolver = build_model_resolver(resolve_model_configs(get_settings()))
        >>> chat_model = resolver("deepseek-chat")
    """
    catalog: Dict[str, Callable[[], ChatOpenAI]] = {}
    for config in model_configs.values():
        catalog[config["id"]] = lambda cfg=config: ChatOpenAI(**_chat_kwargs(cfg, temperature))

    def resolver(model_id: str):
        if model_id not in catalog:
            raise KeyError(f"Model {model_id} is not configured")
        return catalog[model_id]()

    return resolver
