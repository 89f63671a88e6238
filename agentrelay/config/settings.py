"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
All settings classes automatically load from environment variables with support for
multiple alias names (e.g., MODEL_CHAT and MODEL_CHAT_ID both work).

Example:
    from agentrelay.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_handoffs = settings.governance.max_handoffs
    attempts = settings.retry.max_attempts
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


_ENV_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class ModelRoutingSettings(BaseSettings):
    """Vendor-neutral model identifiers and credentials.

    Five model slots (base, reason, vision, code, chat), each with id, api_key
    and base_url. Any OpenAI-compatible endpoint works, including OpenRouter
    (set MODEL_*_URL=https://openrouter.ai/api/v1).

    ``fallback`` lists model slot keys tried in order when the slot selected
    for an agent fails (MODEL_FALLBACK=chat,base).
    """

    base: str = Field(
        default="base-quick",
        validation_alias=AliasChoices("MODEL_BASE", "MODEL_BASE_ID", "MODEL_BASIC_ID"),
    )
    base_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_API_KEY", "MODEL_BASIC_API_KEY"),
    )
    base_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_URL", "MODEL_BASIC_BASE_URL"),
    )

    reason: str = Field(
        default="reasoner-pro",
        validation_alias=AliasChoices("MODEL_REASON", "MODEL_REASON_ID", "MODEL_REASONING_ID"),
    )
    reason_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_REASON_API_KEY", "MODEL_REASONING_API_KEY"),
    )
    reason_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_REASON_URL", "MODEL_REASONING_BASE_URL"),
    )

    vision: str = Field(
        default="vision-omni",
        validation_alias=AliasChoices("MODEL_VISION", "MODEL_VISION_ID", "MODEL_MULTIMODAL_ID"),
    )
    vision_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_VISION_API_KEY", "MODEL_MULTIMODAL_API_KEY"),
    )
    vision_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_VISION_URL", "MODEL_MULTIMODAL_BASE_URL"),
    )

    code: str = Field(
        default="code-pro",
        validation_alias=AliasChoices("MODEL_CODE", "MODEL_CODE_ID"),
    )
    code_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CODE_API_KEY"),
    )
    code_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CODE_URL", "MODEL_CODE_BASE_URL"),
    )

    chat: str = Field(
        default="chat-mid",
        validation_alias=AliasChoices("MODEL_CHAT", "MODEL_CHAT_ID"),
    )
    chat_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT_API_KEY", "MODEL_DEFAULT_CHAT_API_KEY"),
    )
    chat_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT_URL", "MODEL_CHAT_BASE_URL"),
    )

    temperature: float = Field(default=0.2, ge=0.0, le=2.0, validation_alias=AliasChoices("MODEL_TEMPERATURE"))
    fallback: str = Field(default="", validation_alias=AliasChoices("MODEL_FALLBACK"))

    model_config = _ENV_CONFIG

    @property
    def fallback_keys(self) -> List[str]:
        """Fallback slot keys parsed from the comma separated MODEL_FALLBACK value."""
        return [item.strip() for item in self.fallback.split(",") if item.strip()]


class GovernanceSettings(BaseSettings):
    """Per-request execution limits.

    - max_handoffs: Handoff chain ceiling per request (default: 1, one hop from triage)
    - default_max_turns: Turn budget for agents that do not declare one (default: 10)
    - max_cost_usd: Cost ceiling per request, unset means unlimited
    - budget_warning_ratio: Fraction of max_cost_usd that emits a warning event (default: 0.9)
    - tool_concurrency: Maximum tool calls of one turn running at once (default: 8)
    """

    max_handoffs: int = Field(default=1, ge=0, le=20, validation_alias=AliasChoices("MAX_HANDOFFS"))
    default_max_turns: int = Field(default=10, ge=1, le=200, validation_alias=AliasChoices("DEFAULT_MAX_TURNS"))
    max_cost_usd: Optional[float] = Field(default=None, gt=0, validation_alias=AliasChoices("MAX_COST_USD"))
    budget_warning_ratio: float = Field(
        default=0.9, gt=0.0, le=1.0, validation_alias=AliasChoices("BUDGET_WARNING_RATIO")
    )
    tool_concurrency: int = Field(default=8, ge=1, le=64, validation_alias=AliasChoices("TOOL_CONCURRENCY"))

    model_config = _ENV_CONFIG


class RetrySettings(BaseSettings):
    """Retry policy for retryable provider errors (rate limits, timeouts, 5xx)."""

    max_attempts: int = Field(default=3, ge=1, le=10, validation_alias=AliasChoices("RETRY_MAX_ATTEMPTS"))
    min_wait: float = Field(default=1.0, ge=0.0, validation_alias=AliasChoices("RETRY_MIN_WAIT"))
    max_wait: float = Field(default=10.0, ge=0.0, validation_alias=AliasChoices("RETRY_MAX_WAIT"))
    multiplier: float = Field(default=1.0, ge=0.0, validation_alias=AliasChoices("RETRY_MULTIPLIER"))

    model_config = _ENV_CONFIG


class CacheSettings(BaseSettings):
    """Tool result cache configuration."""

    enabled: bool = Field(default=True, validation_alias=AliasChoices("TOOL_CACHE_ENABLED"))
    default_ttl_seconds: Optional[float] = Field(
        default=300.0, gt=0, validation_alias=AliasChoices("TOOL_CACHE_TTL")
    )
    max_entries: int = Field(default=1024, ge=1, validation_alias=AliasChoices("TOOL_CACHE_MAX_ENTRIES"))

    model_config = _ENV_CONFIG


class ObservabilitySettings(BaseSettings):
    """Tracing, logging and agent configuration paths.

    - LangSmith tracing (LANGCHAIN_TRACING_V2, LANGCHAIN_PROJECT, etc.)
    - Logging settings (LOG_PROMPT_MAX_LENGTH, LOG_DIR)
    - Agent definitions file (AGENTS_CONFIG)
    """

    langsmith_project: Optional[str] = Field(default=None, validation_alias=AliasChoices("LANGCHAIN_PROJECT"))
    langsmith_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LANGCHAIN_API_KEY", "LANGSMITH_API_KEY")
    )
    langsmith_endpoint: Optional[str] = Field(default=None, validation_alias=AliasChoices("LANGCHAIN_ENDPOINT"))
    tracing_enabled: bool = Field(default=False, validation_alias=AliasChoices("LANGCHAIN_TRACING_V2"))

    # Logging settings
    log_prompt_max_length: int = Field(
        default=500, ge=100, le=5000, validation_alias=AliasChoices("LOG_PROMPT_MAX_LENGTH")
    )
    log_dir: str = Field(default="logs", validation_alias=AliasChoices("LOG_DIR"))

    agents_config_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("AGENTS_CONFIG"))

    model_config = _ENV_CONFIG


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Nested groups:
    - models: Model routing and API credentials (ModelRoutingSettings)
    - governance: Handoff, turn and cost limits (GovernanceSettings)
    - retry: Provider retry policy (RetrySettings)
    - cache: Tool result cache (CacheSettings)
    - observability: Tracing, logging and config paths (ObservabilitySettings)

    Use get_settings() to obtain a cached singleton instance.
    """

    environment: str = Field(default="dev", validation_alias=AliasChoices("APP_ENV"))
    models: ModelRoutingSettings = Field(default_factory=ModelRoutingSettings)
    governance: GovernanceSettings = Field(default_factory=GovernanceSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()
