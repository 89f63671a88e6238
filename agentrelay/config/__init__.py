"""Configuration helpers for agentrelay."""

from .settings import (
    CacheSettings,
    GovernanceSettings,
    ModelRoutingSettings,
    ObservabilitySettings,
    RetrySettings,
    Settings,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "GovernanceSettings",
    "ModelRoutingSettings",
    "ObservabilitySettings",
    "RetrySettings",
    "Settings",
    "get_settings",
]
