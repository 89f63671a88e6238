"""Model registry and provider adapters."""

from .provider import (
    ChatModelProvider,
    ModelProvider,
    ModelResolver,
    ModelResponse,
    StreamEvent,
    StreamFinish,
    TextDelta,
    response_from_message,
)
from .registry import MODEL_SLOTS, ModelRegistry, ModelSpec, build_default_registry

__all__ = [
    "ChatModelProvider",
    "ModelProvider",
    "ModelResolver",
    "ModelResponse",
    "StreamEvent",
    "StreamFinish",
    "TextDelta",
    "response_from_message",
    "MODEL_SLOTS",
    "ModelRegistry",
    "ModelSpec",
    "build_default_registry",
]
