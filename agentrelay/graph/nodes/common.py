"""Helpers shared by the dispatch graph nodes."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from langgraph.config import get_stream_writer

from agentrelay.events import RunEvent, RunHooks, call_hook

LOGGER = logging.getLogger(__name__)


def _stream_writer() -> Optional[Callable[[Any], None]]:
    try:
        return get_stream_writer()
    except RuntimeError:
        # Called outside a graph run (direct node tests)
        return None


async def emit(event: RunEvent, hooks: RunHooks) -> None:
    """Deliver a run event to the stream consumer and the on_event hook."""
    writer = _stream_writer()
    if writer is not None:
        writer(event)
    await call_hook(hooks.on_event, event, name="on_event")
