"""Streaming handle returned by ``AgentRuntime.stream``.

The request runs in its own task. Run events (agent start, handoff, tool
results, text deltas, finish) are forwarded as soon as the graph emits
them; ``result()`` resolves once the request has terminated.

Example:
    handle = runtime.stream("triage", "what's my account balance?")
    async for delta in handle.text_stream():
        print(delta, end="", flush=True)
    result = await handle.result()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional

from agentrelay.events import RunEvent

if TYPE_CHECKING:
    from .app import AgentRuntime, RunResult

LOGGER = logging.getLogger(__name__)

_DONE = object()


class StreamingRun:
    """Handle for one in-flight request.

    Iterate it for RunEvents, call ``cancel()`` to stop it, and await
    ``result()`` for the RunResult. ``on_finish`` fires exactly once, also
    for cancelled requests.
    """

    def __init__(self, runtime: "AgentRuntime", state: Dict[str, Any], *, forward_events: bool = True) -> None:
        self._runtime = runtime
        self._state = state
        self._forward_events = forward_events
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._task: Optional["asyncio.Task[RunResult]"] = None
        self._last_state: Dict[str, Any] = dict(state)
        self._pending_text: List[str] = []
        self._cancel_requested = False
        self._iterating = False

    @property
    def request_id(self) -> str:
        return self._state["request_id"]

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def _ensure_started(self) -> "asyncio.Task[RunResult]":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._drive())
        return self._task

    # ========== Graph observation ==========

    def _observe(self, mode: str, chunk: Any) -> None:
        if mode == "values":
            self._last_state = chunk
            self._pending_text.clear()
            return
        if isinstance(chunk, RunEvent):
            if chunk.type == "text-delta":
                self._pending_text.append(chunk.text)
            if self._forward_events and not self._cancel_requested:
                self._queue.put_nowait(chunk)

    async def _drive(self) -> "RunResult":
        failure: Optional[BaseException] = None
        cancelled = self._cancel_requested
        try:
            if not cancelled:
                await self._runtime._run_graph(self._state, self._observe)
        except asyncio.CancelledError:
            if not self._cancel_requested:
                # Cancelled from outside (caller task); report, then propagate
                result = self._runtime._build_result(self._last_state, "".join(self._pending_text), cancelled=True)
                await self._runtime._notify_finish(result)
                self._queue.put_nowait(_DONE)
                raise
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
            cancelled = True
        except Exception as e:
            LOGGER.exception("Request failed outside the graph's error boundaries", exc_info=e)
            failure = e

        result = self._runtime._build_result(
            self._last_state,
            "".join(self._pending_text),
            cancelled=cancelled,
            failure=failure,
        )
        await self._runtime._notify_finish(result)
        self._queue.put_nowait(_DONE)
        return result

    # ========== Public API ==========

    def cancel(self) -> None:
        """Stop the request. Pending tool calls are abandoned and no further events are forwarded."""
        if self._cancel_requested:
            return
        self._cancel_requested = True
        LOGGER.info(f"Cancellation requested for {self.request_id}")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def result(self) -> "RunResult":
        return await self._ensure_started()

    def __aiter__(self) -> AsyncIterator[RunEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[RunEvent]:
        if self._iterating:
            raise RuntimeError("StreamingRun can only be iterated once")
        self._iterating = True
        self._ensure_started()
        while True:
            item = await self._queue.get()
            if item is _DONE or self._cancel_requested:
                return
            yield item

    async def text_stream(self) -> AsyncIterator[str]:
        """Yield only the text deltas, in order."""
        async for event in self:
            if event.type == "text-delta" and event.text:
                yield event.text
