"""In-process event channel backed by an asyncio queue."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from ..contracts import ExecutionEvent
from .base import EventChannel


class ChannelClosedError(RuntimeError):
    """Raised when publishing to a closed channel."""


class InMemoryEventChannel(EventChannel):
    """Queue-backed channel; iterate it to consume events until close."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[ExecutionEvent]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: ExecutionEvent) -> None:
        if self._closed:
            raise ChannelClosedError("Cannot publish to a closed channel")
        await self._queue.put(event)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    async def __aiter__(self) -> AsyncIterator[ExecutionEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event
