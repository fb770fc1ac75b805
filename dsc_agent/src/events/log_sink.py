# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Progress/log sink: the one resource written concurrently by many agent loops.

Each loop pushes events into its own bounded `LogChannel` without ever
blocking; the `LogSink` drains every open channel, appends the events to a
bounded buffer and fans them out to subscribers, one write at a time.
"""

import asyncio
import inspect
import logging

from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, PrivateAttr

from ..config import settings
from ..types.event_types import LogEvent

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

Subscriber = Callable[[str, LogEvent], Union[None, Awaitable[None]]]

_CLOSED = object()


class LogChannel:
    """A bounded, finite push channel of log events from a single loop."""

    def __init__(self, source: str, maxsize: Optional[int] = None):
        self.source = source
        self.dropped = 0
        self._closed = False
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else settings.LOG_QUEUE_SIZE
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: Any) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                # Drop the oldest queued event to make room
                self._queue.get_nowait()
                self.dropped += 1

    def emit(self, event: LogEvent) -> None:
        """Queue an event without blocking; ignored once the channel is closed."""
        if self._closed:
            return
        self._put(event)

    def close(self) -> None:
        """End the stream; consumers stop after the events already queued."""
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def __aiter__(self) -> "LogChannel":
        return self

    async def __anext__(self) -> LogEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class LogSink(BaseModel):
    """
    Collects the log events of every loop it opened a channel for.

    Features:
    - one bounded channel and drain task per source
    - writes serialized under a lock, so subscribers never see interleaved entries
    - a bounded in-memory buffer, queryable by source
    """

    max_events: int = 10000

    _subscribers: List[Subscriber] = PrivateAttr(default_factory=list)
    _events: Deque[Tuple[str, LogEvent]] = PrivateAttr(default=None)
    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)
    _channels: Dict[str, LogChannel] = PrivateAttr(default_factory=dict)
    _drains: Dict[str, asyncio.Task] = PrivateAttr(default_factory=dict)

    class Config:
        arbitrary_types_allowed = True

    def model_post_init(self, __context: Any) -> None:
        self._events = deque(maxlen=self.max_events)

    def open_channel(self, source: str, maxsize: Optional[int] = None) -> LogChannel:
        """Create a channel for `source` and start draining it into the sink.

        Must be called from within a running event loop.
        """
        channel = LogChannel(source, maxsize=maxsize)
        self._channels[source] = channel
        self._drains[source] = asyncio.create_task(self._drain(channel))
        return channel

    async def _drain(self, channel: LogChannel) -> None:
        async for event in channel:
            await self.write(channel.source, event)
        if channel.dropped:
            logger.warning(f"Log channel {channel.source} dropped {channel.dropped} events")

    async def close_channel(self, source: str) -> None:
        """Close the channel for `source` and wait until its events are written."""
        channel = self._channels.pop(source, None)
        if channel is not None:
            channel.close()
        drain = self._drains.pop(source, None)
        if drain is not None:
            await drain

    def subscribe(self, callback: Subscriber) -> None:
        """Register a sync or async callback invoked with `(source, event)` for
        every written event."""
        logger.debug(f"Subscribing {callback} to log events")
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def write(self, source: str, event: LogEvent) -> None:
        """Append one event and notify subscribers, one writer at a time."""
        async with self._lock:
            self._events.append((source, event))
            for callback in list(self._subscribers):
                try:
                    result = callback(source, event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Error in log subscriber {callback}: {e}")

    def get_events(self, source: Optional[str] = None) -> List[LogEvent]:
        """Get the buffered events, optionally only those of one source."""
        if source is None:
            return [e for _, e in self._events]
        return [e for s, e in self._events if s == source]

    def clear(self) -> None:
        """Clear all buffered events and subscribers (mainly for testing)."""
        self._events.clear()
        self._subscribers.clear()

    async def aclose(self) -> None:
        """Close every open channel and wait for all pending events."""
        for source in list(self._channels):
            await self.close_channel(source)
