"""
Event stream shared by the chat loop, tools and document handlers.

Events are ``{"type": ..., "content": ...}`` dicts. The HTTP layer sends them
to the client as newline-delimited JSON while the chat turn is still running.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List

logger = logging.getLogger(__name__)

_CLOSED = object()


class DataStream:
    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.events: List[Dict[str, Any]] = []
        self.closed = False

    def write_data(self, type: str, content: Any = "") -> None:
        if self.closed:
            logger.warning(f"Dropping '{type}' event written after stream close")
            return
        event = {"type": type, "content": content}
        self.events.append(event)
        self._queue.put_nowait(event)

    def write_error(self, message: str) -> None:
        self.write_data("error", message)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    def events_of_type(self, type: str) -> List[Any]:
        return [e["content"] for e in self.events if e["type"] == type]

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            event = await self._queue.get()
            if event is _CLOSED:
                break
            yield event

    async def iter_ndjson(self) -> AsyncIterator[str]:
        async for event in self:
            yield json.dumps(event, default=str) + "\n"
