"""Event stream for Server-Sent Events (SSE).

One ``EventStream`` carries the narrative of a single deployment run to the
browser. ``close`` is the only way to finish the stream and may be called any
number of times; only the first call has an effect. Sends after close, or
after the client went away, are dropped silently.
"""

import asyncio
import json
from collections import deque
from enum import Enum
from typing import Any, AsyncIterator

from modelnest.models.deployment import DeploymentEvent, DeploymentStatus
from modelnest.utils.logging import get_logger

logger = get_logger(__name__)

# Queue marker that ends the frame iterator
_END_OF_STREAM = None

# Most recent events kept for inspection; status changes are kept in full
HISTORY_LIMIT = 200


def serialize_payload(payload: Any) -> str:
    """Render an event payload as the text of a ``data:`` line."""
    if isinstance(payload, Enum):
        payload = payload.value
    return json.dumps(payload, default=str)


class EventStream:
    """A single-use server-to-client deployment event channel."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        self.history: deque[DeploymentEvent] = deque(maxlen=HISTORY_LIMIT)
        self._statuses: list[str] = []
        self._queue: asyncio.Queue[DeploymentEvent | None] = asyncio.Queue()
        self._closed = False
        self._detached = False
        self._opened = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        """Whether the client stopped listening before the stream closed."""
        return self._detached

    def open(self) -> AsyncIterator[dict[str, str]]:
        """Begin streaming; returns the frames for ``EventSourceResponse``.

        Raises:
            RuntimeError: If the stream was already opened.
        """
        if self._opened:
            raise RuntimeError("Event stream can only be opened once")
        self._opened = True
        return self._frames()

    async def _frames(self) -> AsyncIterator[dict[str, str]]:
        try:
            while True:
                event = await self._queue.get()
                if event is _END_OF_STREAM:
                    return
                yield {"event": event.kind, "data": serialize_payload(event.data)}
        finally:
            if not self._closed:
                self.detach()

    def send(self, kind: str, payload: Any, is_error: bool = False) -> bool:
        """Queue one event. Returns False when the stream no longer accepts events."""
        if self._closed:
            return False
        event = DeploymentEvent(kind=kind, data=payload, is_error=is_error)
        self.history.append(event)
        self._queue.put_nowait(event)
        return True

    def log(self, message: str, is_error: bool = False) -> bool:
        """Send a log line."""
        return self.send(
            "log", {"message": message, "isError": is_error}, is_error=is_error
        )

    def status(self, state: DeploymentStatus | str) -> bool:
        """Send a status transition."""
        value = state.value if isinstance(state, DeploymentStatus) else state
        sent = self.send("status", value, is_error=value == DeploymentStatus.FAILED.value)
        if sent:
            self._statuses.append(value)
        return sent

    def close(self, final_message: str) -> bool:
        """Send the terminal ``end`` event and finish the stream.

        Idempotent: returns True only for the call that actually closed it.
        """
        if self._closed:
            return False
        self.send("end", final_message)
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)
        logger.info("events.closed", session_id=self.session_id)
        return True

    def detach(self) -> None:
        """Stop accepting events because the client disconnected."""
        if self._closed:
            return
        self._closed = True
        self._detached = True
        logger.info("events.client_disconnected", session_id=self.session_id)

    def statuses(self) -> list[str]:
        """Status values sent so far, in order."""
        return list(self._statuses)
