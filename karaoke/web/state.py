"""KaraokeState: subscriber registry between the queue coordinator and WebSocket clients.

Each connected page gets a bounded outbox of (event, data) pairs that its
writer task drains onto the socket. Queue pushes are full snapshots, so a
backed-up outbox can lose everything but the newest push without the page
ending up in a wrong state.
"""
import asyncio
import logging
from typing import Any

from ..config import CLIENT_QUEUE_SIZE

logger = logging.getLogger(__name__)


class KaraokeState:
    def __init__(self, maxsize: int = CLIENT_QUEUE_SIZE):
        self._maxsize = maxsize
        self._outboxes: dict[str, asyncio.Queue] = {}

    def subscribe(self, client_id: str) -> asyncio.Queue:
        """Register a page. The returned outbox receives (event, data) tuples."""
        outbox: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._outboxes[client_id] = outbox
        return outbox

    def unsubscribe(self, client_id: str):
        self._outboxes.pop(client_id, None)

    @property
    def client_count(self) -> int:
        return len(self._outboxes)

    def broadcast(self, event: str, data: Any):
        """Hand an event to every page without awaiting."""
        for client_id, outbox in list(self._outboxes.items()):
            if not _deliver(outbox, (event, data)):
                logger.warning("Dropping unresponsive client %s", client_id)
                self._outboxes.pop(client_id, None)


def _deliver(outbox: asyncio.Queue, item: tuple) -> bool:
    """Enqueue item; a full outbox is emptied first. False if it still won't fit."""
    if outbox.full():
        stale = 0
        while not outbox.empty():
            outbox.get_nowait()
            stale += 1
        logger.debug("Discarded %d stale pushes", stale)
    try:
        outbox.put_nowait(item)
    except asyncio.QueueFull:
        return False
    return True
