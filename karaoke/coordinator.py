"""Queue coordinator: the karaoke request queue and the song on stage.

Owns the only mutable shared state in the server. Every method runs to
completion without awaiting, so requests handled on the event loop are
applied one at a time. After each mutation the full snapshot is published
through the state object under ``queue_update``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

QUEUE_EVENT = "queue_update"

STATUS_WAITING = "waiting"
STATUS_PLAYING = "playing"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_id(value: Any) -> Optional[int]:
    """Accept 3 or "3"; anything else matches nothing."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


class QueueCoordinator:
    def __init__(self, state=None):
        """state: anything with broadcast(event, data), usually a KaraokeState."""
        self.state = state
        self._queue: list[dict] = []
        self._current: Optional[dict] = None
        self._next_id = 1

    # ── Queries ──────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        """Copy of the pending list and the current song."""
        return {
            "queue": [dict(e) for e in self._queue],
            "currentSong": dict(self._current) if self._current else None,
        }

    @property
    def current_song(self) -> Optional[dict]:
        return dict(self._current) if self._current else None

    def __len__(self) -> int:
        return len(self._queue)

    # ── Guest ────────────────────────────────────────────────────────────────

    def submit(self, song: Any, singer_name: Any) -> dict:
        if not song or not isinstance(singer_name, str) or not singer_name.strip():
            raise ValidationError("Missing song or name")

        entry = {
            "queueId": self._next_id,
            "song": song,
            "singerName": singer_name,
            "addedAt": _now_iso(),
            "status": STATUS_WAITING,
        }
        self._next_id += 1
        self._queue.append(entry)
        logger.info("Queued #%d for %s", entry["queueId"], singer_name)
        self._publish()
        return dict(entry)

    # ── Host ─────────────────────────────────────────────────────────────────

    def advance(self) -> Optional[dict]:
        """Move the head of the queue on stage. Empty queue: nothing changes."""
        if not self._queue:
            return self.current_song
        entry = self._queue.pop(0)
        entry["status"] = STATUS_PLAYING
        self._current = entry
        logger.info("Now singing: #%d %s", entry["queueId"], entry["singerName"])
        self._publish()
        return dict(entry)

    def complete(self):
        self._current = None
        self._publish()

    def remove(self, queue_id: int):
        self._queue = [e for e in self._queue if e["queueId"] != queue_id]
        self._publish()

    def reorder(self, ordered_ids: list):
        """Rebuild the queue in the given order.

        Unknown ids are ignored, and entries whose ids are left out are
        dropped from the queue. Hosts are expected to send every id.
        """
        if not isinstance(ordered_ids, list):
            raise ValidationError("orderedIds must be a list")
        by_id = {e["queueId"]: e for e in self._queue}
        new_queue = []
        for raw in ordered_ids:
            entry = by_id.get(_coerce_id(raw))
            if entry is not None:
                new_queue.append(entry)
        dropped = len(self._queue) - len(new_queue)
        if dropped > 0:
            logger.warning("Reorder dropped %d entries not listed", dropped)
        self._queue = new_queue
        self._publish()

    def move_up(self, queue_id: int):
        idx = self._index_of(queue_id)
        if idx is not None and idx > 0:
            self._swap(idx - 1, idx)
        self._publish()

    def move_down(self, queue_id: int):
        idx = self._index_of(queue_id)
        if idx is not None and idx < len(self._queue) - 1:
            self._swap(idx, idx + 1)
        self._publish()

    # ── Internals ────────────────────────────────────────────────────────────

    def _index_of(self, queue_id: int) -> Optional[int]:
        for i, e in enumerate(self._queue):
            if e["queueId"] == queue_id:
                return i
        return None

    def _swap(self, i: int, j: int):
        self._queue[i], self._queue[j] = self._queue[j], self._queue[i]

    def _publish(self):
        if self.state is not None:
            self.state.broadcast(QUEUE_EVENT, self.snapshot())
