"""
In-process change notification feed keyed by table name.

Committed inserts/updates/deletes are collected from SQLAlchemy session
events and published after commit. Subscribers receive a ChangeEvent; the
payload is informational only, consumers are expected to refetch.
"""
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy import event

from core.logger import logger

_PENDING_KEY = "pending_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str  # insert | update | delete
    record_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"table": self.table, "event": self.event, "id": self.record_id}


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Table-scoped publish/subscribe of committed changes."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for one table.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return unsubscribe

    def publish(self, change: ChangeEvent):
        with self._lock:
            callbacks = list(self._subscribers.get(change.table, ()))
        for callback in callbacks:
            try:
                callback(change)
            except Exception as e:
                # A broken subscriber must not affect the committing request
                logger.error(f"Change feed subscriber failed for {change.table}: {e}", exc_info=True)

    def attach(self, session_factory):
        """Hook the feed into a sessionmaker's flush/commit/rollback events."""
        event.listen(session_factory, "after_flush", _collect_flushed)
        event.listen(session_factory, "after_commit", self._publish_pending)
        event.listen(session_factory, "after_soft_rollback", _discard_pending)

    def _publish_pending(self, session):
        pending = session.info.pop(_PENDING_KEY, [])
        for change in pending:
            self.publish(change)


def note_change(session, table: str, change: str, record_id: Optional[str] = None):
    """Queue a change that the ORM flush cannot see (bulk update/delete)."""
    session.info.setdefault(_PENDING_KEY, []).append(ChangeEvent(table, change, record_id))


def _record_id(obj) -> Optional[str]:
    value = getattr(obj, "id", None)
    if value is None:
        value = getattr(obj, "announcement_id", None)
    return str(value) if value is not None else None


def _collect_flushed(session, flush_context):
    for obj in session.new:
        note_change(session, obj.__tablename__, "insert", _record_id(obj))
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            note_change(session, obj.__tablename__, "update", _record_id(obj))
    for obj in session.deleted:
        note_change(session, obj.__tablename__, "delete", _record_id(obj))


def _discard_pending(session, previous_transaction):
    session.info.pop(_PENDING_KEY, None)


# Global feed shared by the database layer and the realtime router
change_feed = ChangeFeed()
