# budgetview/services/live.py
"""
Live per-user collection subscriptions.

A ChangeFeed watches commits made through one session factory and pushes the
fresh result set of every touched (collection, user) pair to its subscribers:

    feed = ChangeFeed(SessionLocal)
    feed.install()
    unsubscribe = feed.subscribe("goals", user.id, on_goals)

Subscribers are called once immediately with the current rows, then after
every successful commit that changed that collection for that user.
Rolled-back work notifies nobody. LiveSnapshots keeps the latest push per
browser so the JSON poll endpoint can serve it.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Set, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session

from models import Category, Goal, Transaction

logger = logging.getLogger(__name__)

# collection name -> (model, default ordering)
COLLECTIONS = {
    "transactions": (Transaction, (Transaction.date.desc(), Transaction.id.desc())),
    "categories": (Category, (Category.name,)),
    "goals": (Goal, (Goal.created_at, Goal.id)),
}

_MODEL_COLLECTION = {model: name for name, (model, _) in COLLECTIONS.items()}

# Key in Session.info holding the pending {(collection, user_id)} set
TOUCHED_KEY = "budgetview.touched"

Callback = Callable[[list], None]


def mark_changed(session: Session, collection: str, user_id: int) -> None:
    """
    Record that `collection` changed for `user_id` in the current transaction.

    Needed for SQL-side updates (e.g. goal increments) that bypass the unit
    of work; ORM adds/updates/deletes are picked up automatically.
    """
    session.info.setdefault(TOUCHED_KEY, set()).add((collection, user_id))


def load_collection(session: Session, collection: str, user_id: int) -> list:
    model, order_by = COLLECTIONS[collection]
    return (
        session.query(model)
        .filter(model.user_id == user_id)
        .order_by(*order_by)
        .all()
    )


def row_to_dict(row) -> dict:
    """Column values of a detached snapshot row."""
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


class ChangeFeed:
    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._subscribers: Dict[Tuple[str, int], List[Callback]] = defaultdict(list)
        self._installed = False

    # ---- wiring ----

    def install(self) -> None:
        """Register the session event hooks on the session factory (idempotent)."""
        if self._installed:
            return
        event.listen(self.session_factory, "before_flush", self._before_flush)
        event.listen(self.session_factory, "after_commit", self._after_commit)
        event.listen(self.session_factory, "after_soft_rollback", self._after_rollback)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        event.remove(self.session_factory, "before_flush", self._before_flush)
        event.remove(self.session_factory, "after_commit", self._after_commit)
        event.remove(self.session_factory, "after_soft_rollback", self._after_rollback)
        self._installed = False

    # ---- subscriptions ----

    def subscribe(self, collection: str, user_id: int, callback: Callback) -> Callable[[], None]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection!r}")

        key = (collection, user_id)
        self._subscribers[key].append(callback)
        self._deliver(key, [callback])

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, collection: str, user_id: int) -> int:
        return len(self._subscribers.get((collection, user_id), []))

    # ---- session hooks ----

    def _before_flush(self, session, flush_context, instances) -> None:
        for obj in list(session.new) + list(session.dirty) + list(session.deleted):
            collection = _MODEL_COLLECTION.get(type(obj))
            if collection is not None and obj.user_id is not None:
                mark_changed(session, collection, obj.user_id)

    def _after_commit(self, session) -> None:
        touched: Set[Tuple[str, int]] = session.info.pop(TOUCHED_KEY, set())
        for key in sorted(touched):
            callbacks = list(self._subscribers.get(key, []))
            if callbacks:
                self._deliver(key, callbacks)

    def _after_rollback(self, session, previous_transaction) -> None:
        session.info.pop(TOUCHED_KEY, None)

    def _deliver(self, key: Tuple[str, int], callbacks: List[Callback]) -> None:
        collection, user_id = key
        snapshot_session = self.session_factory()
        try:
            rows = load_collection(snapshot_session, collection, user_id)
            # Detach so callbacks can read attributes after the session closes
            snapshot_session.expunge_all()
        finally:
            snapshot_session.close()

        for callback in callbacks:
            try:
                callback(rows)
            except Exception:
                logger.exception("[live] subscriber for %s/%s failed", collection, user_id)


class LiveSnapshots:
    """
    Latest pushed rows per browser, for clients that poll instead of holding
    a connection open.

    The first read of a (collection, user) pair subscribes on behalf of
    `owner`; every push after that bumps the revision. release(owner) drops
    all of that owner's subscriptions.
    """

    def __init__(self, feed: ChangeFeed):
        self.feed = feed
        # Reentrant: subscribe() delivers the first snapshot synchronously
        self._lock = threading.RLock()
        self._views: Dict[Tuple[str, str, int], Tuple[int, list]] = {}
        self._unsubscribers: Dict[str, List[Callable[[], None]]] = defaultdict(list)

    def read(self, owner: str, collection: str, user_id: int) -> Tuple[int, list]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection!r}")

        key = (owner, collection, user_id)
        with self._lock:
            if key not in self._views:
                self._views[key] = (0, [])
                self._unsubscribers[owner].append(
                    self.feed.subscribe(collection, user_id, lambda rows: self._push(key, rows))
                )
            return self._views[key]

    def release(self, owner: str) -> None:
        with self._lock:
            unsubscribers = self._unsubscribers.pop(owner, [])
            for key in [k for k in self._views if k[0] == owner]:
                del self._views[key]
        for unsubscribe in unsubscribers:
            unsubscribe()
        if unsubscribers:
            logger.info("[live] released %s subscription(s)", len(unsubscribers))

    def _push(self, key: Tuple[str, str, int], rows: list) -> None:
        with self._lock:
            # Late pushes for released views are dropped
            if key in self._views:
                self._views[key] = (self._views[key][0] + 1, rows)
