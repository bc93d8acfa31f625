"""Refresh-on-invalidate change notifications.

Committed writes to the tracked tables are appended to an in-process event
log. Clients hold a cursor and poll; any change to a collection they render
tells them to re-fetch that whole collection. There is no row-level
patching and no debouncing.
"""
from __future__ import annotations

import threading
import uuid
from collections import deque
from dataclasses import dataclass

from sqlalchemy import event
from sqlalchemy.orm import Session

from market_pay.config import settings
from market_pay.models import PaymentRequest, Transaction, Vendor

TRACKED_TABLES = ('vendors', 'transactions', 'payment_requests')
_PENDING_KEY = 'market_pay.pending_changes'


@dataclass(frozen=True)
class ChangeEvent:
    seq: int
    table: str
    vendor_id: uuid.UUID | None


class ChangeFeed:
    def __init__(self, retention: int = 500) -> None:
        self._lock = threading.Lock()
        self._events: deque[ChangeEvent] = deque(maxlen=retention)
        self._seq = 0

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._seq

    def publish(self, changes: set[tuple[str, uuid.UUID | None]]) -> int:
        with self._lock:
            for table, vendor_id in sorted(changes, key=lambda change: (change[0], str(change[1]))):
                self._seq += 1
                self._events.append(ChangeEvent(seq=self._seq, table=table, vendor_id=vendor_id))
            return self._seq

    def changes_since(
        self,
        cursor: int,
        *,
        tables: tuple[str, ...] | list[str] | None = None,
        vendor_id: uuid.UUID | None = None,
    ) -> tuple[int, list[str]]:
        """Return the latest cursor and the watched tables that changed after ``cursor``."""
        watched = tuple(tables) if tables else TRACKED_TABLES
        with self._lock:
            latest = self._seq
            if cursor >= latest:
                return latest, []
            oldest_retained = self._events[0].seq if self._events else latest + 1
            if cursor < oldest_retained - 1:
                # Fell out of the retained window; reload everything the client watches.
                return latest, list(watched)
            changed: list[str] = []
            for change in self._events:
                if change.seq <= cursor or change.table not in watched or change.table in changed:
                    continue
                if vendor_id is not None and change.vendor_id not in (None, vendor_id):
                    continue
                changed.append(change.table)
            return latest, changed


def _describe(instance) -> set[tuple[str, uuid.UUID | None]]:
    if isinstance(instance, Vendor):
        return {('vendors', instance.id)}
    if isinstance(instance, (Transaction, PaymentRequest)):
        return {(instance.__tablename__, instance.vendor_id)}
    return set()


def _collect_after_flush(session: Session, flush_context) -> None:
    pending = session.info.setdefault(_PENDING_KEY, set())
    for instance in list(session.new) + list(session.dirty):
        pending |= _describe(instance)
    for instance in session.deleted:
        pending |= _describe(instance)
        if isinstance(instance, Vendor):
            # Children go with the vendor through ON DELETE CASCADE.
            pending |= {('transactions', instance.id), ('payment_requests', instance.id)}
        elif isinstance(instance, Transaction):
            # Requests it fulfilled get their reference nulled.
            pending.add(('payment_requests', instance.vendor_id))


def install_change_tracking(feed: ChangeFeed, session_target=Session) -> None:
    """Hook ``session_target`` (a Session class or sessionmaker) so commits publish to ``feed``."""

    def _after_commit(session: Session) -> None:
        pending = session.info.pop(_PENDING_KEY, None)
        if pending:
            feed.publish(pending)

    def _after_rollback(session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)

    event.listen(session_target, 'after_flush', _collect_after_flush)
    event.listen(session_target, 'after_commit', _after_commit)
    event.listen(session_target, 'after_rollback', _after_rollback)


change_feed = ChangeFeed(retention=settings.change_feed_retention)
