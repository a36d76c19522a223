"""
Per-item mutual exclusion for ledger writers.

Every propose+commit sequence for an item runs while that item's lock is held.
Multi-item transactions take their locks in ascending item-id order so two
transactions sharing items can never wait on each other in a cycle. On
databases that support it the item rows are also locked with
``SELECT ... FOR UPDATE`` so writers in other processes serialize too.
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from contextlib import contextmanager
from typing import Iterable, Iterator

from flask import current_app, has_app_context
from sqlalchemy import select

from ...errors import LockTimeoutError
from ...extensions import db
from ...models import Item

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 10.0


class ItemLockRegistry:
    """Hands out one lock per item id; locks disappear once nobody holds them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, item_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[item_id] = lock
            return lock

    @contextmanager
    def hold(self, item_ids: Iterable[int], timeout: float | None = None) -> Iterator[list[int]]:
        ordered = sorted({int(item_id) for item_id in item_ids})
        acquired: list[threading.Lock] = []
        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            for item_id in ordered:
                lock = self.lock_for(item_id)
                if deadline is None:
                    lock.acquire()
                else:
                    remaining = max(0.0, deadline - time.monotonic())
                    if not lock.acquire(timeout=remaining):
                        logger.warning("Timed out after %.2fs waiting for item %s lock", timeout, item_id)
                        raise LockTimeoutError(
                            f"Item {item_id} is busy with another transaction; please resubmit.",
                            item_id=item_id,
                        )
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


_registry = ItemLockRegistry()


def get_lock_registry() -> ItemLockRegistry:
    return _registry


def _configured_timeout() -> float:
    if has_app_context():
        return float(current_app.config.get("LEDGER_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT))
    return DEFAULT_LOCK_TIMEOUT


@contextmanager
def hold_item_locks(item_ids: Iterable[int], timeout: float | None = None) -> Iterator[dict[int, Item]]:
    """Serialize writers for ``item_ids`` and yield the freshly loaded, row-locked items.

    Items that do not exist are simply absent from the yielded mapping.
    """
    wait = _configured_timeout() if timeout is None else timeout
    with _registry.hold(item_ids, timeout=wait) as ordered:
        # Drop anything the session cached before the lock was ours.
        db.session.expire_all()
        try:
            rows = db.session.execute(
                select(Item).where(Item.id.in_(ordered)).order_by(Item.id.asc()).with_for_update()
            ).scalars().all()
            yield {item.id: item for item in rows}
        except BaseException:
            # Row locks must not outlive the in-process locks.
            db.session.rollback()
            raise
