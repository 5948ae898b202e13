"""Change feed: full-document snapshots published after every committed write.

The store publishes into a ``SnapshotHub``; in-process consumers read a
``Subscription`` (a lazy, unbounded iterator of snapshots) and listeners such
as the Socket.IO bridge get called synchronously. Merging a snapshot into
local state is the lifecycle manager's job, helped by ``diff_sheets``.
"""

import logging
import queue
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .sheet import ScoreSheet
from .values import ALL_FIELDS, Field, ScoreValue

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SheetSnapshot:
    sheet_id: str
    document: Optional[dict]  # None once the sheet is deleted

    @property
    def deleted(self) -> bool:
        return self.document is None

    def sheet(self) -> Optional[ScoreSheet]:
        if self.document is None:
            return None
        return ScoreSheet.from_dict(self.document)


_CLOSED = object()


class Subscription:
    def __init__(self, hub: 'SnapshotHub', sheet_id: str):
        self.hub = hub
        self.sheet_id = sheet_id
        self.closed = False
        self._queue: 'queue.Queue' = queue.Queue()

    def __iter__(self):
        return self

    def __next__(self) -> SheetSnapshot:
        item = self._queue.get()
        if item is _CLOSED:
            raise StopIteration
        return item

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def drain(self) -> List[SheetSnapshot]:
        """Everything delivered so far, without blocking."""
        items = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return items
            if item is _CLOSED:
                # keep the iterator terminated for later readers
                self._queue.put(_CLOSED)
                return items
            items.append(item)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.hub._unsubscribe(self)
        self._queue.put(_CLOSED)

    def _deliver(self, snapshot: SheetSnapshot) -> None:
        self._queue.put(snapshot)


class SnapshotHub:
    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = defaultdict(list)
        self._listeners: List[Callable[[SheetSnapshot], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, sheet_id: str) -> Subscription:
        subscription = Subscription(self, sheet_id)
        with self._lock:
            self._subscriptions[sheet_id].append(subscription)
        return subscription

    def add_listener(self, listener: Callable[[SheetSnapshot], None]) -> None:
        self._listeners.append(listener)

    def publish(self, sheet_id: str, document: Optional[dict]) -> SheetSnapshot:
        snapshot = SheetSnapshot(sheet_id, document)
        with self._lock:
            subscriptions = list(self._subscriptions.get(sheet_id, ()))
        for subscription in subscriptions:
            subscription._deliver(snapshot)
        for listener in self._listeners:
            listener(snapshot)
        log.debug(f"[publish] sheet={sheet_id} deleted={snapshot.deleted} subscribers={len(subscriptions)}")
        return snapshot

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.sheet_id, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(subscription.sheet_id, None)


@dataclass(frozen=True)
class CellChange:
    player_id: str
    field: Field
    before: ScoreValue
    after: ScoreValue

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'field': self.field.value,
            'before': self.before.to_json(),
            'after': self.after.to_json(),
        }


@dataclass
class SheetDiff:
    cells: List[CellChange] = field(default_factory=list)
    order_changed: bool = False
    players_added: List[str] = field(default_factory=list)
    players_removed: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.cells or self.order_changed or self.players_added or self.players_removed)


def diff_sheets(old: Optional[ScoreSheet], new: ScoreSheet) -> SheetDiff:
    """What changes when ``new`` replaces ``old`` in local state."""
    diff = SheetDiff()
    old_scores = old.scores if old is not None else {}
    diff.order_changed = old is None or old.player_order != new.player_order
    diff.players_added = [pid for pid in new.scores if pid not in old_scores]
    diff.players_removed = [pid for pid in old_scores if pid not in new.scores]
    for player_id, scores in new.scores.items():
        before_scores = old_scores.get(player_id)
        if before_scores is None:
            continue
        for f in ALL_FIELDS:
            before, after = before_scores.get(f), scores.get(f)
            if before != after:
                diff.cells.append(CellChange(player_id, f, before, after))
    return diff
