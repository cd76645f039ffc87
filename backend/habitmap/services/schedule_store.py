"""In-memory habit/task store with change notification."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Generic, List, Mapping, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)


class Identified(Protocol):
    id: str


T = TypeVar("T", bound=Identified)


@dataclass(frozen=True)
class ChangeSet:
    added: FrozenSet[str] = frozenset()
    updated: FrozenSet[str] = frozenset()
    removed: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    @property
    def touched(self) -> FrozenSet[str]:
        return self.added | self.updated | self.removed


@dataclass(frozen=True)
class StoreSnapshot:
    """Id -> revision counter; a revision bumps on every effective update."""

    revisions: Mapping[str, int] = field(default_factory=dict)

    @property
    def ids(self) -> FrozenSet[str]:
        return frozenset(self.revisions)


def diff_snapshots(before: StoreSnapshot, after: StoreSnapshot) -> ChangeSet:
    """Derive a change set for stores that can only be polled."""
    before_ids, after_ids = before.ids, after.ids
    return ChangeSet(
        added=after_ids - before_ids,
        updated=frozenset(
            item_id for item_id in before_ids & after_ids if before.revisions[item_id] != after.revisions[item_id]
        ),
        removed=before_ids - after_ids,
    )


ChangeListener = Callable[[ChangeSet], None]


class InMemoryScheduleStore(Generic[T]):
    """Thread-safe keyed store of habits or tasks.

    Listeners are called after the store lock is released, in subscription
    order. A failing listener is logged and does not stop the others.
    """

    def __init__(self, name: str = "store"):
        self.name = name
        self._lock = threading.Lock()
        self._items: Dict[str, T] = {}
        self._revisions: Dict[str, int] = {}
        self._listeners: List[ChangeListener] = []

    def list(self) -> List[T]:
        with self._lock:
            return list(self._items.values())

    def get(self, item_id: str) -> Optional[T]:
        with self._lock:
            return self._items.get(item_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def upsert(self, item: T) -> ChangeSet:
        with self._lock:
            existing = self._items.get(item.id)
            if existing is not None and existing == item:
                return ChangeSet()
            self._items[item.id] = item
            self._revisions[item.id] = self._revisions.get(item.id, 0) + 1
            if existing is None:
                changes = ChangeSet(added=frozenset({item.id}))
            else:
                changes = ChangeSet(updated=frozenset({item.id}))
        self._notify(changes)
        return changes

    def remove(self, item_id: str) -> ChangeSet:
        """Delete an item; the returned change set is empty when the id is unknown."""
        with self._lock:
            if self._items.pop(item_id, None) is None:
                return ChangeSet()
            self._revisions.pop(item_id, None)
            changes = ChangeSet(removed=frozenset({item_id}))
        self._notify(changes)
        return changes

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(revisions=MappingProxyType(dict(self._revisions)))

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register `listener`; the returned callable unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changes: ChangeSet) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(changes)
            except Exception:
                logger.exception("Change listener failed for %s", self.name)
                continue


class InMemoryNoteStore:
    """Free-text calendar notes keyed by date."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notes: Dict[date, str] = {}

    def get(self, day: date) -> Optional[str]:
        with self._lock:
            return self._notes.get(day)

    def set(self, day: date, note: str) -> None:
        with self._lock:
            self._notes[day] = note

    def clear(self, day: date) -> bool:
        with self._lock:
            return self._notes.pop(day, None) is not None
