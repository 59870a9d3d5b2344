"""Persistence collaborator.

The runtime needs five operations from a store: find, insert, update,
modify and delete_many. ``modify`` is the read-modify-write primitive:
the patch is computed from the current record while the store holds it,
so concurrent handlers never overwrite each other.

``MemoryStore`` implements them in-process for tests and single-process
deployments; anything with the same shape can replace it.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, TypeVar

import anyio

ItemKind = Literal["timed_release", "deferred_notification"]

SCHEDULED_KINDS: tuple[ItemKind, ...] = ("timed_release", "deferred_notification")


def utcnow() -> datetime:
    return datetime.now(UTC)


class Record(Protocol):
    id: int | None
    kind: str


R = TypeVar("R", bound=Record)


@dataclass(frozen=True, slots=True)
class ScheduledItem:
    """A future action, persisted until the scheduler processes it."""

    kind: ItemKind
    due_at: datetime
    subject_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def is_due(self, now: datetime) -> bool:
        return self.due_at <= now


class Store(Protocol):
    """Abstract record store."""

    async def find(
        self,
        kind: str,
        predicate: Callable[[Any], bool] | None = None,
    ) -> list[Any]: ...

    async def insert(self, record: R) -> R: ...

    async def update(self, record_id: int, patch: dict[str, Any]) -> Any | None: ...

    async def modify(
        self,
        record_id: int,
        change: Callable[[Any], dict[str, Any] | None],
    ) -> Any | None: ...

    async def delete_many(self, record_ids: Iterable[int]) -> int: ...


class MemoryStore:
    """In-process store for dataclass records with ``id`` and ``kind``.

    Records are immutable; ``update`` replaces them with a patched copy.
    """

    def __init__(self) -> None:
        self._records: dict[int, Any] = {}
        self._next_id = 1
        self._lock = anyio.Lock()

    async def find(
        self,
        kind: str,
        predicate: Callable[[Any], bool] | None = None,
    ) -> list[Any]:
        async with self._lock:
            records = [r for r in self._records.values() if r.kind == kind]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    async def get(self, record_id: int) -> Any | None:
        async with self._lock:
            return self._records.get(record_id)

    async def insert(self, record: R) -> R:
        async with self._lock:
            stored = dataclasses.replace(record, id=self._next_id)  # type: ignore[type-var]
            self._records[self._next_id] = stored
            self._next_id += 1
        return stored

    async def update(self, record_id: int, patch: dict[str, Any]) -> Any | None:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            updated = dataclasses.replace(current, **patch)
            self._records[record_id] = updated
        return updated

    async def modify(
        self,
        record_id: int,
        change: Callable[[Any], dict[str, Any] | None],
    ) -> Any | None:
        """Patch a record with a change computed from its current value.

        ``change`` runs under the store lock and must not await. Returning
        None leaves the record untouched, and ``modify`` then returns None.
        """
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            patch = change(current)
            if patch is None:
                return None
            updated = dataclasses.replace(current, **patch)
            self._records[record_id] = updated
        return updated

    async def delete_many(self, record_ids: Iterable[int]) -> int:
        removed = 0
        async with self._lock:
            for record_id in record_ids:
                if self._records.pop(record_id, None) is not None:
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._records)


async def schedule(
    store: Store,
    kind: ItemKind,
    subject_id: int,
    due_at: datetime,
    **payload: Any,
) -> ScheduledItem:
    """Persist a scheduled item for the scheduler loop to pick up."""
    return await store.insert(
        ScheduledItem(kind=kind, due_at=due_at, subject_id=subject_id, payload=payload)
    )
