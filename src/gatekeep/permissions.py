"""Per-command permission tables and their resolution.

A table maps subject ids (user ids or role ids) to allow/deny. Resolution
walks the table in insertion order:

- a direct user match always decides, wherever it sits in the table
- otherwise the *last* matching role entry decides
- no match denies

The last-role-wins rule makes insertion order observable. Existing tables
rely on it, so it is kept as is.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Literal

MatchedBy = Literal["user", "group"]


@dataclass(frozen=True, slots=True)
class PermissionDecision:
    """Outcome of a permission walk, with the entry that decided it."""

    allowed: bool
    matched_by: MatchedBy | None = None
    subject_id: int | None = None

    def __bool__(self) -> bool:
        return self.allowed


class PermissionTable:
    """Insertion-ordered override table for one entrypoint."""

    def __init__(self, staff_group_id: int | None = None) -> None:
        self._entries: dict[int, bool] = {}
        if staff_group_id is not None:
            self._entries[staff_group_id] = True

    def add(self, subject_id: int, allowed: bool) -> None:
        # Overwriting keeps the original position, like dict assignment
        self._entries[subject_id] = allowed

    def remove(self, subject_id: int) -> bool:
        return self._entries.pop(subject_id, None) is not None

    def clear(self) -> None:
        """Drop every entry, including the default staff entry."""
        self._entries.clear()

    def copy(self) -> PermissionTable:
        table = PermissionTable()
        table._entries = dict(self._entries)
        return table

    def items(self) -> list[tuple[int, bool]]:
        return list(self._entries.items())

    def __iter__(self) -> Iterator[tuple[int, bool]]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, subject_id: object) -> bool:
        return subject_id in self._entries

    def __repr__(self) -> str:
        return f"PermissionTable({self._entries!r})"


def explain(
    subject_id: int,
    group_ids: Iterable[int],
    table: PermissionTable,
) -> PermissionDecision:
    """Walk the table and report which entry decided."""
    groups = frozenset(group_ids)
    allowed = False
    matched_by: MatchedBy | None = None
    matched_id: int | None = None

    for entry_id, value in table.items():
        if entry_id == subject_id:
            allowed = value
            matched_by = "user"
            matched_id = entry_id
        elif entry_id in groups and matched_by != "user":
            allowed = value
            matched_by = "group"
            matched_id = entry_id

    return PermissionDecision(allowed=allowed, matched_by=matched_by, subject_id=matched_id)


def resolve(subject_id: int, group_ids: Iterable[int], table: PermissionTable) -> bool:
    """Return whether the subject may use the command guarded by ``table``."""
    return explain(subject_id, group_ids, table).allowed
