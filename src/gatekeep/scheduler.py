"""Background loop for scheduled items (mute expiry, reminders).

Every ``interval`` seconds the loop asks the store for due items of each
kind it has an action for, runs the action for each item, and then deletes
every item it fetched in one call, whether or not the action worked. A
failed action is logged and never retried.

Cycles are strictly sequential: the next cycle starts only after the
previous one, including its sleep, has finished.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol

import anyio

from .logging import get_logger
from .store import ItemKind, ScheduledItem, Store, utcnow

logger = get_logger(__name__)

# Seconds between poll cycles
CHECK_INTERVAL = 10.0

LoopState = Literal["idle", "polling", "acting", "sleeping"]


class MemberGateway(Protocol):
    """Platform operations the scheduled actions need."""

    async def add_group(self, subject_id: int, group_id: int) -> None: ...

    async def remove_group(self, subject_id: int, group_id: int) -> None: ...

    async def send_direct(self, subject_id: int, payload: Mapping[str, Any]) -> None: ...


class ItemAction(Protocol):
    async def __call__(self, item: ScheduledItem) -> None: ...


async def try_to_dm(
    members: MemberGateway, subject_id: int, payload: Mapping[str, Any]
) -> bool:
    """DM a subject, logging instead of raising when it fails."""
    try:
        await members.send_direct(subject_id, payload)
    except Exception as exc:
        logger.warning("scheduler.dm_failed", subject_id=subject_id, error=str(exc))
        return False
    return True


class TimedReleaseAction:
    """Ends a temporary role (a mute): swap the role back, then notify."""

    def __init__(
        self,
        members: MemberGateway,
        *,
        restore_group_ids: tuple[int, ...] = (),
    ) -> None:
        self._members = members
        self._restore_group_ids = restore_group_ids

    async def __call__(self, item: ScheduledItem) -> None:
        group_id = item.payload.get("group_id")
        if group_id is not None:
            await self._members.remove_group(item.subject_id, int(group_id))

        restore = item.payload.get("restore_group_ids") or self._restore_group_ids
        for restore_id in restore:
            await self._members.add_group(item.subject_id, int(restore_id))

        logger.info("scheduler.released", subject_id=item.subject_id, group_id=group_id)

        # DM failures must not fail the release itself
        await try_to_dm(
            self._members,
            item.subject_id,
            {"embed": {"description": item.payload.get("message", "Your mute has ended.")}},
        )


class DeferredNotificationAction:
    """Delivers a reminder by DM."""

    def __init__(self, members: MemberGateway) -> None:
        self._members = members

    async def __call__(self, item: ScheduledItem) -> None:
        await self._members.send_direct(
            item.subject_id,
            {
                "embed": {
                    "title": item.payload.get("title", "Your Reminder"),
                    "description": item.payload.get("text", ""),
                    "timestamp": item.created_at.isoformat(),
                }
            },
        )


@dataclass(slots=True)
class CycleReport:
    """What one poll cycle did."""

    started_at: datetime
    processed: int = 0
    failed: int = 0
    deleted: int = 0
    failures: list[tuple[int | None, str]] = field(default_factory=list)


class SchedulerLoop:
    """Single sequential poller over the store's scheduled items."""

    def __init__(
        self,
        store: Store,
        actions: Mapping[ItemKind, ItemAction],
        *,
        interval: float = CHECK_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._actions = dict(actions)
        self._interval = interval
        self._clock = clock
        self._state: LoopState = "idle"
        self._running = False
        self._cycle_lock = anyio.Lock()
        self.cycles = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    async def run(self) -> None:
        """Poll forever. Returns only when cancelled."""
        if self._running:
            raise RuntimeError("Scheduler loop is already running")
        self._running = True
        logger.info("scheduler.started", interval=self._interval, kinds=list(self._actions))
        try:
            while True:
                await self.run_cycle()
                self._state = "sleeping"
                await anyio.sleep(self._interval)
        finally:
            self._running = False
            self._state = "idle"
            logger.info("scheduler.stopped", cycles=self.cycles)

    async def run_cycle(self) -> CycleReport:
        async with self._cycle_lock:
            now = self._clock()
            report = CycleReport(started_at=now)
            for kind, action in self._actions.items():
                await self._process_kind(kind, action, now, report)
            self.cycles += 1
            self._state = "idle"

        if report.processed:
            logger.info(
                "scheduler.cycle_done",
                processed=report.processed,
                failed=report.failed,
                deleted=report.deleted,
            )
        return report

    async def _process_kind(
        self,
        kind: ItemKind,
        action: ItemAction,
        now: datetime,
        report: CycleReport,
    ) -> None:
        self._state = "polling"
        try:
            items: list[ScheduledItem] = await self._store.find(
                kind, lambda item: item.is_due(now)
            )
        except Exception as exc:
            logger.error("scheduler.query_failed", kind=kind, error=str(exc), exc_info=exc)
            return

        if not items:
            return

        self._state = "acting"
        for item in items:
            report.processed += 1
            try:
                await action(item)
            except Exception as exc:
                report.failed += 1
                report.failures.append((item.id, str(exc)))
                logger.error(
                    "scheduler.action_failed",
                    kind=kind,
                    item_id=item.id,
                    subject_id=item.subject_id,
                    error=str(exc),
                    exc_info=exc,
                )

        # At most once: fetched items go away whether or not they worked
        ids = [item.id for item in items if item.id is not None]
        try:
            report.deleted += await self._store.delete_many(ids)
        except Exception as exc:
            logger.error("scheduler.delete_failed", kind=kind, ids=ids, error=str(exc), exc_info=exc)
