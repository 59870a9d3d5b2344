"""Process wiring: registry, dispatcher, Discord client and scheduler."""

from __future__ import annotations

from collections.abc import Iterable

import anyio

from .commands import build_entrypoints
from .discord import DiscordBot, DiscordMemberGateway, create_client
from .dispatcher import Dispatcher
from .entrypoint import Entrypoint
from .logging import get_logger
from .registry import EntrypointRegistry
from .scheduler import (
    DeferredNotificationAction,
    MemberGateway,
    SchedulerLoop,
    TimedReleaseAction,
)
from .settings import BotSettings
from .store import MemoryStore, Store

logger = get_logger(__name__)


def build_registry(entrypoints: Iterable[Entrypoint]) -> EntrypointRegistry:
    """Register every entrypoint once; collisions abort startup."""
    registry = EntrypointRegistry()
    registry.register_all(entrypoints)
    logger.info("registry.ready", entrypoints=len(registry))
    return registry


def build_scheduler(
    settings: BotSettings,
    store: Store,
    members: MemberGateway,
) -> SchedulerLoop:
    restore: tuple[int, ...] = ()
    if settings.roles.member is not None:
        restore = (settings.roles.member,)
    return SchedulerLoop(
        store,
        {
            "timed_release": TimedReleaseAction(members, restore_group_ids=restore),
            "deferred_notification": DeferredNotificationAction(members),
        },
        interval=settings.scheduler.interval_s,
    )


async def run_bot(settings: BotSettings, *, store: Store | None = None) -> None:
    """Run the Discord client and the scheduler until cancelled."""
    store = store or MemoryStore()

    client = create_client()
    members = DiscordMemberGateway(client, settings.guild_id)

    registry = build_registry(build_entrypoints(settings, store, members))
    dispatcher = Dispatcher(registry)
    bot = DiscordBot(settings, dispatcher, client=client)

    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(_run_client, bot, tg.cancel_scope)
            if settings.scheduler.enabled:
                await bot.wait_ready()
                scheduler = build_scheduler(settings, store, members)
                tg.start_soon(scheduler.run)
    finally:
        with anyio.CancelScope(shield=True):
            await bot.close()


async def _run_client(bot: DiscordBot, scope: anyio.CancelScope) -> None:
    # Once the client disconnects for good, take the scheduler down with it
    try:
        await bot.start()
    finally:
        scope.cancel()
