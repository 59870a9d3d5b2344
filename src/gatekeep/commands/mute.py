"""/mute - temporarily swap a member onto the muted role."""

from __future__ import annotations

from datetime import timedelta

from ..context import InvocationContext
from ..entrypoint import Entrypoint, Parameter
from ..errors import CommandError
from ..logging import get_logger
from ..scheduler import MemberGateway
from ..settings import BotSettings
from ..store import ScheduledItem, Store, schedule, utcnow

logger = get_logger(__name__)

MAX_MINUTES = 28 * 24 * 60


def build_mute(settings: BotSettings, store: Store, members: MemberGateway) -> Entrypoint:
    command = Entrypoint(
        "mute",
        "Mutes a member for the given number of minutes",
        parameters=(
            Parameter("user", "user", "The member to mute", required=True),
            Parameter("minutes", "integer", "How long the mute lasts", required=True),
            Parameter("reason", "string", "Shown to the member"),
        ),
        staff_group_id=settings.roles.staff,
    )

    @command.handler
    async def mute(ctx: InvocationContext) -> None:
        moderator = ctx.require_actor()
        muted_role = settings.roles.muted
        if muted_role is None:
            raise CommandError("No muted role is configured.")

        target = ctx.option("user")
        minutes = ctx.option("minutes")
        reason = ctx.option("reason")

        if not isinstance(target, int):
            raise CommandError("Pick a member to mute.")
        if target == moderator.id:
            raise CommandError("You can't mute yourself.")
        if not isinstance(minutes, int) or not 1 <= minutes <= MAX_MINUTES:
            raise CommandError(f"Minutes must be between 1 and {MAX_MINUTES}.")

        restore: list[int] = []
        if settings.roles.member is not None:
            restore.append(settings.roles.member)

        # Release first: a muted member always has a pending unmute
        due_at = utcnow() + timedelta(minutes=minutes)
        release = await schedule(
            store,
            "timed_release",
            target,
            due_at,
            group_id=muted_role,
            restore_group_ids=restore,
        )
        try:
            await members.add_group(target, muted_role)
            for group_id in restore:
                await members.remove_group(target, group_id)
        except Exception:
            await _roll_back(store, members, release, target, muted_role)
            raise

        logger.info(
            "mute.applied",
            target=target,
            by=moderator.id,
            minutes=minutes,
            reason=reason,
        )
        await ctx.send(
            content=f"Muted <@{target}> until <t:{int(due_at.timestamp())}:f>.",
            ephemeral=True,
        )

    return command


async def _roll_back(
    store: Store,
    members: MemberGateway,
    release: ScheduledItem,
    target: int,
    muted_role: int,
) -> None:
    """Undo a half-applied mute.

    The release item is dropped only once the muted role is gone again;
    otherwise it stays and ends the mute on schedule.
    """
    try:
        await members.remove_group(target, muted_role)
    except Exception as exc:
        logger.warning(
            "mute.rollback_failed",
            target=target,
            release_id=release.id,
            error=str(exc),
        )
        return
    if release.id is not None:
        await store.delete_many([release.id])
    logger.info("mute.rolled_back", target=target)
