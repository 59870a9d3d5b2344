"""/remind - DM the caller later."""

from __future__ import annotations

from datetime import timedelta

from ..context import InvocationContext
from ..entrypoint import Entrypoint, Parameter
from ..errors import CommandError
from ..settings import BotSettings
from ..store import Store, schedule, utcnow

MAX_MINUTES = 7 * 24 * 60
MAX_TEXT_LENGTH = 1000


def build_remind(settings: BotSettings, store: Store) -> Entrypoint:
    command = Entrypoint(
        "remind",
        "Sends you a DM reminder after the given number of minutes",
        parameters=(
            Parameter("minutes", "integer", "Minutes from now", required=True),
            Parameter("text", "string", "What to remind you about", required=True),
        ),
        staff_group_id=settings.roles.staff,
    )
    # The @everyone role shares the guild's id
    command.add_permission(settings.guild_id, True)

    @command.handler
    async def remind(ctx: InvocationContext) -> None:
        actor = ctx.require_actor()
        minutes = ctx.option("minutes")
        text = str(ctx.option("text", "")).strip()

        if not isinstance(minutes, int) or not 1 <= minutes <= MAX_MINUTES:
            raise CommandError(f"Minutes must be between 1 and {MAX_MINUTES}.")
        if not text:
            raise CommandError("Tell me what to remind you about.")
        if len(text) > MAX_TEXT_LENGTH:
            raise CommandError(f"Reminders are limited to {MAX_TEXT_LENGTH} characters.")

        due_at = utcnow() + timedelta(minutes=minutes)
        await schedule(store, "deferred_notification", actor.id, due_at, text=text)
        await ctx.send(
            content=f"Got it! I'll remind you <t:{int(due_at.timestamp())}:R>.",
            ephemeral=True,
        )

    return command
