"""/poll - a select-menu poll that survives restarts.

The select menu and the close button carry continuation references with
the poll id, so votes are routed back without any in-memory state. The
references can be replayed forever; a missing or closed poll turns the
interaction into a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..context import InvocationContext
from ..continuation import coerce_int
from ..entrypoint import Entrypoint, Parameter
from ..errors import CommandError
from ..settings import BotSettings
from ..store import Store

MAX_OPTIONS = 5
BAR_SIZE = 20


@dataclass(frozen=True, slots=True)
class PollRecord:
    author_id: int
    title: str
    options: tuple[str, ...]
    max_choices: int = 1
    votes: dict[int, tuple[int, ...]] = field(default_factory=dict)
    closed: bool = False
    kind: Literal["poll"] = "poll"
    id: int | None = None


def tally(poll: PollRecord) -> list[int]:
    counts = [0] * len(poll.options)
    for choices in poll.votes.values():
        for index in choices:
            if 0 <= index < len(counts):
                counts[index] += 1
    return counts


def progress_bar(value: int, total: int, size: int = BAR_SIZE) -> str:
    filled = round(size * value / total) if total else 0
    return "█" * filled + "░" * (size - filled)


def render_poll(poll: PollRecord) -> dict[str, Any]:
    counts = tally(poll)
    total = sum(counts)
    fields = [
        {
            "name": option[:256],
            "value": f"{progress_bar(count, total)} [{count}]",
            "inline": False,
        }
        for option, count in zip(poll.options, counts)
    ]
    footer = "Poll closed" if poll.closed else f"{len(poll.votes)} voter(s)"
    return {"title": poll.title[:256], "fields": fields, "footer": {"text": footer}}


async def _find_poll(store: Store, poll_id: int | None) -> PollRecord | None:
    if poll_id is None:
        return None
    found = await store.find("poll", lambda record: record.id == poll_id)
    return found[0] if found else None


def build_poll(settings: BotSettings, store: Store) -> Entrypoint:
    command = Entrypoint(
        "poll",
        "Creates a poll members can vote on",
        parameters=(
            Parameter("title", "string", "The title for the poll", required=True),
            *(
                Parameter(f"option{num}", "string", f"Option #{num}", required=num <= 2)
                for num in range(1, MAX_OPTIONS + 1)
            ),
            Parameter("max_choices", "integer", "How many options a voter may pick"),
        ),
        staff_group_id=settings.roles.staff,
    )

    async def vote(ctx: InvocationContext, args: dict[str, str]) -> None:
        poll = await _find_poll(store, coerce_int(args.get("poll_id")))
        if poll is None or poll.closed or ctx.actor is None or poll.id is None:
            return

        indices = {coerce_int(value) for value in ctx.option("values", [])}
        choices = tuple(
            sorted(i for i in indices if i is not None and 0 <= i < len(poll.options))
        )
        if not choices:
            return
        if len(choices) > poll.max_choices:
            raise CommandError(f"You can pick at most {poll.max_choices} option(s).")

        voter = ctx.actor.id

        def cast(current: PollRecord) -> dict[str, Any] | None:
            if current.closed:
                return None
            return {"votes": {**current.votes, voter: choices}}

        updated = await store.modify(poll.id, cast)
        if updated is None:
            return
        await ctx.send(embed=render_poll(updated), update=True)

    async def close(ctx: InvocationContext, args: dict[str, str]) -> None:
        poll = await _find_poll(store, coerce_int(args.get("poll_id")))
        if poll is None or poll.id is None:
            return
        if ctx.require_actor().id != poll.author_id:
            raise CommandError("Only the poll creator can close this poll.")

        # Use once: a concurrent close that lost the claim does nothing
        if not ctx.revoke():
            return
        if ctx.registry is not None:
            ctx.registry.revoke(vote_reference(poll_id=poll.id))

        closed = await store.modify(
            poll.id, lambda current: None if current.closed else {"closed": True}
        )
        if closed is None:
            return
        await ctx.send(embed=render_poll(closed), components=[], update=True)

    vote_reference = command.add_interaction_listener("vote", ("poll_id",), vote)
    close_reference = command.add_interaction_listener("close", ("poll_id",), close)

    @command.handler
    async def create(ctx: InvocationContext) -> None:
        author = ctx.require_actor()
        title = str(ctx.option("title", "")).strip()
        options = [
            str(value).strip()
            for num in range(1, MAX_OPTIONS + 1)
            if (value := ctx.option(f"option{num}"))
        ]
        if not title or len(options) < 2:
            raise CommandError("A poll needs a title and at least two options.")

        max_choices = ctx.option("max_choices", 1)
        if not isinstance(max_choices, int) or not 1 <= max_choices <= len(options):
            raise CommandError(f"max_choices must be between 1 and {len(options)}.")

        poll = await store.insert(
            PollRecord(
                author_id=author.id,
                title=title,
                options=tuple(options),
                max_choices=max_choices,
            )
        )
        await ctx.send(
            embed=render_poll(poll),
            components=[
                {
                    "type": "select",
                    "custom_id": vote_reference(poll_id=poll.id),
                    "placeholder": "Select a poll choice",
                    "min_values": 1,
                    "max_values": max_choices,
                    "options": [
                        {"label": option[:25], "value": str(index)}
                        for index, option in enumerate(options)
                    ],
                },
                {
                    "type": "button",
                    "style": "danger",
                    "label": "Close poll",
                    "custom_id": close_reference(poll_id=poll.id),
                },
            ],
        )

    return command
