"""Discord transport for gatekeep.

This module connects discord.py to the dispatcher:
- application commands and component interactions become invocations
- raw reaction events become reaction invocations
- command metadata is bulk-synced to the guild on startup
- member role changes and DMs for scheduled actions go through
  ``DiscordMemberGateway``
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import anyio
import discord

from .context import Actor, Invocation
from .dispatcher import Dispatcher
from .logging import get_logger
from .settings import BotSettings

logger = get_logger(__name__)

# Discord has a 2000 character limit for messages
DISCORD_MAX_MESSAGE_LENGTH = 2000

# Option types carrying snowflakes
_SNOWFLAKE_OPTION_TYPES = {6, 7, 8, 9}
_SUBCOMMAND_OPTION_TYPES = {1, 2}

_BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
    "link": discord.ButtonStyle.link,
}


def truncate_content(text: str, limit: int = DISCORD_MAX_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def actor_from_user(user: discord.abc.User | None) -> Actor | None:
    """Build an actor from the user behind an event.

    Guild members carry their current role ids; plain users (DMs) have none.
    """
    if user is None:
        return None
    group_ids: frozenset[int] = frozenset()
    if isinstance(user, discord.Member):
        group_ids = frozenset(role.id for role in user.roles)
    return Actor(
        id=user.id,
        group_ids=group_ids,
        display_name=getattr(user, "display_name", None),
    )


def flatten_options(options: list[dict[str, Any]] | None) -> tuple[list[str], dict[str, Any]]:
    """Flatten raw application command options.

    Returns:
        Tuple of (subcommand path, option values). User/role/channel options
        are converted to integer ids.
    """
    path: list[str] = []
    values: dict[str, Any] = {}
    pending = list(options or [])
    while pending:
        option = pending.pop(0)
        option_type = option.get("type")
        if option_type in _SUBCOMMAND_OPTION_TYPES:
            path.append(option["name"])
            pending = list(option.get("options") or [])
            continue
        value = option.get("value")
        if option_type in _SNOWFLAKE_OPTION_TYPES and value is not None:
            value = int(value)
        values[option["name"]] = value
    return path, values


def invocation_from_interaction(interaction: discord.Interaction) -> Invocation | None:
    """Translate a Discord interaction into an invocation.

    Returns None for interaction types the runtime does not route
    (autocomplete, modals, pings).
    """
    data: dict[str, Any] = dict(interaction.data or {})
    actor = actor_from_user(interaction.user)
    responder = InteractionResponder(interaction)
    raw = {"interaction": interaction}

    if interaction.type == discord.InteractionType.application_command:
        _, options = flatten_options(data.get("options"))
        return Invocation(
            kind="command",
            target=str(data.get("name", "")),
            actor=actor,
            responder=responder,
            options=options,
            raw=raw,
        )

    if interaction.type == discord.InteractionType.component:
        return Invocation(
            kind="interaction",
            target=str(data.get("custom_id", "")),
            actor=actor,
            responder=responder,
            options={"values": list(data.get("values") or [])},
            raw=raw,
        )

    return None


def _build_view(components: list[Mapping[str, Any]]) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for component in components:
        kind = component.get("type", "button")
        if kind == "select":
            view.add_item(
                discord.ui.Select(
                    custom_id=component["custom_id"],
                    placeholder=component.get("placeholder"),
                    min_values=component.get("min_values", 1),
                    max_values=component.get("max_values", 1),
                    options=[
                        discord.SelectOption(
                            label=option["label"][:100],
                            value=str(option["value"]),
                            emoji=option.get("emoji"),
                        )
                        for option in component.get("options", [])
                    ],
                )
            )
        else:
            style = _BUTTON_STYLES.get(component.get("style", "primary"), discord.ButtonStyle.primary)
            view.add_item(
                discord.ui.Button(
                    label=component.get("label"),
                    style=style,
                    custom_id=None if style is discord.ButtonStyle.link else component.get("custom_id"),
                    url=component.get("url"),
                    disabled=component.get("disabled", False),
                )
            )
    return view


def send_kwargs(payload: Mapping[str, Any], *, direct: bool = False) -> dict[str, Any]:
    """Convert an opaque response payload into discord.py send() kwargs."""
    kwargs: dict[str, Any] = {}
    content = payload.get("content")
    if content is not None:
        kwargs["content"] = truncate_content(str(content))

    embeds = list(payload.get("embeds") or [])
    if payload.get("embed") is not None:
        embeds.insert(0, payload["embed"])
    if embeds:
        kwargs["embeds"] = [
            e if isinstance(e, discord.Embed) else discord.Embed.from_dict(dict(e))
            for e in embeds
        ]

    components = payload.get("components")
    if components is not None:
        kwargs["view"] = _build_view(list(components))

    if not direct and payload.get("ephemeral"):
        kwargs["ephemeral"] = True
    return kwargs


def create_client() -> discord.Client:
    """Client with the intents the runtime needs (members for roles, reactions)."""
    intents = discord.Intents.default()
    intents.members = True
    intents.guild_reactions = True
    return discord.Client(intents=intents)


class InteractionResponder:
    """Responds to one interaction.

    The first send answers the interaction; later sends become followups.
    A payload with ``update=True`` edits the message the component lives on.
    """

    def __init__(self, interaction: discord.Interaction) -> None:
        self._interaction = interaction

    async def send(self, payload: Mapping[str, Any]) -> None:
        response = self._interaction.response
        kwargs = send_kwargs(payload)

        if payload.get("update") and not response.is_done():
            kwargs.pop("ephemeral", None)
            await response.edit_message(**kwargs)
            return

        if response.is_done():
            await self._interaction.followup.send(**kwargs)
        else:
            await response.send_message(**kwargs)


class ChannelResponder:
    """Sends responses to a channel (used for reaction events)."""

    def __init__(self, client: discord.Client, channel_id: int) -> None:
        self._client = client
        self._channel_id = channel_id

    async def send(self, payload: Mapping[str, Any]) -> None:
        channel = self._client.get_channel(self._channel_id)
        if channel is None:
            channel = await self._client.fetch_channel(self._channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            logger.error("discord.send_failed.channel_not_found", channel_id=self._channel_id)
            return
        await channel.send(**send_kwargs(payload, direct=True))


class DiscordMemberGateway:
    """Member operations used by scheduled actions and built-in commands."""

    def __init__(self, client: discord.Client, guild_id: int) -> None:
        self._client = client
        self._guild_id = guild_id

    async def _guild(self) -> discord.Guild:
        guild = self._client.get_guild(self._guild_id)
        if guild is None:
            guild = await self._client.fetch_guild(self._guild_id)
        return guild

    async def _member(self, subject_id: int) -> discord.Member:
        guild = await self._guild()
        member = guild.get_member(subject_id)
        if member is None:
            member = await guild.fetch_member(subject_id)
        return member

    async def add_group(self, subject_id: int, group_id: int) -> None:
        member = await self._member(subject_id)
        await member.add_roles(discord.Object(id=group_id))

    async def remove_group(self, subject_id: int, group_id: int) -> None:
        member = await self._member(subject_id)
        await member.remove_roles(discord.Object(id=group_id))

    async def send_direct(self, subject_id: int, payload: Mapping[str, Any]) -> None:
        member = await self._member(subject_id)
        await member.send(**send_kwargs(payload, direct=True))


class DiscordBot:
    """Owns the discord.py client and feeds its events to the dispatcher."""

    def __init__(
        self,
        settings: BotSettings,
        dispatcher: Dispatcher,
        *,
        client: discord.Client | None = None,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher

        self._client = client or create_client()
        self._ready = anyio.Event()
        self._setup_handlers()

    @property
    def client(self) -> discord.Client:
        return self._client

    @property
    def members(self) -> DiscordMemberGateway:
        return DiscordMemberGateway(self._client, self._settings.guild_id)

    def _setup_handlers(self) -> None:
        @self._client.event
        async def on_ready() -> None:
            logger.info(
                "discord.ready",
                user=str(self._client.user),
                guild_id=self._settings.guild_id,
            )
            if self._settings.sync_commands:
                await self.sync_commands()
            self._ready.set()

        @self._client.event
        async def on_interaction(interaction: discord.Interaction) -> None:
            await self.handle_interaction(interaction)

        @self._client.event
        async def on_raw_reaction_add(payload: discord.RawReactionActionEvent) -> None:
            await self.handle_reaction(payload)

    async def handle_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.guild_id is not None and interaction.guild_id != self._settings.guild_id:
            return
        invocation = invocation_from_interaction(interaction)
        if invocation is None:
            return
        outcome = await self._dispatcher.dispatch(invocation)
        logger.debug(
            "discord.interaction_handled",
            kind=invocation.kind,
            target=invocation.target,
            status=outcome.status,
        )

    async def handle_reaction(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id != self._settings.guild_id:
            return
        if self._client.user is not None and payload.user_id == self._client.user.id:
            return
        invocation = Invocation(
            kind="reaction",
            target=str(payload.emoji),
            actor=actor_from_user(payload.member),
            responder=ChannelResponder(self._client, payload.channel_id),
            options={
                "message_id": payload.message_id,
                "channel_id": payload.channel_id,
                "user_id": payload.user_id,
            },
            raw={"payload": payload},
        )
        await self._dispatcher.dispatch(invocation)

    async def sync_commands(self) -> None:
        """Bulk-replace the guild's application commands with the registry's."""
        application_id = self._settings.application_id or self._client.application_id
        if application_id is None:
            logger.error("discord.commands_sync_failed", error="unknown application id")
            return
        payloads = self._dispatcher.registry.command_payloads()
        try:
            await self._client.http.bulk_upsert_guild_commands(
                application_id, self._settings.guild_id, payloads
            )
        except discord.HTTPException as e:
            logger.error("discord.commands_sync_failed", error=str(e))
            return
        logger.info(
            "discord.commands_synced",
            guild_id=self._settings.guild_id,
            count=len(payloads),
        )

    async def wait_ready(self) -> None:
        await self._ready.wait()

    async def start(self) -> None:
        """Connect and run until the client is closed."""
        await self._client.start(self._settings.token.get_secret_value())

    async def close(self) -> None:
        await self._client.close()
        logger.info("discord.closed")
