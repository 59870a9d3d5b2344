"""Invocation context handed to command and listener handlers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

from .errors import MissingActorError

if TYPE_CHECKING:
    from .registry import EntrypointRegistry

InvocationKind = Literal["command", "interaction", "reaction"]


@dataclass(frozen=True, slots=True)
class Actor:
    """The user behind an invocation and the roles they hold right now."""

    id: int
    group_ids: frozenset[int] = frozenset()
    display_name: str | None = None


class Responder(Protocol):
    """Delivers response payloads back to the platform.

    Payloads are opaque to the runtime: a mapping of keyword arguments the
    transport knows how to send (content, embeds, components, ephemeral, ...).
    """

    async def send(self, payload: Mapping[str, Any]) -> None: ...


@dataclass(frozen=True, slots=True)
class Invocation:
    """An incoming user action, as delivered by a transport.

    ``target`` is the command name for commands, the continuation reference
    for interactions, and the reaction key (emoji) for reactions.
    """

    kind: InvocationKind
    target: str
    actor: Actor | None
    responder: Responder
    options: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class InvocationContext:
    """What a handler sees.

    Provides:
    - The actor and the command options
    - Decoded continuation arguments (listeners only)
    - ``send`` for responding
    - ``revoke`` for use-once continuation flows
    """

    actor: Actor | None
    responder: Responder
    options: dict[str, Any] = field(default_factory=dict)

    # Decoded continuation arguments, all strings
    args: dict[str, str] = field(default_factory=dict)

    # The continuation reference that was activated, if any
    reference: str | None = None

    # Platform objects for edge cases (interaction, message, ...)
    raw: dict[str, Any] = field(default_factory=dict)

    registry: EntrypointRegistry | None = None

    @classmethod
    def from_invocation(
        cls,
        invocation: Invocation,
        *,
        registry: EntrypointRegistry | None = None,
        args: dict[str, str] | None = None,
    ) -> InvocationContext:
        return cls(
            actor=invocation.actor,
            responder=invocation.responder,
            options=dict(invocation.options),
            args=args or {},
            reference=invocation.target if invocation.kind == "interaction" else None,
            raw=dict(invocation.raw),
            registry=registry,
        )

    def require_actor(self) -> Actor:
        """The actor, or MissingActorError when the transport resolved none."""
        if self.actor is None:
            raise MissingActorError("Invocation has no actor")
        return self.actor

    def option(self, name: str, default: Any = None) -> Any:
        value = self.options.get(name)
        return default if value is None else value

    async def send(self, payload: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Send a response, e.g. ``await ctx.send(content="Done")``."""
        merged = {**(payload or {}), **kwargs}
        await self.responder.send(merged)

    def revoke(self) -> bool:
        """Revoke the activated continuation reference.

        Returns True only for the caller that performed the revocation, so a
        use-once handler should call this before its first ``await`` and stop
        when it returns False.
        """
        if self.reference is None or self.registry is None:
            return False
        return self.registry.revoke(self.reference)
