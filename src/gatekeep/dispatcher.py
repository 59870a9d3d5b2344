"""Invocation dispatcher.

Identifies the handler for an incoming invocation, gates top-level commands
through the permission resolver, runs the handler, and turns any failure
into a response. This is the only place handler exceptions are caught.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from .context import Actor, Invocation, InvocationContext
from .entrypoint import Entrypoint, Handler
from .errors import (
    COMMAND_NOT_FOUND_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    PERMISSION_DENIED_MESSAGE,
    Internal,
    MissingActorError,
    UserFacing,
    classify,
)
from .logging import get_logger
from .permissions import explain
from .registry import EntrypointRegistry

logger = get_logger(__name__)

DispatchStatus = Literal["ok", "not_found", "denied", "user_error", "internal_error"]

# Worst first, used to summarize reaction fan-out
_SEVERITY: dict[str, int] = {
    "internal_error": 4,
    "user_error": 3,
    "denied": 2,
    "not_found": 1,
    "ok": 0,
}


@dataclass(frozen=True, slots=True)
class DispatchOutcome:
    """What happened to one invocation."""

    status: DispatchStatus
    target: str
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class Dispatcher:
    """Routes invocations to handlers through a shared registry.

    Invocations are independent: nothing here serializes them, and nothing
    about a permission decision is remembered between them.
    """

    def __init__(self, registry: EntrypointRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> EntrypointRegistry:
        return self._registry

    async def dispatch(self, invocation: Invocation) -> DispatchOutcome:
        if invocation.kind == "command":
            return await self._dispatch_command(invocation)
        if invocation.kind == "interaction":
            return await self._dispatch_interaction(invocation)
        return await self._dispatch_reaction(invocation)

    async def _dispatch_command(self, invocation: Invocation) -> DispatchOutcome:
        entrypoint = self._registry.get_entrypoint(invocation.target)
        if entrypoint is None or entrypoint.handler_variant is None:
            logger.debug("dispatch.command_not_found", command=invocation.target)
            await self._respond(invocation, COMMAND_NOT_FOUND_MESSAGE)
            return DispatchOutcome("not_found", invocation.target, COMMAND_NOT_FOUND_MESSAGE)

        ctx = InvocationContext.from_invocation(invocation, registry=self._registry)

        actor = invocation.actor
        if actor is None:
            return await self._fail(
                invocation,
                MissingActorError(f"No actor for command '{entrypoint.name}'"),
            )

        if not self._allowed(entrypoint, actor):
            await self._respond(invocation, PERMISSION_DENIED_MESSAGE)
            return DispatchOutcome("denied", invocation.target, PERMISSION_DENIED_MESSAGE)

        return await self._run(invocation, ctx, entrypoint.handler_variant)

    def _allowed(self, entrypoint: Entrypoint, actor: Actor) -> bool:
        decision = explain(actor.id, actor.group_ids, entrypoint.permissions)
        logger.debug(
            "dispatch.permission",
            command=entrypoint.name,
            actor_id=actor.id,
            allowed=decision.allowed,
            matched_by=decision.matched_by,
            matched_id=decision.subject_id,
        )
        if not decision.allowed:
            logger.info("dispatch.denied", command=entrypoint.name, actor_id=actor.id)
        return decision.allowed

    async def _dispatch_interaction(self, invocation: Invocation) -> DispatchOutcome:
        resolved = self._registry.resolve_reference(invocation.target)
        if resolved is None:
            # Expired or unknown references are expected, not a fault
            logger.debug("dispatch.reference_not_found", reference=invocation.target)
            return DispatchOutcome("not_found", invocation.target)

        listener, args = resolved
        ctx = InvocationContext.from_invocation(
            invocation, registry=self._registry, args=args
        )
        return await self._run(invocation, ctx, listener.handler)

    async def _dispatch_reaction(self, invocation: Invocation) -> DispatchOutcome:
        listeners = self._registry.reaction_listeners()
        if not listeners:
            logger.debug("dispatch.no_reaction_listeners", reaction=invocation.target)
            return DispatchOutcome("not_found", invocation.target)

        worst = DispatchOutcome("ok", invocation.target)
        for listener in listeners:
            ctx = InvocationContext.from_invocation(invocation, registry=self._registry)
            outcome = await self._run(invocation, ctx, listener.handler)
            if _SEVERITY[outcome.status] > _SEVERITY[worst.status]:
                worst = outcome
        return worst

    async def _run(
        self,
        invocation: Invocation,
        ctx: InvocationContext,
        handler: Handler,
    ) -> DispatchOutcome:
        try:
            await handler.invoke(ctx)
        except Exception as exc:
            return await self._fail(invocation, exc)
        return DispatchOutcome("ok", invocation.target)

    async def _fail(
        self,
        invocation: Invocation,
        exc: Exception,
    ) -> DispatchOutcome:
        match classify(exc):
            case UserFacing(message=message):
                await self._respond(invocation, message)
                return DispatchOutcome("user_error", invocation.target, message)
            case Internal(cause=cause):
                logger.error(
                    "dispatch.handler_failed",
                    kind=invocation.kind,
                    target=invocation.target,
                    actor_id=invocation.actor.id if invocation.actor else None,
                    error=str(cause),
                    error_type=type(cause).__name__,
                    exc_info=cause,
                )
        await self._respond(invocation, GENERIC_ERROR_MESSAGE)
        return DispatchOutcome("internal_error", invocation.target, GENERIC_ERROR_MESSAGE)

    async def _respond(self, invocation: Invocation, message: str) -> None:
        """Send a response of last resort; failures here are only logged."""
        payload: dict[str, Any] = {"content": message, "ephemeral": True}
        try:
            await invocation.responder.send(payload)
        except Exception as exc:
            logger.warning(
                "dispatch.respond_failed",
                target=invocation.target,
                error=str(exc),
            )
