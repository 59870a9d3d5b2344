"""Entrypoint registry.

Holds every registered entrypoint and the flat listener maps that
continuation references are resolved against. One registry is built at
startup and passed to the dispatcher; there is no module-level state.

Revocation methods are synchronous and never await, so on the event loop a
check-and-revoke cannot interleave with another activation."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from . import continuation
from .entrypoint import Entrypoint, InteractionListener, ReactionListener
from .errors import ConfigError, ContinuationError
from .logging import get_logger

logger = get_logger(__name__)

# Oldest revoked references are forgotten past this many
MAX_REVOKED_REFERENCES = 10_000


class EntrypointRegistry:
    """Name -> entrypoint and listener lookup, plus revocation state."""

    def __init__(self, *, max_revoked_references: int = MAX_REVOKED_REFERENCES) -> None:
        self._entrypoints: dict[str, Entrypoint] = {}
        self._interaction_listeners: dict[str, InteractionListener] = {}
        self._reaction_listeners: dict[str, ReactionListener] = {}

        # Insertion ordered, used as a bounded set
        self._revoked_references: dict[str, None] = {}
        self._max_revoked_references = max_revoked_references
        self._revoked_listeners: set[str] = set()

    def register(self, entrypoint: Entrypoint) -> None:
        """Register an entrypoint and its listeners.

        Raises:
            ConfigError: if the name is taken, the entrypoint has no handler,
                or one of its listener names is already registered. Nothing
                is registered in that case.
        """
        if entrypoint.name in self._entrypoints:
            raise ConfigError(f"Entrypoint '{entrypoint.name}' is already registered")
        if entrypoint.handler_variant is None:
            raise ConfigError(f"Handler not registered for '{entrypoint.name}'")

        for name, listener in entrypoint.interaction_listeners.items():
            existing = self._interaction_listeners.get(name)
            if existing is not None:
                raise ConfigError(
                    f"Interaction listener '{name}' of '{entrypoint.name}' collides "
                    f"with one registered by '{existing.entrypoint_name}'"
                )
        for name, reaction in entrypoint.reaction_listeners.items():
            existing_reaction = self._reaction_listeners.get(name)
            if existing_reaction is not None:
                raise ConfigError(
                    f"Reaction listener '{name}' of '{entrypoint.name}' collides "
                    f"with one registered by '{existing_reaction.entrypoint_name}'"
                )

        self._interaction_listeners.update(entrypoint.interaction_listeners)
        self._reaction_listeners.update(entrypoint.reaction_listeners)
        self._entrypoints[entrypoint.name] = entrypoint
        entrypoint.mark_registered()

        logger.debug(
            "registry.registered",
            entrypoint=entrypoint.name,
            interaction_listeners=list(entrypoint.interaction_listeners),
            reaction_listeners=list(entrypoint.reaction_listeners),
        )

    def register_all(self, entrypoints: Iterable[Entrypoint]) -> None:
        for entrypoint in entrypoints:
            self.register(entrypoint)

    def get_entrypoint(self, name: str) -> Entrypoint | None:
        return self._entrypoints.get(name)

    def entrypoints(self) -> list[Entrypoint]:
        return list(self._entrypoints.values())

    def get_listener(self, name: str) -> InteractionListener | None:
        if name in self._revoked_listeners:
            return None
        return self._interaction_listeners.get(name)

    def reaction_listeners(self) -> list[ReactionListener]:
        return list(self._reaction_listeners.values())

    def resolve_reference(
        self, reference: str
    ) -> tuple[InteractionListener, dict[str, str]] | None:
        """Find the listener a continuation reference points at.

        Returns None when the reference is malformed, unknown, carries the
        wrong number of values, or has been revoked.
        """
        try:
            name, values = continuation.split_reference(reference)
        except ContinuationError:
            return None

        if reference in self._revoked_references or name in self._revoked_listeners:
            return None
        listener = self._interaction_listeners.get(name)

        if listener is None or len(values) != len(listener.arg_names):
            return None
        return listener, dict(zip(listener.arg_names, values))

    def revoke(self, reference: str) -> bool:
        """Make one continuation reference unreachable.

        Returns True only for the call that performed the revocation. When
        more than ``max_revoked_references`` are held, the oldest is
        forgotten; use-once handlers also persist their own closed state.
        """
        if reference in self._revoked_references:
            return False
        self._revoked_references[reference] = None
        if len(self._revoked_references) > self._max_revoked_references:
            oldest = next(iter(self._revoked_references))
            del self._revoked_references[oldest]
            logger.debug("registry.revocation_forgotten", reference=oldest)
        logger.debug("registry.reference_revoked", reference=reference)
        return True

    def revoke_listener(self, name: str) -> bool:
        """Make every reference of a listener unreachable."""
        if name not in self._interaction_listeners or name in self._revoked_listeners:
            return False
        self._revoked_listeners.add(name)
        logger.info("registry.listener_revoked", listener=name)
        return True

    def command_payloads(self) -> list[dict[str, Any]]:
        return [entrypoint.command_payload() for entrypoint in self._entrypoints.values()]

    def __len__(self) -> int:
        return len(self._entrypoints)

    def __contains__(self, name: object) -> bool:
        return name in self._entrypoints
