"""Entrypoints: top-level commands with their nested listeners.

An entrypoint is declared once at startup, gets a handler, may add
interaction listeners (components whose ``custom_id`` is a continuation
reference) and reaction listeners, and is then registered. After
registration only its permission table may change.

Example:

    command = Entrypoint("poll", "Create a poll", staff_group_id=STAFF)

    @command.handler
    async def create(ctx: InvocationContext) -> None:
        await ctx.send(components=[select(custom_id=vote_ref(poll_id=7))])

    async def vote(ctx: InvocationContext, args: dict[str, str]) -> None:
        ...

    vote_ref = command.add_interaction_listener("vote", ("poll_id",), vote)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from . import continuation
from .context import InvocationContext
from .errors import ConfigError, ContinuationError
from .ids import validate_command_name, validate_listener_label
from .permissions import PermissionTable

ParameterType = Literal["string", "integer", "boolean", "user", "role", "number"]

CommandFn = Callable[[InvocationContext], Awaitable[Any]]
ListenerFn = Callable[[InvocationContext, dict[str, str]], Awaitable[Any]]

# Discord application command option types
_OPTION_TYPES: dict[str, int] = {
    "string": 3,
    "integer": 4,
    "boolean": 5,
    "user": 6,
    "role": 8,
    "number": 10,
}

LISTENER_SEPARATOR = "#"


@dataclass(frozen=True, slots=True)
class Parameter:
    """One declared command option."""

    name: str
    type: ParameterType = "string"
    description: str = ""
    required: bool = False
    choices: tuple[tuple[str, str | int], ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "description": self.description or self.name,
            "type": _OPTION_TYPES[self.type],
            "required": self.required,
        }
        if self.choices:
            payload["choices"] = [
                {"name": label, "value": value} for label, value in self.choices
            ]
        return payload


@dataclass(frozen=True, slots=True)
class CommandHandler:
    """Handler variant for top-level commands."""

    fn: CommandFn

    async def invoke(self, ctx: InvocationContext) -> None:
        await self.fn(ctx)


@dataclass(frozen=True, slots=True)
class ListenerHandler:
    """Handler variant for continuation listeners."""

    fn: ListenerFn
    arg_names: tuple[str, ...] = ()

    async def invoke(self, ctx: InvocationContext) -> None:
        await self.fn(ctx, dict(ctx.args))


Handler = CommandHandler | ListenerHandler


@dataclass(frozen=True, slots=True)
class InteractionListener:
    name: str
    handler: ListenerHandler
    entrypoint_name: str

    @property
    def arg_names(self) -> tuple[str, ...]:
        return self.handler.arg_names

    def reference(self, **values: Any) -> str:
        """Build the continuation reference for the given argument values."""
        missing = [name for name in self.arg_names if name not in values]
        extra = [name for name in values if name not in self.arg_names]
        if missing or extra:
            raise ContinuationError(
                f"Listener '{self.name}' takes ({', '.join(self.arg_names)}); "
                f"missing={missing} unexpected={extra}"
            )
        return continuation.encode(
            self.name,
            self.arg_names,
            [values[name] for name in self.arg_names],
        )


@dataclass(frozen=True, slots=True)
class ReactionListener:
    name: str
    handler: CommandHandler
    entrypoint_name: str


ReferenceFactory = Callable[..., str]


@dataclass
class Entrypoint:
    """A top-level command with its handler, listeners and permission table."""

    name: str
    description: str
    parameters: Sequence[Parameter] = ()
    staff_group_id: int | None = None

    handler_variant: CommandHandler | None = field(default=None, init=False)
    interaction_listeners: dict[str, InteractionListener] = field(
        default_factory=dict, init=False
    )
    reaction_listeners: dict[str, ReactionListener] = field(
        default_factory=dict, init=False
    )
    _permissions: PermissionTable = field(init=False, repr=False)
    _registered: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        valid, error = validate_command_name(self.name)
        if not valid:
            raise ConfigError(error or f"Invalid command name: {self.name}")
        self.parameters = tuple(self.parameters)
        self._permissions = PermissionTable(self.staff_group_id)

    # Permissions stay editable after registration

    def get_permissions(self) -> PermissionTable:
        return self._permissions.copy()

    @property
    def permissions(self) -> PermissionTable:
        return self._permissions

    def add_permission(self, subject_id: int, allowed: bool) -> Entrypoint:
        self._permissions.add(subject_id, allowed)
        return self

    def clear_permissions(self) -> Entrypoint:
        self._permissions.clear()
        return self

    # Structure is frozen once registered

    def _check_mutable(self) -> None:
        if self._registered:
            raise ConfigError(f"Entrypoint '{self.name}' is already registered")

    def set_handler(self, fn: CommandFn) -> Entrypoint:
        self._check_mutable()
        self.handler_variant = CommandHandler(fn)
        return self

    def handler(self, fn: CommandFn) -> CommandFn:
        """Decorator form of :meth:`set_handler`."""
        self.set_handler(fn)
        return fn

    def listener_name(self, label: str) -> str:
        return f"{self.name}{LISTENER_SEPARATOR}{label}"

    def add_interaction_listener(
        self,
        label: str,
        arg_names: Sequence[str],
        fn: ListenerFn,
    ) -> ReferenceFactory:
        """Register a listener and return its reference factory.

        The factory takes the listener's arguments as keywords and returns
        the continuation reference to put in a component's ``custom_id``.
        """
        self._check_mutable()
        valid, error = validate_listener_label(label, context=self.name)
        if not valid:
            raise ConfigError(error or f"Invalid listener label: {label}")

        name = self.listener_name(label)
        if name in self.interaction_listeners:
            raise ConfigError(f"Duplicate interaction listener '{name}'")

        listener = InteractionListener(
            name=name,
            handler=ListenerHandler(fn, tuple(arg_names)),
            entrypoint_name=self.name,
        )
        self.interaction_listeners[name] = listener
        return listener.reference

    def add_reaction_listener(self, label: str, fn: CommandFn) -> None:
        self._check_mutable()
        valid, error = validate_listener_label(label, context=self.name)
        if not valid:
            raise ConfigError(error or f"Invalid listener label: {label}")

        name = self.listener_name(label)
        if name in self.reaction_listeners:
            raise ConfigError(f"Duplicate reaction listener '{name}'")
        self.reaction_listeners[name] = ReactionListener(
            name=name,
            handler=CommandHandler(fn),
            entrypoint_name=self.name,
        )

    def mark_registered(self) -> None:
        self._registered = True

    @property
    def registered(self) -> bool:
        return self._registered

    def command_payload(self) -> dict[str, Any]:
        """Application command metadata for the platform's bulk sync."""
        return {
            "name": self.name,
            "description": self.description,
            "type": 1,
            "options": [param.to_payload() for param in self.parameters],
        }
