from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from gatekeep.context import Actor, Invocation, InvocationKind
from gatekeep.settings import BotSettings

GUILD_ID = 1000
STAFF_ROLE = 2000
MUTED_ROLE = 3000
MEMBER_ROLE = 4000


class FakeResponder:
    """Records every payload sent through it."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send(self, payload: Mapping[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("responder is gone")
        self.sent.append(dict(payload))

    @property
    def contents(self) -> list[str | None]:
        return [payload.get("content") for payload in self.sent]


class FakeMembers:
    """Member gateway that records calls and can be told to fail."""

    def __init__(
        self,
        *,
        fail_dm: bool = False,
        fail_roles: bool = False,
        fail_remove: frozenset[int] = frozenset(),
    ) -> None:
        self.calls: list[tuple[str, int, Any]] = []
        self.fail_dm = fail_dm
        self.fail_roles = fail_roles
        # Groups whose removal fails
        self.fail_remove = fail_remove

    async def add_group(self, subject_id: int, group_id: int) -> None:
        if self.fail_roles:
            raise RuntimeError("missing permissions")
        self.calls.append(("add", subject_id, group_id))

    async def remove_group(self, subject_id: int, group_id: int) -> None:
        if self.fail_roles or group_id in self.fail_remove:
            raise RuntimeError("missing permissions")
        self.calls.append(("remove", subject_id, group_id))

    async def send_direct(self, subject_id: int, payload: Mapping[str, Any]) -> None:
        if self.fail_dm:
            raise RuntimeError("Cannot send messages to this user")
        self.calls.append(("dm", subject_id, dict(payload)))

    @property
    def dms(self) -> list[tuple[int, dict[str, Any]]]:
        return [(subject, payload) for kind, subject, payload in self.calls if kind == "dm"]


def actor(user_id: int = 1, *groups: int, name: str | None = None) -> Actor:
    return Actor(id=user_id, group_ids=frozenset(groups), display_name=name)


def staff(user_id: int = 10) -> Actor:
    return actor(user_id, STAFF_ROLE, GUILD_ID)


def member(user_id: int = 20) -> Actor:
    return actor(user_id, MEMBER_ROLE, GUILD_ID)


def invocation(
    kind: InvocationKind,
    target: str,
    *,
    by: Actor | None = None,
    responder: FakeResponder | None = None,
    **options: Any,
) -> Invocation:
    return Invocation(
        kind=kind,
        target=target,
        actor=by,
        responder=responder or FakeResponder(),
        options=options,
    )


def settings(**overrides: Any) -> BotSettings:
    values: dict[str, Any] = {
        "token": "test-token",
        "guild_id": GUILD_ID,
        "roles": {"staff": STAFF_ROLE, "muted": MUTED_ROLE, "member": MEMBER_ROLE},
    }
    values.update(overrides)
    return BotSettings(**values)
