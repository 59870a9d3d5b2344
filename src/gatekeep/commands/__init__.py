"""Built-in commands shipped with the bot."""

from __future__ import annotations

from ..entrypoint import Entrypoint
from ..scheduler import MemberGateway
from ..settings import BotSettings
from ..store import Store
from .mute import build_mute
from .poll import build_poll
from .remind import build_remind

__all__ = ["build_entrypoints", "build_mute", "build_poll", "build_remind"]


def build_entrypoints(
    settings: BotSettings,
    store: Store,
    members: MemberGateway,
) -> list[Entrypoint]:
    """Declare every built-in entrypoint, ready for registration."""
    return [
        build_remind(settings, store),
        build_mute(settings, store, members),
        build_poll(settings, store),
    ]
