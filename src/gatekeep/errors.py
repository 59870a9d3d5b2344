"""Error kinds that reach the dispatch boundary.

Handlers raise; the dispatcher converts whatever it caught into a tagged
``Failure`` with :func:`classify` and matches on the tag.
"""

from __future__ import annotations

from dataclasses import dataclass

GENERIC_ERROR_MESSAGE = "Something went wrong."
PERMISSION_DENIED_MESSAGE = "You don't have permission to use this command!"
COMMAND_NOT_FOUND_MESSAGE = "I couldn't find that command!"


class CommandError(Exception):
    """Error whose message is safe to show to the user verbatim."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(RuntimeError):
    """Configuration error."""

    pass


class ContinuationError(ValueError):
    """A continuation reference could not be built or parsed."""

    pass


class MissingActorError(RuntimeError):
    """A command arrived without a resolved actor identity."""

    pass


@dataclass(frozen=True, slots=True)
class UserFacing:
    message: str


@dataclass(frozen=True, slots=True)
class Internal:
    cause: BaseException


Failure = UserFacing | Internal


def classify(exc: BaseException) -> Failure:
    if isinstance(exc, CommandError):
        return UserFacing(exc.message)
    return Internal(exc)
