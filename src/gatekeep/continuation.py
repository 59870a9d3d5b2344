"""Stateless continuation references.

A continuation is the ``custom_id`` of a button or select menu. It names a
listener and carries its argument values, so activating the component later
resumes the listener without any server-side session:

    poll#vote:42

Fields are joined with ``:``. ``%`` and ``:`` inside a field are
percent-escaped, so any string value round-trips. Only the uppercase
escapes are accepted, so every reference has exactly one spelling and
revoking it revokes every way of writing it. Values come back as
strings; converting them is the listener's job (see :func:`coerce_int`).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .errors import ContinuationError

# Discord custom_id limit
MAX_REFERENCE_LENGTH = 100

FIELD_DELIMITER = ":"
_ESCAPE = "%"


def _escape(field: str) -> str:
    return field.replace(_ESCAPE, "%25").replace(FIELD_DELIMITER, "%3A")


def _unescape(field: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(field):
        char = field[i]
        if char != _ESCAPE:
            out.append(char)
            i += 1
            continue
        code = field[i + 1 : i + 3]
        if code == "25":
            out.append(_ESCAPE)
        elif code == "3A":
            out.append(FIELD_DELIMITER)
        else:
            raise ContinuationError(f"Malformed escape in reference field '{field}'")
        i += 3
    return "".join(out)


def encode(
    listener_name: str,
    arg_names: Sequence[str],
    arg_values: Sequence[Any],
) -> str:
    """Build a continuation reference.

    Raises:
        ContinuationError: on arity mismatch, an empty listener name, or when
            the encoded reference would exceed MAX_REFERENCE_LENGTH.
    """
    if not listener_name:
        raise ContinuationError("Listener name must not be empty")
    if len(arg_names) != len(arg_values):
        raise ContinuationError(
            f"Listener '{listener_name}' expects {len(arg_names)} argument(s) "
            f"({', '.join(arg_names)}), got {len(arg_values)}"
        )

    fields = [_escape(listener_name), *(_escape(str(value)) for value in arg_values)]
    reference = FIELD_DELIMITER.join(fields)
    if len(reference) > MAX_REFERENCE_LENGTH:
        raise ContinuationError(
            f"Reference for '{listener_name}' is {len(reference)} characters, "
            f"limit is {MAX_REFERENCE_LENGTH}"
        )
    return reference


def split_reference(reference: str) -> tuple[str, tuple[str, ...]]:
    """Split a reference into its listener name and raw argument values."""
    if not reference or len(reference) > MAX_REFERENCE_LENGTH:
        raise ContinuationError("Reference is empty or too long")

    name, *values = reference.split(FIELD_DELIMITER)
    listener_name = _unescape(name)
    if not listener_name:
        raise ContinuationError("Reference has no listener name")
    return listener_name, tuple(_unescape(value) for value in values)


def decode(reference: str, arg_names: Sequence[str]) -> tuple[str, dict[str, str]]:
    """Parse a reference and map its values onto ``arg_names``.

    Raises:
        ContinuationError: if the reference is malformed or carries a
            different number of values than ``arg_names``.
    """
    listener_name, values = split_reference(reference)
    if len(values) != len(arg_names):
        raise ContinuationError(
            f"Reference for '{listener_name}' carries {len(values)} value(s), "
            f"expected {len(arg_names)}"
        )
    return listener_name, dict(zip(arg_names, values))


def coerce_int(value: str | None) -> int | None:
    """Parse an id argument, returning None when it is not an integer."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
