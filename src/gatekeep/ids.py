"""Command name and listener label validation.

Command names are sent to Discord as application command names and
listener labels end up inside every continuation reference, so both are
kept short and free of the reference delimiter.
"""

from __future__ import annotations

import re

# Discord application command names: lowercase, 1-32 chars
COMMAND_NAME_PATTERN = re.compile(r"[a-z0-9_-]{1,32}")

# Listener labels are embedded in custom ids, keep them tight
LISTENER_LABEL_PATTERN = re.compile(r"[a-z0-9_]{1,16}")


def is_valid_command_name(name: str) -> bool:
    return COMMAND_NAME_PATTERN.fullmatch(name) is not None


def validate_command_name(name: str) -> tuple[bool, str | None]:
    """Validate an entrypoint name.

    Returns:
        Tuple of (is_valid, error_message).
        If valid, error_message is None.
    """
    if not is_valid_command_name(name):
        return False, (
            f"Invalid command name {name!r}: "
            f"must match pattern {COMMAND_NAME_PATTERN.pattern}"
        )
    return True, None


def validate_listener_label(label: str, *, context: str = "") -> tuple[bool, str | None]:
    """Validate the short label a listener is registered under."""
    ctx = f" ({context})" if context else ""
    if LISTENER_LABEL_PATTERN.fullmatch(label) is None:
        return False, (
            f"Invalid listener label {label!r}{ctx}: "
            f"must match pattern {LISTENER_LABEL_PATTERN.pattern}"
        )
    return True, None
