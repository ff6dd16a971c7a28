"""Dotted-path lookup and ``$current_user`` substitution helpers."""
from __future__ import annotations

from typing import Any, Mapping

from aumos_record_security.permissions.models import CURRENT_USER_PREFIX


def get_field_value(source: object, field_path: str) -> Any:
    """Resolve a dot-separated path from nested mappings.

    Returns ``None`` as soon as a segment is missing or a non-mapping is
    reached.

    Example
    -------
    >>> get_field_value({"owner": {"team": "blue"}}, "owner.team")
    'blue'
    >>> get_field_value({"owner": None}, "owner.team") is None
    True
    """
    current: object = source
    for part in field_path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def is_current_user_ref(value: object) -> bool:
    return isinstance(value, str) and value.startswith(CURRENT_USER_PREFIX)


def resolve_value(value: object, user: Mapping[str, Any] | None) -> Any:
    """Substitute a ``$current_user.<path>`` sentinel against ``user``.

    Any other value is returned unchanged.
    """
    if is_current_user_ref(value):
        path = str(value)[len(CURRENT_USER_PREFIX):]
        return get_field_value(user, path)
    return value
