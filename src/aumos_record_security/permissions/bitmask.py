"""Typed bit layouts for compiled permission rules.

Object-level permissions use a 6-bit layout and record rules a 3-bit
layout.  Both are :class:`enum.IntFlag` so a compiled bitmask can be
tested with a single ``&``.

Example
-------
>>> mask = RecordPermission.READ | RecordPermission.UPDATE
>>> RecordPermission.grants(mask, "update")
True
>>> RecordPermission.grants(mask, "delete")
False
"""
from __future__ import annotations

from enum import IntFlag


class _OperationFlag(IntFlag):
    """Shared helpers mapping operation names onto flag members."""

    @classmethod
    def for_operation(cls, operation: str) -> "_OperationFlag | None":
        """Return the flag for ``operation`` or ``None`` if it has no bit."""
        member = cls.__members__.get(operation.upper())
        return member

    @classmethod
    def operations(cls) -> tuple[str, ...]:
        """Operation names in bit order."""
        return tuple(name.lower() for name in cls.__members__)

    @classmethod
    def grants(cls, bitmask: int, operation: str) -> bool:
        """Return True when ``bitmask`` has the bit for ``operation`` set.

        Operations outside the layout are never granted.
        """
        flag = cls.for_operation(operation)
        if flag is None:
            return False
        return bool(bitmask & flag)


class ObjectPermission(_OperationFlag):
    """Object-level operations (``object_permissions`` block)."""

    CREATE = 1 << 0
    READ = 1 << 1
    UPDATE = 1 << 2
    DELETE = 1 << 3
    VIEW_ALL = 1 << 4
    MODIFY_ALL = 1 << 5


class RecordPermission(_OperationFlag):
    """Record-rule operations (``record_rules[].permissions``)."""

    READ = 1 << 0
    UPDATE = 1 << 1
    DELETE = 1 << 2


OBJECT_OPERATIONS: tuple[str, ...] = ObjectPermission.operations()
RECORD_OPERATIONS: tuple[str, ...] = RecordPermission.operations()
