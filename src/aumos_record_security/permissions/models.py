"""Permission configuration schema and runtime value types.

``PermissionConfig`` and its parts are Pydantic v2 models so they can be
validated from YAML, JSON (redis / database backends) or plain dicts.
Unknown keys are allowed to support future schema additions.

Conditions stay plain mappings tagged by ``type`` (``simple``,
``complex``, ``formula``, ``lookup``); a missing ``type`` means
``simple`` and ``None`` means "always true".

Example
-------
>>> config = PermissionConfig.model_validate({
...     "object": "accounts",
...     "object_permissions": {"read": ["member", "admin"], "create": ["admin"]},
... })
>>> config.object_permissions.roles_for("read")
['member', 'admin']
>>> config.object_permissions.roles_for("delete") is None
True
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping

from pydantic import BaseModel, Field

from aumos_record_security.permissions.bitmask import OBJECT_OPERATIONS, RECORD_OPERATIONS

Condition = dict[str, Any]
"""A declarative condition mapping (see module docstring)."""

ConditionEvaluator = Callable[[Mapping[str, Any]], bool]
"""Compiled condition: takes ``{"record": ..., "user": ...}`` and returns a bool."""

CURRENT_USER_PREFIX: str = "$current_user."

FIELD_OPERATIONS: tuple[str, ...] = ("read", "update")


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------


class ObjectPermissions(BaseModel):
    """Role allow-lists per object-level operation."""

    model_config = {"extra": "allow"}

    create: list[str] | None = None
    read: list[str] | None = None
    update: list[str] | None = None
    delete: list[str] | None = None
    view_all: list[str] | None = None
    modify_all: list[str] | None = None

    def roles_for(self, operation: str) -> list[str] | None:
        """Return the roles allowed to perform ``operation``, or ``None``."""
        if operation not in OBJECT_OPERATIONS:
            return None
        return getattr(self, operation)


class FieldPermission(BaseModel):
    """Role allow-lists for reading and updating a single field."""

    model_config = {"extra": "allow"}

    read: list[str] | None = None
    update: list[str] | None = None

    def roles_for(self, operation: str) -> list[str] | None:
        if operation not in FIELD_OPERATIONS:
            return None
        return getattr(self, operation)


class FieldMask(BaseModel):
    """Masking rule for a field: who sees it in clear, and the mask pattern."""

    model_config = {"extra": "allow"}

    mask_format: str = Field(default="****")
    visible_to: list[str] = Field(default_factory=list)


class RecordRulePermissions(BaseModel):
    model_config = {"extra": "allow"}

    read: bool = False
    update: bool = False
    delete: bool = False

    def allows(self, operation: str) -> bool:
        if operation not in RECORD_OPERATIONS:
            return False
        return bool(getattr(self, operation))


class RecordRule(BaseModel):
    """A named record-level rule: a condition plus what it grants."""

    model_config = {"extra": "allow"}

    name: str
    condition: Condition | None = None
    permissions: RecordRulePermissions = Field(default_factory=RecordRulePermissions)
    priority: int = 0


class RlsException(BaseModel):
    """Per-role override of the row-level-security default rule."""

    model_config = {"extra": "allow"}

    role: str
    bypass: bool = False
    condition: Condition | None = None


class RowLevelSecurity(BaseModel):
    model_config = {"extra": "allow"}

    enabled: bool = False
    default_rule: Condition | None = None
    exceptions: list[RlsException] = Field(default_factory=list)


class PermissionConfig(BaseModel):
    """All security policy for one object (record type).

    ``object`` is the unique key.  Every other section is optional and its
    absence has a distinct meaning for the guard, trimmer and masker.
    """

    model_config = {"extra": "allow"}

    object: str
    name: str | None = None
    description: str | None = None
    object_permissions: ObjectPermissions | None = None
    field_permissions: dict[str, FieldPermission] | None = None
    field_masking: dict[str, FieldMask] | None = None
    record_rules: list[RecordRule] | None = None
    row_level_security: RowLevelSecurity | None = None


# ---------------------------------------------------------------------------
# Runtime value types
# ---------------------------------------------------------------------------


@dataclass
class SecurityContext:
    """Per-request bundle of acting user, target object and operation.

    Attributes
    ----------
    object_name:
        The object (record type) being accessed.
    operation:
        The operation being performed, e.g. ``"read"`` or ``"update"``.
    user:
        Mapping with at least ``id`` and optionally ``roles``; ``None``
        for anonymous requests.
    record_id:
        Identifier of the record for record-level checks.
    record:
        Record data used to evaluate record rules.
    field:
        Field name for field-level checks.
    """

    object_name: str
    operation: str
    user: dict[str, Any] | None = None
    record_id: str | int | None = None
    record: dict[str, Any] | None = None
    field: str | None = None

    @property
    def roles(self) -> list[str]:
        """The acting user's roles (empty when anonymous)."""
        if not self.user:
            return []
        return list(self.user.get("roles") or [])

    @property
    def user_id(self) -> str | None:
        if not self.user:
            return None
        user_id = self.user.get("id")
        return None if user_id is None else str(user_id)

    def evolve(self, **changes: Any) -> "SecurityContext":
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class PermissionCheckResult:
    """Immutable result of a permission check.

    Attributes
    ----------
    granted:
        Whether the operation is permitted.
    reason:
        Human-readable explanation of the decision.
    rule:
        Name of the record rule that granted access, if any.
    """

    granted: bool
    reason: str | None = None
    rule: str | None = None

    def __bool__(self) -> bool:
        """Return True if the operation is granted."""
        return self.granted


@dataclass(frozen=True)
class CompiledPermissionRule:
    """Pre-compiled form of one permission block, never persisted.

    Attributes
    ----------
    rule_name:
        ``"object_permissions"`` or the record rule's name.
    permission_bitmask:
        :class:`ObjectPermission` bits for the object block,
        :class:`RecordPermission` bits for record rules.
    role_lookup:
        Operation name to allowed role set.
    evaluator:
        Compiled record-rule condition; ``None`` for the object block.
    priority:
        Higher values are evaluated first.
    kind:
        ``"object"`` or ``"record"``.
    """

    rule_name: str
    permission_bitmask: int
    role_lookup: Mapping[str, frozenset[str]] = field(default_factory=dict)
    evaluator: ConditionEvaluator | None = None
    priority: int = 0
    kind: Literal["object", "record"] = "record"
