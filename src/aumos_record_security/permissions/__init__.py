"""Permission model, rule compiler and guard.

Example
-------
::

    from aumos_record_security.permissions import (
        PermissionGuard,
        PermissionLoader,
        SecurityContext,
    )

    loader = PermissionLoader({"permissions": [
        {"object": "accounts", "object_permissions": {"read": ["member"]}},
    ]})
    guard = PermissionGuard(loader)
    context = SecurityContext("accounts", "read", user={"id": "u1", "roles": ["member"]})
    result = await guard.check_permission(context)
    assert result.granted
"""
from __future__ import annotations

from aumos_record_security.permissions.bitmask import (
    OBJECT_OPERATIONS,
    RECORD_OPERATIONS,
    ObjectPermission,
    RecordPermission,
)
from aumos_record_security.permissions.models import (
    CompiledPermissionRule,
    Condition,
    FieldMask,
    FieldPermission,
    ObjectPermissions,
    PermissionCheckResult,
    PermissionConfig,
    RecordRule,
    RecordRulePermissions,
    RlsException,
    RowLevelSecurity,
    SecurityContext,
)
from aumos_record_security.permissions.conditions import compile_condition
from aumos_record_security.permissions.formula import FormulaEvaluator, parse_formula
from aumos_record_security.permissions.permission_loader import (
    PermissionLoader,
    compile_permission_config,
)
from aumos_record_security.permissions.permission_guard import PermissionGuard

__all__ = [
    # Bitmasks
    "OBJECT_OPERATIONS",
    "RECORD_OPERATIONS",
    "ObjectPermission",
    "RecordPermission",
    # Model
    "CompiledPermissionRule",
    "Condition",
    "FieldMask",
    "FieldPermission",
    "ObjectPermissions",
    "PermissionCheckResult",
    "PermissionConfig",
    "RecordRule",
    "RecordRulePermissions",
    "RlsException",
    "RowLevelSecurity",
    "SecurityContext",
    # Compilation
    "FormulaEvaluator",
    "compile_condition",
    "compile_permission_config",
    "parse_formula",
    # Loader and guard
    "PermissionGuard",
    "PermissionLoader",
]
