"""aumos-record-security: declarative object, field and row-level security.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import aumos_record_security as sec
>>> sec.__version__
'0.1.0'
>>> sec.mask_value("4111111111111234", "****-****-****-{last4}")
'****-****-****-1234'
"""
from __future__ import annotations

__version__: str = "0.1.0"

from aumos_record_security.convenience import RecordSecurity

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
from aumos_record_security.errors import (
    FilterTranslationError,
    FormulaSyntaxError,
    PermissionConfigError,
    PermissionDeniedError,
    SecurityError,
)

# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------
from aumos_record_security.permissions.models import (
    CompiledPermissionRule,
    PermissionCheckResult,
    PermissionConfig,
    SecurityContext,
)
from aumos_record_security.permissions.bitmask import ObjectPermission, RecordPermission
from aumos_record_security.permissions.conditions import compile_condition
from aumos_record_security.permissions.formula import FormulaEvaluator
from aumos_record_security.permissions.permission_loader import PermissionLoader
from aumos_record_security.permissions.permission_guard import PermissionGuard

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
from aumos_record_security.storage import (
    DatabasePermissionStorage,
    MemoryPermissionStorage,
    PermissionStorage,
    RedisPermissionStorage,
)

# ---------------------------------------------------------------------------
# Query and masking
# ---------------------------------------------------------------------------
from aumos_record_security.query.filters import (
    IMPOSSIBLE_FILTER,
    condition_to_filter,
    formula_to_filter,
)
from aumos_record_security.query.trimmer import QueryTrimmer
from aumos_record_security.masking.field_masker import FieldMasker
from aumos_record_security.masking.mask_formats import mask_value

# ---------------------------------------------------------------------------
# Audit and plugin
# ---------------------------------------------------------------------------
from aumos_record_security.audit.decision_log import AuditEntry, DecisionLog
from aumos_record_security.plugin.config_loader import ConfigLoader, SecurityConfig
from aumos_record_security.plugin.hooks import SecurityHooks
from aumos_record_security.plugin.security_plugin import SecurityComponents, SecurityPlugin

__all__ = [
    "__version__",
    "RecordSecurity",
    # Errors
    "FilterTranslationError",
    "FormulaSyntaxError",
    "PermissionConfigError",
    "PermissionDeniedError",
    "SecurityError",
    # Permissions
    "CompiledPermissionRule",
    "FormulaEvaluator",
    "ObjectPermission",
    "PermissionCheckResult",
    "PermissionConfig",
    "PermissionGuard",
    "PermissionLoader",
    "RecordPermission",
    "SecurityContext",
    "compile_condition",
    # Storage
    "DatabasePermissionStorage",
    "MemoryPermissionStorage",
    "PermissionStorage",
    "RedisPermissionStorage",
    # Query and masking
    "FieldMasker",
    "IMPOSSIBLE_FILTER",
    "QueryTrimmer",
    "condition_to_filter",
    "formula_to_filter",
    "mask_value",
    # Audit and plugin
    "AuditEntry",
    "ConfigLoader",
    "DecisionLog",
    "SecurityComponents",
    "SecurityConfig",
    "SecurityHooks",
    "SecurityPlugin",
]
