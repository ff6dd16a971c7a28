"""Shared bootstrap for aumos-record-security benchmarks."""
from __future__ import annotations

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).parent.parent
_SRC = _REPO_ROOT / "src"
_BENCHMARKS = _REPO_ROOT / "benchmarks"

for _path in [str(_SRC), str(_BENCHMARKS)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

from aumos_record_security.permissions.models import PermissionConfig, SecurityContext
from aumos_record_security.permissions.permission_guard import PermissionGuard
from aumos_record_security.permissions.permission_loader import (
    PermissionLoader,
    compile_permission_config,
)
from aumos_record_security.query.filters import formula_to_filter

__all__ = [
    "PermissionConfig",
    "PermissionGuard",
    "PermissionLoader",
    "SecurityContext",
    "compile_permission_config",
    "formula_to_filter",
]
