"""Audit trail of permission decisions.

Provides a bounded in-memory decision log with an optional JSONL mirror.
"""
from __future__ import annotations

from aumos_record_security.audit.decision_log import DEFAULT_CAPACITY, AuditEntry, DecisionLog

__all__ = [
    "DEFAULT_CAPACITY",
    "AuditEntry",
    "DecisionLog",
]
