"""Pluggable permission storage backends.

Backends implement :class:`PermissionStorage`.  The loader picks one from
``SecurityConfig.storage_type``: ``memory``, ``redis``, ``database`` or
``custom``.
"""
from __future__ import annotations

from aumos_record_security.storage.base import PermissionStorage
from aumos_record_security.storage.database import (
    DEFAULT_TABLE,
    DatabasePermissionStorage,
    DatasourceResolver,
    Driver,
)
from aumos_record_security.storage.memory import MemoryPermissionStorage
from aumos_record_security.storage.redis import (
    INDEX_KEY,
    KEY_PREFIX,
    RedisClient,
    RedisClientFactory,
    RedisPermissionStorage,
)

__all__ = [
    "DEFAULT_TABLE",
    "DatabasePermissionStorage",
    "DatasourceResolver",
    "Driver",
    "INDEX_KEY",
    "KEY_PREFIX",
    "MemoryPermissionStorage",
    "PermissionStorage",
    "RedisClient",
    "RedisClientFactory",
    "RedisPermissionStorage",
]
