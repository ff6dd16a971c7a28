"""Permission storage contract.

Backends supply :class:`PermissionConfig` objects by object name.  The
three read methods are required; ``save`` and ``remove`` are optional
and only implemented by runtime-managed backends.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from aumos_record_security.permissions.models import PermissionConfig


class PermissionStorage(ABC):
    """Abstract base for permission configuration backends."""

    @abstractmethod
    async def load(self, object_name: str) -> PermissionConfig | None:
        """Return the configuration for ``object_name`` or ``None``."""

    @abstractmethod
    async def load_all(self) -> dict[str, PermissionConfig]:
        """Return every configuration keyed by object name."""

    @abstractmethod
    async def reload(self) -> None:
        """Refresh the backend from its source of truth."""

    async def save(self, config: PermissionConfig) -> None:
        """Store or replace a configuration."""
        raise NotImplementedError(f"{type(self).__name__} does not support save()")

    async def remove(self, object_name: str) -> None:
        """Delete a configuration."""
        raise NotImplementedError(f"{type(self).__name__} does not support remove()")


def coerce_configs(
    configs: Iterable[PermissionConfig | dict[str, object]] | None,
) -> list[PermissionConfig]:
    """Validate raw dicts into :class:`PermissionConfig` instances."""
    return [
        c if isinstance(c, PermissionConfig) else PermissionConfig.model_validate(c)
        for c in configs or []
    ]
