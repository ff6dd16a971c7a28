"""In-process permission storage backed by a dict."""
from __future__ import annotations

from typing import Iterable

from aumos_record_security.permissions.models import PermissionConfig
from aumos_record_security.storage.base import PermissionStorage, coerce_configs


class MemoryPermissionStorage(PermissionStorage):
    """Holds permission configurations in memory, keyed by object name.

    Parameters
    ----------
    configs:
        Initial configurations (models or raw dicts).  A later entry for
        the same object replaces an earlier one.
    """

    def __init__(
        self,
        configs: Iterable[PermissionConfig | dict[str, object]] | None = None,
    ) -> None:
        self._permissions: dict[str, PermissionConfig] = {
            config.object: config for config in coerce_configs(configs)
        }

    async def load(self, object_name: str) -> PermissionConfig | None:
        return self._permissions.get(object_name)

    async def load_all(self) -> dict[str, PermissionConfig]:
        return dict(self._permissions)

    async def reload(self) -> None:
        # Memory is its own source of truth.
        return None

    async def save(self, config: PermissionConfig) -> None:
        self._permissions[config.object] = config

    async def remove(self, object_name: str) -> None:
        self._permissions.pop(object_name, None)
