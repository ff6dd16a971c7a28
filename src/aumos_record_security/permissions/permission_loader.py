"""Permission loader and rule compiler.

PermissionLoader fetches :class:`PermissionConfig` objects from the
configured storage backend and, when pre-compilation is enabled,
converts each into an ordered list of :class:`CompiledPermissionRule`:

- one rule for the ``object_permissions`` block (6-bit
  :class:`ObjectPermission` mask plus a role lookup), and
- one rule per ``record_rules`` entry (3-bit :class:`RecordPermission`
  mask plus a compiled condition evaluator),

sorted by priority, highest first.  A stable sort keeps declaration
order for equal priorities.

Example
-------
::

    loader = PermissionLoader(SecurityConfig(permissions=[...]))
    config = await loader.load("accounts")
    rules = loader.get_compiled_rules("accounts")
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aumos_record_security.errors import PermissionConfigError
from aumos_record_security.permissions.bitmask import ObjectPermission, RecordPermission
from aumos_record_security.permissions.conditions import compile_condition
from aumos_record_security.permissions.models import CompiledPermissionRule, PermissionConfig
from aumos_record_security.storage import (
    DatabasePermissionStorage,
    DatasourceResolver,
    MemoryPermissionStorage,
    PermissionStorage,
    RedisClientFactory,
    RedisPermissionStorage,
)

if TYPE_CHECKING:
    from aumos_record_security.plugin.config_loader import SecurityConfig

logger = logging.getLogger(__name__)

OBJECT_RULE_NAME: str = "object_permissions"


def compile_permission_config(config: PermissionConfig) -> list[CompiledPermissionRule]:
    """Compile one object's configuration into priority-ordered rules.

    Pure and idempotent: the same input always yields an equivalent list.
    """
    compiled: list[CompiledPermissionRule] = []

    if config.object_permissions is not None:
        bitmask = ObjectPermission(0)
        role_lookup: dict[str, frozenset[str]] = {}
        for operation in ObjectPermission.operations():
            roles = config.object_permissions.roles_for(operation)
            if roles is not None:
                bitmask |= ObjectPermission.for_operation(operation)  # type: ignore[operator]
                role_lookup[operation] = frozenset(roles)
        compiled.append(
            CompiledPermissionRule(
                rule_name=OBJECT_RULE_NAME,
                permission_bitmask=int(bitmask),
                role_lookup=role_lookup,
                priority=0,
                kind="object",
            )
        )

    for rule in config.record_rules or []:
        bitmask = RecordPermission(0)
        for operation in RecordPermission.operations():
            if rule.permissions.allows(operation):
                bitmask |= RecordPermission.for_operation(operation)  # type: ignore[operator]
        compiled.append(
            CompiledPermissionRule(
                rule_name=rule.name,
                permission_bitmask=int(bitmask),
                evaluator=compile_condition(rule.condition),
                priority=rule.priority,
                kind="record",
            )
        )

    compiled.sort(key=lambda r: r.priority, reverse=True)
    return compiled


class PermissionLoader:
    """Loads permission configs from storage and keeps compiled rules.

    Parameters
    ----------
    config:
        Engine configuration (model or raw mapping).  Only the storage
        options and ``precompile_rules`` are read here.
    redis_client_factory:
        Required when ``storage_type == "redis"``.
    datasource_resolver:
        Required when ``storage_type == "database"``.

    Raises
    ------
    PermissionConfigError
        If the storage backend cannot be built from ``config``.
    """

    def __init__(
        self,
        config: "SecurityConfig | dict[str, Any] | None" = None,
        *,
        redis_client_factory: RedisClientFactory | None = None,
        datasource_resolver: DatasourceResolver | None = None,
    ) -> None:
        from aumos_record_security.plugin.config_loader import coerce_security_config

        self._config = coerce_security_config(config)
        self._storage = self._initialize_storage(
            self._config, redis_client_factory, datasource_resolver
        )
        self._compiled_rules: dict[str, list[CompiledPermissionRule]] = {}
        self._precompile_enabled = self._config.precompile_rules

    # ------------------------------------------------------------------
    # Storage selection
    # ------------------------------------------------------------------

    @staticmethod
    def _initialize_storage(
        config: "SecurityConfig",
        redis_client_factory: RedisClientFactory | None,
        datasource_resolver: DatasourceResolver | None,
    ) -> PermissionStorage:
        match config.storage_type:
            case "memory":
                return MemoryPermissionStorage(config.permissions)
            case "custom":
                if config.storage is None:
                    raise PermissionConfigError(
                        "Custom storage implementation required when storage_type is 'custom'"
                    )
                return config.storage
            case "redis":
                if redis_client_factory is None:
                    raise PermissionConfigError(
                        "A redis_client_factory is required when storage_type is 'redis'"
                    )
                return RedisPermissionStorage(
                    config.redis_url, redis_client_factory, config.permissions
                )
            case "database":
                if datasource_resolver is None:
                    raise PermissionConfigError(
                        "A datasource_resolver is required when storage_type is 'database'"
                    )
                database_config = config.database_config
                return DatabasePermissionStorage(
                    database_config.datasource if database_config else None,
                    datasource_resolver,
                    table=database_config.table if database_config else None,
                    initial_permissions=config.permissions,
                )
            case _:
                raise PermissionConfigError(f"Unknown storage type: {config.storage_type}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def storage(self) -> PermissionStorage:
        return self._storage

    @property
    def precompile_enabled(self) -> bool:
        return self._precompile_enabled

    async def load(self, object_name: str) -> PermissionConfig | None:
        """Fetch the configuration for ``object_name`` from storage.

        Recompiles that object's rules when pre-compilation is enabled.
        """
        config = await self._storage.load(object_name)
        if config is not None and self._precompile_enabled:
            self._precompile(object_name, config)
        return config

    async def load_all(self) -> dict[str, PermissionConfig]:
        """Fetch every configuration, compiling each when enabled."""
        all_configs = await self._storage.load_all()
        if self._precompile_enabled:
            for object_name, config in all_configs.items():
                self._precompile(object_name, config)
        logger.info("Loaded %d permission configs", len(all_configs))
        return all_configs

    def get_compiled_rules(self, object_name: str) -> list[CompiledPermissionRule]:
        """Return the compiled rules for ``object_name`` (empty if none)."""
        return list(self._compiled_rules.get(object_name, ()))

    async def reload(self) -> None:
        """Reload storage, drop every compiled rule and recompile."""
        await self._storage.reload()
        compiled: dict[str, list[CompiledPermissionRule]] = {}
        if self._precompile_enabled:
            all_configs = await self._storage.load_all()
            compiled = {name: compile_permission_config(c) for name, c in all_configs.items()}
        # Readers see the old rule set until the new one is complete.
        self._compiled_rules = compiled
        logger.info("Permission rules reloaded (%d objects compiled)", len(self._compiled_rules))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _precompile(self, object_name: str, config: PermissionConfig) -> None:
        # Built into a fresh list and swapped in with a single assignment.
        self._compiled_rules[object_name] = compile_permission_config(config)
        logger.debug(
            "Compiled %d rules for %s", len(self._compiled_rules[object_name]), object_name
        )
