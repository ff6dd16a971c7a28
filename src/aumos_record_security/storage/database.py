"""Database-backed permission storage.

Works with any driver satisfying :class:`Driver`, resolved lazily by
datasource name so this module has no coupling to a specific database
package.

Schema (bootstrapped through ``driver.init`` when the driver has it)
--------------------------------------------------------------------
::

    Table: objectql_permissions (configurable)
      object_name  TEXT  primary key
      config       TEXT  JSON-serialised PermissionConfig
      updated_at   TEXT  ISO-8601 timestamp
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol

from pydantic import ValidationError

from aumos_record_security.errors import PermissionConfigError
from aumos_record_security.permissions.models import PermissionConfig
from aumos_record_security.storage.base import PermissionStorage, coerce_configs

logger = logging.getLogger(__name__)

DEFAULT_TABLE: str = "objectql_permissions"


class Driver(Protocol):
    """Record-level driver operations used by the storage."""

    async def find(self, table: str, query: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def count(self, table: str, filters: dict[str, Any]) -> int: ...

    async def create(self, table: str, data: dict[str, Any]) -> object: ...

    async def update(self, table: str, record_id: object, data: dict[str, Any]) -> object: ...

    async def delete(self, table: str, record_id: object) -> object: ...


DatasourceResolver = Callable[[str], Driver]


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _row_id(row: dict[str, Any]) -> object:
    for key in ("_id", "id", "object_name"):
        if row.get(key) is not None:
            return row[key]
    return None


class DatabasePermissionStorage(PermissionStorage):
    """Stores one row per object in a permissions table.

    Parameters
    ----------
    datasource:
        Name handed to ``resolver`` to obtain the driver.
    resolver:
        Callable returning a :class:`Driver` for a datasource name.
    table:
        Table name.  Default ``"objectql_permissions"``.
    initial_permissions:
        Configurations seeded into an empty table, and on ``reload``.

    Raises
    ------
    PermissionConfigError
        If ``datasource`` is empty.
    """

    def __init__(
        self,
        datasource: str | None,
        resolver: DatasourceResolver,
        table: str | None = None,
        initial_permissions: Iterable[PermissionConfig | dict[str, object]] | None = None,
    ) -> None:
        if not datasource:
            raise PermissionConfigError(
                "database_config.datasource is required for database permission storage"
            )
        self._datasource = datasource
        self._resolver = resolver
        self._table = table or DEFAULT_TABLE
        self._initial_permissions = coerce_configs(initial_permissions)
        self._initialized = False

    @property
    def table(self) -> str:
        return self._table

    async def _get_driver(self) -> Driver:
        driver = self._resolver(self._datasource)
        if not self._initialized:
            await self._ensure_table(driver)
            self._initialized = True
        return driver

    async def _ensure_table(self, driver: Driver) -> None:
        """Create the table when supported, then seed it if empty."""
        init = getattr(driver, "init", None)
        if callable(init):
            await init(
                [
                    {
                        "name": self._table,
                        "fields": {
                            "object_name": {"type": "text", "required": True},
                            "config": {"type": "text", "required": True},
                            "updated_at": {"type": "text"},
                        },
                    }
                ]
            )
        try:
            count = await driver.count(self._table, {})
            if count == 0 and self._initial_permissions:
                for config in self._initial_permissions:
                    await driver.create(self._table, self._row(config))
        except Exception:  # noqa: BLE001
            # Seeding is best-effort; some drivers cannot count a fresh table.
            logger.warning("Could not seed permissions table %s", self._table, exc_info=True)

    @staticmethod
    def _row(config: PermissionConfig) -> dict[str, Any]:
        return {
            "object_name": config.object,
            "config": config.model_dump_json(),
            "updated_at": _now(),
        }

    async def _find_row(self, driver: Driver, object_name: str) -> dict[str, Any] | None:
        rows = await driver.find(
            self._table,
            {"filters": {"object_name": object_name}, "limit": 1},
        )
        return rows[0] if rows else None

    async def load(self, object_name: str) -> PermissionConfig | None:
        driver = await self._get_driver()
        row = await self._find_row(driver, object_name)
        if row is None:
            return None
        try:
            return PermissionConfig.model_validate_json(row["config"])
        except (ValidationError, KeyError, TypeError):
            logger.warning("Corrupt permission row for %s in %s", object_name, self._table)
            return None

    async def load_all(self) -> dict[str, PermissionConfig]:
        driver = await self._get_driver()
        result: dict[str, PermissionConfig] = {}
        for row in await driver.find(self._table, {}):
            try:
                config = PermissionConfig.model_validate_json(row["config"])
            except (ValidationError, KeyError, TypeError):
                logger.warning(
                    "Skipping corrupt permission row %r in %s", row.get("object_name"), self._table
                )
                continue
            result[str(row.get("object_name") or config.object)] = config
        return result

    async def reload(self) -> None:
        """Delete every row and re-seed from the initial permissions."""
        driver = await self._get_driver()
        try:
            for row in list(await driver.find(self._table, {})):
                row_id = _row_id(row)
                if row_id is not None:
                    await driver.delete(self._table, row_id)
        except Exception:  # noqa: BLE001
            logger.warning("Best-effort cleanup of %s failed", self._table, exc_info=True)
        for config in self._initial_permissions:
            await driver.create(self._table, self._row(config))

    async def save(self, config: PermissionConfig) -> None:
        driver = await self._get_driver()
        row = await self._find_row(driver, config.object)
        if row is None:
            await driver.create(self._table, self._row(config))
            return
        await driver.update(
            self._table,
            _row_id(row),
            {"config": config.model_dump_json(), "updated_at": _now()},
        )

    async def remove(self, object_name: str) -> None:
        driver = await self._get_driver()
        row = await self._find_row(driver, object_name)
        if row is not None:
            await driver.delete(self._table, _row_id(row))
