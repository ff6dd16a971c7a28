"""Tests for DatabasePermissionStorage against a fake driver."""
from __future__ import annotations

import json
from typing import Any

import pytest

from aumos_record_security.errors import PermissionConfigError
from aumos_record_security.permissions.models import PermissionConfig
from aumos_record_security.storage import DEFAULT_TABLE, DatabasePermissionStorage


class FakeDriver:
    """Table-per-dict driver with filter-by-equality find()."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.init_calls: list[Any] = []
        self._next_id = 0

    async def init(self, schemas: list[dict[str, Any]]) -> None:
        self.init_calls.append(schemas)

    async def find(self, table: str, query: dict[str, Any]) -> list[dict[str, Any]]:
        rows = self.tables.get(table, [])
        filters = query.get("filters") or {}
        matched = [r for r in rows if all(r.get(k) == v for k, v in filters.items())]
        limit = query.get("limit")
        return [dict(r) for r in (matched[:limit] if limit else matched)]

    async def count(self, table: str, filters: dict[str, Any]) -> int:
        return len(self.tables.get(table, []))

    async def create(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        self._next_id += 1
        row = {"id": self._next_id, **data}
        self.tables.setdefault(table, []).append(row)
        return row

    async def update(self, table: str, record_id: object, data: dict[str, Any]) -> None:
        for row in self.tables.get(table, []):
            if row["id"] == record_id:
                row.update(data)

    async def delete(self, table: str, record_id: object) -> None:
        self.tables[table] = [r for r in self.tables.get(table, []) if r["id"] != record_id]


_INITIAL: list[dict[str, Any]] = [{"object": "accounts"}, {"object": "tickets"}]


@pytest.fixture()
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture()
def storage(driver: FakeDriver) -> DatabasePermissionStorage:
    return DatabasePermissionStorage("main", lambda name: driver, initial_permissions=_INITIAL)


class TestDatabasePermissionStorage:
    def test_requires_datasource(self) -> None:
        with pytest.raises(PermissionConfigError):
            DatabasePermissionStorage(None, lambda name: FakeDriver())

    def test_default_table(self, storage: DatabasePermissionStorage) -> None:
        assert storage.table == DEFAULT_TABLE

    @pytest.mark.asyncio
    async def test_bootstraps_and_seeds(
        self, storage: DatabasePermissionStorage, driver: FakeDriver
    ) -> None:
        config = await storage.load("accounts")
        assert config is not None
        assert len(driver.init_calls) == 1
        assert driver.init_calls[0][0]["name"] == DEFAULT_TABLE
        assert len(driver.tables[DEFAULT_TABLE]) == 2

    @pytest.mark.asyncio
    async def test_bootstraps_once(
        self, storage: DatabasePermissionStorage, driver: FakeDriver
    ) -> None:
        await storage.load("accounts")
        await storage.load_all()
        assert len(driver.init_calls) == 1

    @pytest.mark.asyncio
    async def test_save_updates_existing_row(
        self, storage: DatabasePermissionStorage, driver: FakeDriver
    ) -> None:
        await storage.save(PermissionConfig(object="accounts", name="Accounts"))
        rows = driver.tables[DEFAULT_TABLE]
        assert len(rows) == 2
        stored = next(r for r in rows if r["object_name"] == "accounts")
        assert json.loads(stored["config"])["name"] == "Accounts"

    @pytest.mark.asyncio
    async def test_save_new_and_remove(
        self, storage: DatabasePermissionStorage, driver: FakeDriver
    ) -> None:
        await storage.save(PermissionConfig(object="new"))
        assert await storage.load("new") is not None
        await storage.remove("new")
        assert await storage.load("new") is None

    @pytest.mark.asyncio
    async def test_corrupt_row_skipped(
        self, storage: DatabasePermissionStorage, driver: FakeDriver
    ) -> None:
        await storage.load_all()
        driver.tables[DEFAULT_TABLE].append({"id": 99, "object_name": "bad", "config": "{"})
        assert set(await storage.load_all()) == {"accounts", "tickets"}
        assert await storage.load("bad") is None

    @pytest.mark.asyncio
    async def test_reload_replaces_rows(
        self, storage: DatabasePermissionStorage, driver: FakeDriver
    ) -> None:
        await storage.save(PermissionConfig(object="extra"))
        await storage.reload()
        assert set(await storage.load_all()) == {"accounts", "tickets"}

    @pytest.mark.asyncio
    async def test_custom_table(self, driver: FakeDriver) -> None:
        storage = DatabasePermissionStorage(
            "main", lambda name: driver, table="perms", initial_permissions=_INITIAL
        )
        await storage.load_all()
        assert "perms" in driver.tables
