"""Convenience API for aumos-record-security: 3-line quickstart.

Example
-------
::

    from aumos_record_security import RecordSecurity
    security = RecordSecurity([{"object": "accounts", "object_permissions": {"read": ["member"]}}])
    result = await security.check("accounts", "read", {"id": "u1", "roles": ["member"]})
    print(result.granted)

"""
from __future__ import annotations

from typing import Any


class RecordSecurity:
    """In-memory security engine for the common case.

    Wraps a memory-backed loader with a guard, trimmer and masker so a
    list of permission configs is all that is needed.

    Parameters
    ----------
    permissions:
        Permission configs (models or dicts).  ``None`` means no object
        is restricted.
    cache_ttl_ms:
        Guard cache TTL in milliseconds.

    Example
    -------
    ::

        security = RecordSecurity(permissions)
        query = await security.filter("tickets", {"id": "u1", "roles": ["agent"]})
        rows = await security.mask("tickets", rows, {"id": "u1", "roles": ["agent"]})
    """

    def __init__(
        self,
        permissions: list[Any] | None = None,
        cache_ttl_ms: float = 60000,
    ) -> None:
        from aumos_record_security.masking.field_masker import FieldMasker
        from aumos_record_security.permissions.permission_guard import PermissionGuard
        from aumos_record_security.permissions.permission_loader import PermissionLoader
        from aumos_record_security.query.trimmer import QueryTrimmer

        self._loader = PermissionLoader({"permissions": list(permissions or [])})
        self._guard = PermissionGuard(self._loader, cache_ttl_ms=cache_ttl_ms)
        self._trimmer = QueryTrimmer(self._loader)
        self._masker = FieldMasker(self._loader)

    async def check(
        self,
        object_name: str,
        operation: str,
        user: dict[str, Any] | None,
        record: dict[str, Any] | None = None,
        field: str | None = None,
    ) -> Any:
        """Check whether ``user`` may perform ``operation``.

        Returns
        -------
        PermissionCheckResult
            Result with ``.granted``, ``.reason`` and ``.rule``.
        """
        from aumos_record_security.permissions.models import SecurityContext

        context = SecurityContext(object_name, operation, user=user, record=record, field=field)
        return await self._guard.check_permission(context)

    async def filter(
        self,
        object_name: str,
        user: dict[str, Any] | None,
        query: dict[str, Any] | None = None,
        operation: str = "read",
    ) -> dict[str, Any]:
        """Return ``query`` (or a new one) with security filters injected."""
        from aumos_record_security.permissions.models import SecurityContext

        query = {} if query is None else query
        context = SecurityContext(object_name, operation, user=user)
        await self._trimmer.apply_row_level_security(object_name, query, context)
        await self._trimmer.apply_record_rules(object_name, query, context, operation)
        return query

    async def mask(
        self,
        object_name: str,
        records: list[dict[str, Any]],
        user: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        """Return copies of ``records`` with field-level security applied."""
        from aumos_record_security.permissions.models import SecurityContext

        context = SecurityContext(object_name, "read", user=user)
        return await self._masker.apply_field_level_security(object_name, records, context)

    @property
    def loader(self) -> Any:
        """The underlying PermissionLoader instance."""
        return self._loader

    @property
    def guard(self) -> Any:
        """The underlying PermissionGuard instance."""
        return self._guard

    def __repr__(self) -> str:
        return "RecordSecurity(storage=memory)"
