"""Field-level security for result sets.

FieldMasker post-processes records after they are fetched:

1. fields listed in ``field_permissions`` are removed when none of the
   user's roles may perform the operation on them;
2. on ``read`` only, surviving fields listed in ``field_masking`` are
   replaced by a masked value unless a role is in ``visible_to``.

Fields absent from ``field_permissions`` are left alone.  Anonymous
callers lose every field mentioned in either section.  Input records are
never mutated.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from aumos_record_security.masking.mask_formats import mask_value
from aumos_record_security.permissions.models import PermissionConfig, SecurityContext
from aumos_record_security.permissions.permission_loader import PermissionLoader

logger = logging.getLogger(__name__)


def _has_any(roles: Iterable[str], allowed: Iterable[str]) -> bool:
    allowed_set = set(allowed)
    return any(role in allowed_set for role in roles)


class FieldMasker:
    """Removes and masks fields according to an object's configuration.

    Parameters
    ----------
    loader:
        The :class:`PermissionLoader` supplying configurations.
    """

    def __init__(self, loader: PermissionLoader) -> None:
        self._loader = loader

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply_field_level_security(
        self,
        object_name: str,
        records: list[Mapping[str, Any]],
        context: SecurityContext,
        operation: str = "read",
    ) -> list[dict[str, Any]]:
        """Return copies of ``records`` with unauthorized fields removed or masked.

        Parameters
        ----------
        object_name:
            Object the records belong to.
        records:
            Records as returned by the data layer.
        context:
            Security context of the caller.
        operation:
            ``"read"`` (default) or ``"update"``.  Masking only applies
            to reads.

        Returns
        -------
        list[dict[str, Any]]
            New record dicts, in the same order.
        """
        config = await self._loader.load(object_name)
        if config is None:
            return [dict(record) for record in records]

        if not context.user:
            restricted = set(config.field_permissions or {}) | set(config.field_masking or {})
            return [
                {k: v for k, v in record.items() if k not in restricted} for record in records
            ]

        roles = context.roles
        return [self._process_record(record, config, roles, operation) for record in records]

    async def apply_to_record(
        self,
        object_name: str,
        record: Mapping[str, Any],
        context: SecurityContext,
        operation: str = "read",
    ) -> dict[str, Any]:
        """Single-record form of :meth:`apply_field_level_security`."""
        results = await self.apply_field_level_security(object_name, [record], context, operation)
        return results[0]

    async def get_accessible_fields(
        self, object_name: str, roles: list[str], operation: str = "read"
    ) -> list[str]:
        """Return the configured fields ``roles`` may access.

        Unconfigured objects and objects without ``field_permissions``
        return an empty list: every field is accessible, none is listed.
        """
        config = await self._loader.load(object_name)
        if config is None or not config.field_permissions:
            return []
        accessible: list[str] = []
        for field_name, permission in config.field_permissions.items():
            allowed = permission.roles_for(operation)
            if allowed is not None and _has_any(roles, allowed):
                accessible.append(field_name)
        return accessible

    async def can_access_field(
        self, object_name: str, field: str, roles: list[str], operation: str = "read"
    ) -> bool:
        config = await self._loader.load(object_name)
        if config is None or not config.field_permissions:
            return True
        permission = config.field_permissions.get(field)
        if permission is None:
            return True
        allowed = permission.roles_for(operation)
        if allowed is None:
            return False
        return _has_any(roles, allowed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _process_record(
        record: Mapping[str, Any],
        config: PermissionConfig,
        roles: list[str],
        operation: str,
    ) -> dict[str, Any]:
        processed = dict(record)

        for field_name, permission in (config.field_permissions or {}).items():
            allowed = permission.roles_for(operation)
            if allowed is not None and not _has_any(roles, allowed):
                processed.pop(field_name, None)

        if operation == "read":
            for field_name, mask in (config.field_masking or {}).items():
                if field_name not in processed:
                    continue
                if not _has_any(roles, mask.visible_to):
                    processed[field_name] = mask_value(processed[field_name], mask.mask_format)

        return processed
