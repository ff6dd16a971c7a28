"""Permission guard: object, field and record-level checks with a TTL cache.

Checks run in a fixed order and the first step that concludes wins:

1. cached result (if caching is enabled and the entry has not expired)
2. no configuration for the object  -> grant (not cached)
3. no acting user                   -> deny
4. field-level check, or object-level check
5. record rules (compiled, priority order)
6. row-level security bypass
7. default grant

Field and object-level checks are strict allow-lists: once an object or
field is configured, an operation with no listed roles is denied.

Example
-------
::

    guard = PermissionGuard(loader)
    result = await guard.check_object_permission(context, "read")
    if not result:
        print(result.reason)
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from aumos_record_security.permissions.bitmask import RecordPermission
from aumos_record_security.permissions.models import (
    ObjectPermissions,
    PermissionCheckResult,
    PermissionConfig,
    SecurityContext,
)
from aumos_record_security.permissions.permission_loader import PermissionLoader

logger = logging.getLogger(__name__)

_GRANTED = PermissionCheckResult(granted=True)


class PermissionGuard:
    """Evaluates permission checks against the loader's configuration.

    Parameters
    ----------
    loader:
        The :class:`PermissionLoader` supplying configs and compiled rules.
    cache_enabled:
        Cache every computed decision.  Default ``True``.
    cache_ttl_ms:
        How long a cached decision stays valid, in milliseconds.
    clock:
        Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        loader: PermissionLoader,
        cache_enabled: bool = True,
        cache_ttl_ms: float = 60000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if cache_ttl_ms <= 0:
            raise ValueError(f"cache_ttl_ms must be positive, got {cache_ttl_ms}")
        self._loader = loader
        self._cache_enabled = cache_enabled
        self._cache_ttl = cache_ttl_ms / 1000.0
        self._clock = clock
        self._cache: dict[str, tuple[PermissionCheckResult, float]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check_permission(self, context: SecurityContext) -> PermissionCheckResult:
        """Return the decision for ``context``.

        Never raises for evaluation problems; a record rule whose
        condition fails to evaluate simply does not match.
        """
        if self._cache_enabled:
            cached = self._get_cached(context)
            if cached is not None:
                return cached

        config = await self._loader.load(context.object_name)
        if config is None:
            return PermissionCheckResult(
                granted=True, reason="No permission configuration found"
            )

        result = self._evaluate(context, config)
        logger.debug(
            "Permission %s for %s on %s: %s",
            "granted" if result.granted else "denied",
            context.operation,
            context.object_name,
            result.reason or result.rule,
        )

        if self._cache_enabled:
            self._cache[self._cache_key(context)] = (result, self._clock())
        return result

    async def check_object_permission(
        self, context: SecurityContext, operation: str
    ) -> PermissionCheckResult:
        """Check ``operation`` on the context's object."""
        return await self.check_permission(context.evolve(operation=operation))

    async def check_field_permission(
        self, context: SecurityContext, field: str, operation: str
    ) -> PermissionCheckResult:
        """Check ``operation`` (``read`` or ``update``) on a single field."""
        return await self.check_permission(context.evolve(field=field, operation=operation))

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    # Evaluation steps
    # ------------------------------------------------------------------

    def _evaluate(
        self, context: SecurityContext, config: PermissionConfig
    ) -> PermissionCheckResult:
        if not context.user:
            return PermissionCheckResult(granted=False, reason="No user context provided")

        roles = context.roles

        if context.field and config.field_permissions:
            return self._check_field_level(context.field, context.operation, roles, config)

        if config.object_permissions is not None:
            object_result = self._check_object_level(
                context.operation, roles, config.object_permissions
            )
            if not object_result.granted:
                return object_result

        if context.record and config.record_rules:
            return self._check_record_level(context)

        rls = config.row_level_security
        if rls is not None and rls.enabled:
            for exception in rls.exceptions:
                if exception.bypass and exception.role in roles:
                    return PermissionCheckResult(
                        granted=True, reason=f"Role {exception.role} bypasses RLS"
                    )
            # Row filtering is the query trimmer's job.
            return PermissionCheckResult(
                granted=True, reason="Row-level security applied at query time"
            )

        return PermissionCheckResult(granted=True, reason="No restrictions found")

    @staticmethod
    def _check_object_level(
        operation: str, roles: list[str], object_permissions: ObjectPermissions
    ) -> PermissionCheckResult:
        allowed = object_permissions.roles_for(operation)
        if allowed is None:
            return PermissionCheckResult(
                granted=False, reason=f"No roles configured for operation: {operation}"
            )
        if not any(role in allowed for role in roles):
            return PermissionCheckResult(
                granted=False,
                reason=f"User roles [{', '.join(roles)}] not authorized for operation: {operation}",
            )
        return _GRANTED

    @staticmethod
    def _check_field_level(
        field: str, operation: str, roles: list[str], config: PermissionConfig
    ) -> PermissionCheckResult:
        field_permission = (config.field_permissions or {}).get(field)
        if field_permission is None:
            return _GRANTED
        allowed = field_permission.roles_for(operation)
        if allowed is None:
            return PermissionCheckResult(
                granted=False,
                reason=f"No roles configured for field {field} operation: {operation}",
            )
        if not any(role in allowed for role in roles):
            return PermissionCheckResult(
                granted=False,
                reason=f"User roles not authorized to {operation} field: {field}",
            )
        return _GRANTED

    def _check_record_level(self, context: SecurityContext) -> PermissionCheckResult:
        evaluation_context = {"record": context.record, "user": context.user}
        # Without pre-compilation there are no evaluators and nothing can match.
        for rule in self._loader.get_compiled_rules(context.object_name):
            if rule.evaluator is None:
                continue
            if not rule.evaluator(evaluation_context):
                continue
            if RecordPermission.grants(rule.permission_bitmask, context.operation):
                return PermissionCheckResult(granted=True, rule=rule.rule_name)
        return PermissionCheckResult(granted=False, reason="No record rules matched")

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    @staticmethod
    def _cache_key(context: SecurityContext) -> str:
        return ":".join(
            [
                context.user_id or "anonymous",
                context.object_name,
                context.operation,
                "" if context.record_id is None else str(context.record_id),
                context.field or "",
            ]
        )

    def _get_cached(self, context: SecurityContext) -> PermissionCheckResult | None:
        key = self._cache_key(context)
        entry = self._cache.get(key)
        if entry is None:
            return None
        result, timestamp = entry
        if self._clock() - timestamp > self._cache_ttl:
            del self._cache[key]
            return None
        return result
