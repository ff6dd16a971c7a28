"""SecurityPlugin: main entry point for host-runtime integration.

The plugin wires the loader, guard, trimmer and masker together and
registers three lifecycle hooks with the host kernel:

- ``before_query``    -- inject row-level-security and record-rule filters
- ``before_mutation`` -- check object-level permission for the mutation
- ``after_query``     -- remove and mask fields in the result

Hook contexts are plain mutable mappings.  ``object_name`` (or
``object``), ``user``, ``user_id`` and ``roles`` are read from them; the
handlers write back ``query["filters"]``, ``result`` and ``skip``.

Example
-------
::

    plugin = SecurityPlugin({"permissions": [...], "exempt_objects": ["logs"]})
    await plugin.install(kernel)
    await kernel.security.guard.check_permission(context)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, MutableMapping

from aumos_record_security.audit.decision_log import AuditEntry, DecisionLog
from aumos_record_security.errors import PermissionDeniedError
from aumos_record_security.masking.field_masker import FieldMasker
from aumos_record_security.permissions.models import PermissionCheckResult, SecurityContext
from aumos_record_security.permissions.permission_guard import PermissionGuard
from aumos_record_security.permissions.permission_loader import PermissionLoader
from aumos_record_security.plugin.config_loader import SecurityConfig, coerce_security_config
from aumos_record_security.query.filters import add_filter, impossible_filter
from aumos_record_security.query.trimmer import QueryTrimmer, ResidualFilter
from aumos_record_security.storage import DatasourceResolver, RedisClientFactory

logger = logging.getLogger(__name__)

HookContext = MutableMapping[str, Any]
HookHandler = Callable[[HookContext], Awaitable[None]]

BEFORE_QUERY: str = "before_query"
BEFORE_MUTATION: str = "before_mutation"
AFTER_QUERY: str = "after_query"


@dataclass
class SecurityComponents:
    """Engine components exposed on the kernel as ``kernel.security``."""

    loader: PermissionLoader
    guard: PermissionGuard
    trimmer: QueryTrimmer
    masker: FieldMasker
    config: SecurityConfig


class SecurityPlugin:
    """Declarative record security for a host kernel.

    Parameters
    ----------
    config:
        :class:`SecurityConfig`, a raw mapping or ``None`` for defaults.
    redis_client_factory:
        Passed to the loader when ``storage_type == "redis"``.
    datasource_resolver:
        Passed to the loader when ``storage_type == "database"``.

    Raises
    ------
    PermissionConfigError
        If ``config`` fails validation.
    """

    name: str = "aumos-record-security"
    version: str = "0.1.0"

    def __init__(
        self,
        config: SecurityConfig | dict[str, Any] | None = None,
        *,
        redis_client_factory: RedisClientFactory | None = None,
        datasource_resolver: DatasourceResolver | None = None,
    ) -> None:
        self._config = coerce_security_config(config)
        self._redis_client_factory = redis_client_factory
        self._datasource_resolver = datasource_resolver
        self._audit = DecisionLog(
            capacity=self._config.audit_capacity,
            mirror_path=self._config.audit_log_path,
        )
        self._components: SecurityComponents | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def install(self, ctx: Any) -> None:
        """Build the engine and register hooks with the host.

        ``ctx`` is either the kernel itself or a plugin context exposing
        it as ``engine`` or through ``get_kernel()``.  Hooks are registered
        through the first of ``ctx.hook``, ``kernel.use`` or
        ``kernel.hooks.register`` that exists.
        """
        kernel = self._resolve_kernel(ctx)
        logger.info(
            "Installing security plugin (enabled=%s, storage_type=%s)",
            self._config.enabled,
            self._config.storage_type,
        )
        if not self._config.enabled:
            logger.warning("Security plugin is disabled")
            return

        loader = PermissionLoader(
            self._config,
            redis_client_factory=self._redis_client_factory,
            datasource_resolver=self._datasource_resolver,
        )
        self._components = SecurityComponents(
            loader=loader,
            guard=PermissionGuard(
                loader,
                cache_enabled=self._config.enable_cache,
                cache_ttl_ms=self._config.cache_ttl,
            ),
            trimmer=QueryTrimmer(loader),
            masker=FieldMasker(loader),
            config=self._config,
        )

        if self._config.precompile_rules:
            await loader.load_all()
            logger.info("Permission rules pre-compiled")

        kernel.security = self._components
        self._register_hooks(ctx, kernel)
        logger.info("Security plugin installed")

    async def init(self, ctx: Any) -> None:
        await self.install(ctx)

    async def start(self, ctx: Any) -> None:
        logger.info("Security plugin started")

    # ------------------------------------------------------------------
    # Hook handlers
    # ------------------------------------------------------------------

    async def before_query(self, ctx: HookContext) -> None:
        """Inject security filters into ``ctx["query"]``.

        A provably empty query sets ``ctx["result"] = []`` and
        ``ctx["skip"] = True``.  Conditions that cannot become filters are
        queued on ``ctx["residual_filters"]`` for :meth:`after_query`.
        """
        object_name = self._object_name(ctx)
        if object_name is None or self._config.is_exempt(object_name):
            return
        components = self._ensure_installed()
        context = self.extract_security_context(ctx, object_name, "read")
        query = ctx.get("query")
        if query is None:
            query = ctx["query"] = {}

        residuals: list[ResidualFilter] = []
        try:
            await components.trimmer.apply_row_level_security(
                object_name, query, context, residuals
            )
            await components.trimmer.apply_record_rules(
                object_name, query, context, "read", residuals
            )
        except Exception:
            logger.exception("Error in before_query for %s", object_name)
            if self._config.throw_on_denied:
                raise
            ctx["result"] = []
            ctx["skip"] = True
            return

        if residuals:
            if self._config.enable_field_level_security:
                ctx["residual_filters"] = [*ctx.get("residual_filters", []), *residuals]
            else:
                # No after_query hook to apply them.
                logger.warning(
                    "In-memory conditions on %s cannot run without after_query; denying",
                    object_name,
                )
                add_filter(query, impossible_filter())

        if components.trimmer.is_query_impossible(query):
            ctx["result"] = []
            ctx["skip"] = True

    async def before_mutation(self, ctx: HookContext) -> None:
        """Check the mutation's operation against the guard.

        Raises
        ------
        PermissionDeniedError
            When denied and ``throw_on_denied`` is set; otherwise
            ``ctx["skip"]`` is set to ``True``.
        """
        object_name = self._object_name(ctx)
        operation = ctx.get("operation")
        if object_name is None or not operation or self._config.is_exempt(object_name):
            return
        components = self._ensure_installed()
        record_id = ctx.get("id")
        context = self.extract_security_context(
            ctx,
            object_name,
            str(operation),
            record_id=None if record_id is None else str(record_id),
            record=ctx.get("data"),
        )

        try:
            result = await components.guard.check_object_permission(context, str(operation))
        except Exception:
            logger.exception("Error in before_mutation for %s.%s", object_name, operation)
            raise

        if self._config.enable_audit:
            self._log_audit(context, result)

        if not result.granted:
            logger.info(
                "Denied %s on %s for %s: %s",
                operation,
                object_name,
                context.user_id or "anonymous",
                result.reason,
            )
            if self._config.throw_on_denied:
                raise PermissionDeniedError(result)
            ctx["skip"] = True

    async def after_query(self, ctx: HookContext) -> None:
        """Apply queued in-memory conditions, then field-level security."""
        object_name = self._object_name(ctx)
        if object_name is None or ctx.get("result") is None:
            return
        if self._config.is_exempt(object_name):
            return
        components = self._ensure_installed()
        context = self.extract_security_context(ctx, object_name, "read")
        single = not isinstance(ctx["result"], list)
        records: list[Mapping[str, Any]] = [ctx["result"]] if single else list(ctx["result"])

        try:
            for residual in ctx.pop("residual_filters", None) or []:
                records = [record for record in records if residual.matches(record)]
            masked = await components.masker.apply_field_level_security(
                object_name, records, context, "read"
            )
        except Exception:
            logger.exception("Error in after_query for %s", object_name)
            if self._config.throw_on_denied:
                raise
            masked = []

        if single:
            ctx["result"] = masked[0] if masked else None
        else:
            ctx["result"] = masked

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def extract_security_context(
        ctx: Mapping[str, Any],
        object_name: str,
        operation: str,
        record_id: str | None = None,
        record: dict[str, Any] | None = None,
    ) -> SecurityContext:
        """Build a :class:`SecurityContext` from a hook context.

        ``ctx["user"]`` is merged over ``{"id": ctx["user_id"], "roles":
        ctx["roles"]}``.  With neither ``user`` nor ``user_id`` the
        context is anonymous.
        """
        user = ctx.get("user")
        user_id = ctx.get("user_id")
        merged: dict[str, Any] | None = None
        if user or user_id is not None:
            merged = {"id": user_id, "roles": list(ctx.get("roles") or []), **(user or {})}
        return SecurityContext(
            object_name=object_name,
            operation=operation,
            user=merged,
            record_id=record_id,
            record=record,
        )

    def get_audit_logs(self, limit: int = 100) -> list[AuditEntry]:
        """Return the most recent audited decisions, oldest first."""
        return self._audit.get(limit)

    def clear_audit_logs(self) -> None:
        self._audit.clear()

    def get_status(self) -> dict[str, object]:
        """Return a summary of the plugin's state."""
        if self._components is None:
            return {"installed": False, "enabled": self._config.enabled}
        return {
            "installed": True,
            "enabled": self._config.enabled,
            "storage_type": self._config.storage_type,
            "cache_size": self._components.guard.cache_size,
            "audit_count": len(self._audit),
        }

    @property
    def config(self) -> SecurityConfig:
        return self._config

    @property
    def components(self) -> SecurityComponents | None:
        return self._components

    @property
    def audit(self) -> DecisionLog:
        return self._audit

    def _log_audit(self, context: SecurityContext, result: PermissionCheckResult) -> None:
        self._audit.record(
            user_id=context.user_id,
            object_name=context.object_name,
            operation=context.operation,
            granted=result.granted,
            reason=result.reason,
            rule=result.rule,
            record_id=context.record_id,
            field=context.field,
        )

    @staticmethod
    def _object_name(ctx: Mapping[str, Any]) -> str | None:
        name = ctx.get("object_name") or ctx.get("object")
        return str(name) if name else None

    @staticmethod
    def _resolve_kernel(ctx: Any) -> Any:
        engine = getattr(ctx, "engine", None)
        if engine is not None:
            return engine
        get_kernel = getattr(ctx, "get_kernel", None)
        if callable(get_kernel):
            return get_kernel()
        return ctx

    def _register_hooks(self, ctx: Any, kernel: Any) -> None:
        def register(name: str, handler: HookHandler) -> None:
            hook = getattr(ctx, "hook", None)
            if callable(hook):
                hook(name, handler)
                return
            use = getattr(kernel, "use", None)
            if callable(use):
                use(name, handler)
                return
            hooks = getattr(kernel, "hooks", None)
            if hooks is not None and callable(getattr(hooks, "register", None)):
                hooks.register(name, handler)
                return
            logger.warning("Kernel exposes no hook registration; %s not registered", name)

        if self._config.enable_row_level_security:
            register(BEFORE_QUERY, self.before_query)
            logger.debug("%s hook registered", BEFORE_QUERY)
        register(BEFORE_MUTATION, self.before_mutation)
        logger.debug("%s hook registered", BEFORE_MUTATION)
        if self._config.enable_field_level_security:
            register(AFTER_QUERY, self.after_query)
            logger.debug("%s hook registered", AFTER_QUERY)

    def _ensure_installed(self) -> SecurityComponents:
        if self._components is None:
            raise RuntimeError("SecurityPlugin is not installed. Call install() first.")
        return self._components
