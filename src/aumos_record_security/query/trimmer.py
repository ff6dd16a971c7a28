"""Query trimmer: row-level security and record rules as injected filters.

The trimmer rebinds ``query["filters"]`` to a new node AND-combined with
whatever filter the caller already set, leaving that filter object intact.
It never evaluates records itself, except through :class:`ResidualFilter`
when a caller opts in to in-memory fallback for conditions the filter
compiler cannot express.

Example
-------
::

    trimmer = QueryTrimmer(loader)
    query = {"filters": {"status": "open"}}
    await trimmer.apply_row_level_security("tickets", query, context)
    if trimmer.is_query_impossible(query):
        return []
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping

from aumos_record_security.errors import FilterTranslationError
from aumos_record_security.permissions.conditions import compile_condition, condition_type
from aumos_record_security.permissions.models import (
    Condition,
    ConditionEvaluator,
    PermissionConfig,
    RecordRule,
    SecurityContext,
)
from aumos_record_security.permissions.permission_loader import PermissionLoader
from aumos_record_security.query.filters import (
    Filter,
    add_filter,
    combine_any,
    condition_to_filter,
    impossible_filter,
    is_impossible_filter,
)

logger = logging.getLogger(__name__)

# Condition types whose in-memory evaluation is exact.  Lookups and unknown
# types evaluate to True in memory, so they can never be deferred.
_DEFERRABLE_TYPES: frozenset[str] = frozenset(["simple", "complex", "formula"])


@dataclass
class ResidualFilter:
    """In-memory predicate for conditions that could not become a filter.

    A record passes when any of ``conditions`` matches it for ``user``.
    """

    conditions: list[Condition]
    user: Mapping[str, Any] | None
    evaluators: list[ConditionEvaluator] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if not self.evaluators:
            self.evaluators = [compile_condition(c) for c in self.conditions]

    def matches(self, record: Mapping[str, Any]) -> bool:
        context = {"record": record, "user": self.user}
        return any(evaluator(context) for evaluator in self.evaluators)


def applicable_record_rules(config: PermissionConfig, operation: str) -> list[RecordRule]:
    """Return the record rules that grant ``operation``, in declaration order."""
    return [rule for rule in config.record_rules or [] if rule.permissions.allows(operation)]


class QueryTrimmer:
    """Injects row-level-security and record-rule filters into queries.

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

    async def apply_row_level_security(
        self,
        object_name: str,
        query: MutableMapping[str, Any],
        context: SecurityContext,
        residuals: list[ResidualFilter] | None = None,
    ) -> None:
        """Restrict ``query`` to the rows the acting user may see.

        Parameters
        ----------
        object_name:
            Object being queried.
        query:
            Mutable query mapping; ``query["filters"]`` is updated.
        context:
            Security context of the caller.
        residuals:
            When given, conditions that cannot be translated are appended
            here as :class:`ResidualFilter` instead of raising.

        Raises
        ------
        FilterTranslationError
            If a condition cannot be translated and ``residuals`` is None.
        """
        config = await self._loader.load(object_name)
        if config is None or config.row_level_security is None:
            return
        rls = config.row_level_security
        if not rls.enabled:
            return

        if not context.user:
            add_filter(query, impossible_filter())
            logger.debug("Anonymous query on %s restricted to no rows", object_name)
            return

        roles = context.roles
        for exception in rls.exceptions:
            if exception.bypass and exception.role in roles:
                logger.debug("Role %s bypasses RLS on %s", exception.role, object_name)
                return

        for exception in rls.exceptions:
            if exception.condition and exception.role in roles:
                self._inject(query, [exception.condition], context.user, residuals)
                return

        if rls.default_rule:
            self._inject(query, [rls.default_rule], context.user, residuals)

    async def apply_record_rules(
        self,
        object_name: str,
        query: MutableMapping[str, Any],
        context: SecurityContext,
        operation: str,
        residuals: list[ResidualFilter] | None = None,
    ) -> None:
        """AND-inject the OR of every record rule granting ``operation``.

        Anonymous callers are left to :meth:`apply_row_level_security`.
        """
        config = await self._loader.load(object_name)
        if config is None or not config.record_rules or not context.user:
            return
        rules = applicable_record_rules(config, operation)
        if not rules:
            return
        self._inject(query, [rule.condition for rule in rules], context.user, residuals)

    @staticmethod
    def is_query_impossible(query: Mapping[str, Any]) -> bool:
        """True when the query's filter can match no record."""
        return is_impossible_filter(query.get("filters"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _inject(
        query: MutableMapping[str, Any],
        conditions: list[Condition | None],
        user: Mapping[str, Any],
        residuals: list[ResidualFilter] | None,
    ) -> None:
        if any(not c for c in conditions):
            # An always-true member makes the whole OR group unrestricted.
            return
        try:
            filters: list[Filter] = [condition_to_filter(c, user) for c in conditions]
        except FilterTranslationError as exc:
            if residuals is None:
                raise
            present: list[Condition] = [c for c in conditions if c]
            if all(condition_type(c) in _DEFERRABLE_TYPES for c in present):
                logger.info("Deferring untranslatable condition to in-memory check: %s", exc)
                residuals.append(ResidualFilter(present, user))
            else:
                logger.warning("Untranslatable condition; denying all rows: %s", exc)
                add_filter(query, impossible_filter())
            return
        add_filter(query, combine_any(filters))
