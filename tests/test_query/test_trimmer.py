"""Tests for QueryTrimmer row-level security and record-rule injection."""
from __future__ import annotations

from typing import Any

import pytest

from aumos_record_security.errors import FilterTranslationError
from aumos_record_security.permissions.models import SecurityContext
from aumos_record_security.permissions.permission_loader import PermissionLoader
from aumos_record_security.query.trimmer import (
    QueryTrimmer,
    ResidualFilter,
    applicable_record_rules,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_TICKETS: dict[str, Any] = {
    "object": "tickets",
    "row_level_security": {
        "enabled": True,
        "default_rule": {"field": "team", "operator": "=", "value": "$current_user.team"},
        "exceptions": [
            {"role": "admin", "bypass": True},
            {
                "role": "manager",
                "condition": {"field": "region", "operator": "in", "value": ["emea", "apac"]},
            },
        ],
    },
}

_DOCUMENTS: dict[str, Any] = {
    "object": "documents",
    "record_rules": [
        {
            "name": "own",
            "condition": {"field": "owner", "operator": "=", "value": "$current_user.id"},
            "permissions": {"read": True, "update": True},
        },
        {
            "name": "public",
            "condition": {"field": "public", "operator": "=", "value": True},
            "permissions": {"read": True},
        },
    ],
}

_NOTES: dict[str, Any] = {
    "object": "notes",
    "row_level_security": {
        "enabled": True,
        "default_rule": {"type": "formula", "formula": "(pinned == true)"},
    },
}

_LINKS: dict[str, Any] = {
    "object": "links",
    "row_level_security": {
        "enabled": True,
        "default_rule": {"type": "lookup", "object": "projects", "via": "project_id"},
    },
}

_AGENT: dict[str, Any] = {"id": "u1", "roles": ["agent"], "team": "blue"}


@pytest.fixture()
def trimmer() -> QueryTrimmer:
    loader = PermissionLoader({"permissions": [_TICKETS, _DOCUMENTS, _NOTES, _LINKS]})
    return QueryTrimmer(loader)


def _ctx(object_name: str, user: dict[str, Any] | None) -> SecurityContext:
    return SecurityContext(object_name, "read", user=user)


# ---------------------------------------------------------------------------
# Row-level security
# ---------------------------------------------------------------------------


class TestApplyRowLevelSecurity:
    @pytest.mark.asyncio
    async def test_default_rule_injected(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", _AGENT))
        assert query["filters"] == {"team": "blue"}

    @pytest.mark.asyncio
    async def test_and_combined_with_existing_filter(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {"filters": {"priority": "high"}}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", _AGENT))
        assert query["filters"] == {"$and": [{"priority": "high"}, {"team": "blue"}]}

    @pytest.mark.asyncio
    async def test_shared_base_filter_not_leaked_between_users(
        self, trimmer: QueryTrimmer
    ) -> None:
        base: dict[str, Any] = {"$and": [{"status": "open"}]}
        red_agent = {"id": "u2", "roles": ["agent"], "team": "red"}
        first: dict[str, Any] = {"filters": base}
        second: dict[str, Any] = {"filters": base}
        await trimmer.apply_row_level_security("tickets", first, _ctx("tickets", _AGENT))
        await trimmer.apply_row_level_security("tickets", second, _ctx("tickets", red_agent))
        assert first["filters"] == {"$and": [{"status": "open"}, {"team": "blue"}]}
        assert second["filters"] == {"$and": [{"status": "open"}, {"team": "red"}]}
        assert base == {"$and": [{"status": "open"}]}

    @pytest.mark.asyncio
    async def test_anonymous_gets_impossible_filter(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", None))
        assert query["filters"] == {"id": None}
        assert trimmer.is_query_impossible(query) is True

    @pytest.mark.asyncio
    async def test_anonymous_with_existing_filter_still_impossible(
        self, trimmer: QueryTrimmer
    ) -> None:
        query: dict[str, Any] = {"filters": {"status": "open"}}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", None))
        assert trimmer.is_query_impossible(query) is True

    @pytest.mark.asyncio
    async def test_bypass_role_untouched(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {"filters": {"status": "open"}}
        admin = {"id": "a1", "roles": ["admin", "manager"]}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", admin))
        assert query == {"filters": {"status": "open"}}

    @pytest.mark.asyncio
    async def test_role_exception_replaces_default(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        manager = {"id": "m1", "roles": ["manager"], "team": "red"}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", manager))
        assert query["filters"] == {"region": {"$in": ["emea", "apac"]}}

    @pytest.mark.asyncio
    async def test_unconfigured_object_untouched(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_row_level_security("other", query, _ctx("other", None))
        assert query == {}

    @pytest.mark.asyncio
    async def test_disabled_rls_untouched(self) -> None:
        config = {**_TICKETS, "row_level_security": {**_TICKETS["row_level_security"], "enabled": False}}
        trimmer = QueryTrimmer(PermissionLoader({"permissions": [config]}))
        query: dict[str, Any] = {}
        await trimmer.apply_row_level_security("tickets", query, _ctx("tickets", None))
        assert query == {}

    @pytest.mark.asyncio
    async def test_untranslatable_condition_raises(self, trimmer: QueryTrimmer) -> None:
        with pytest.raises(FilterTranslationError):
            await trimmer.apply_row_level_security("notes", {}, _ctx("notes", _AGENT))

    @pytest.mark.asyncio
    async def test_untranslatable_formula_deferred(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        residuals: list[ResidualFilter] = []
        await trimmer.apply_row_level_security(
            "notes", query, _ctx("notes", _AGENT), residuals
        )
        assert query == {}
        assert len(residuals) == 1
        assert residuals[0].matches({"pinned": True}) is True
        assert residuals[0].matches({"pinned": False}) is False

    @pytest.mark.asyncio
    async def test_untranslatable_lookup_denies_all(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        residuals: list[ResidualFilter] = []
        await trimmer.apply_row_level_security(
            "links", query, _ctx("links", _AGENT), residuals
        )
        assert residuals == []
        assert trimmer.is_query_impossible(query) is True


# ---------------------------------------------------------------------------
# Record rules
# ---------------------------------------------------------------------------


class TestApplyRecordRules:
    @pytest.mark.asyncio
    async def test_or_of_applicable_rules(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_record_rules("documents", query, _ctx("documents", _AGENT), "read")
        assert query["filters"] == {"$or": [{"owner": "u1"}, {"public": True}]}

    @pytest.mark.asyncio
    async def test_only_rules_granting_operation(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_record_rules(
            "documents", query, _ctx("documents", _AGENT), "update"
        )
        assert query["filters"] == {"owner": "u1"}

    @pytest.mark.asyncio
    async def test_no_rule_grants_operation(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_record_rules(
            "documents", query, _ctx("documents", _AGENT), "delete"
        )
        assert query == {}

    @pytest.mark.asyncio
    async def test_anonymous_left_to_rls(self, trimmer: QueryTrimmer) -> None:
        query: dict[str, Any] = {}
        await trimmer.apply_record_rules("documents", query, _ctx("documents", None), "read")
        assert query == {}

    @pytest.mark.asyncio
    async def test_rule_without_condition_unrestricted(self) -> None:
        config = {
            "object": "documents",
            "record_rules": [
                *_DOCUMENTS["record_rules"],
                {"name": "everyone", "permissions": {"read": True}},
            ],
        }
        trimmer = QueryTrimmer(PermissionLoader({"permissions": [config]}))
        query: dict[str, Any] = {}
        await trimmer.apply_record_rules("documents", query, _ctx("documents", _AGENT), "read")
        assert query == {}


class TestApplicableRecordRules:
    def test_filters_by_operation(self) -> None:
        from aumos_record_security.permissions.models import PermissionConfig

        config = PermissionConfig.model_validate(_DOCUMENTS)
        assert [r.name for r in applicable_record_rules(config, "update")] == ["own"]
        assert applicable_record_rules(config, "create") == []
